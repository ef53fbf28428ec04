"""Grid diff: cell-level comparison used to preview a plan before applying it."""

from __future__ import annotations

from typing import Any, Sequence

from xlforge.engine.grid import EMPTY, cell_ref, grid_fingerprint, normalize, shape


def diff_grids(
    before: Sequence[Sequence[Any]],
    after: Sequence[Sequence[Any]],
    *,
    sheet: str | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Compare two grids position by position.

    Cells outside a grid count as empty, so a grown grid reports its new
    cells as ``added`` and a shrunk grid reports ``removed``. ``limit`` caps
    the number of listed changes; ``total_changes`` is always the full count.
    """
    grid_a = normalize(before)
    grid_b = normalize(after)
    rows_a, cols_a = shape(grid_a)
    rows_b, cols_b = shape(grid_b)

    cell_changes: list[dict[str, Any]] = []
    total = 0
    for row in range(max(rows_a, rows_b)):
        for col in range(max(cols_a, cols_b)):
            val_a = grid_a[row][col] if row < rows_a and col < cols_a else EMPTY
            val_b = grid_b[row][col] if row < rows_b and col < cols_b else EMPTY
            if val_a == val_b and type(val_a) is type(val_b):
                continue
            total += 1
            if limit is not None and len(cell_changes) >= limit:
                continue
            if val_a == EMPTY:
                change_type = "added"
            elif val_b == EMPTY:
                change_type = "removed"
            else:
                change_type = "modified"
            ref = cell_ref(row, col)
            cell_changes.append({
                "ref": f"{sheet}!{ref}" if sheet else ref,
                "change_type": change_type,
                "before": val_a,
                "after": val_b,
            })

    return {
        "fingerprint_before": grid_fingerprint(grid_a),
        "fingerprint_after": grid_fingerprint(grid_b),
        "identical": total == 0,
        "shape_before": {"rows": rows_a, "cols": cols_a},
        "shape_after": {"rows": rows_b, "cols": cols_b},
        "cell_changes": cell_changes,
        "total_changes": total,
    }
