"""Grid model: rectangular row-major cell tables and their structural edits.

Every function here returns a new normalized grid and leaves its input
untouched, so snapshots held by the history stay valid.
"""

from __future__ import annotations

import hashlib
from typing import Any, Sequence

import orjson

Grid = list[list[Any]]

EMPTY = ""


def normalize(grid: Sequence[Sequence[Any]]) -> Grid:
    """Pad every row to the widest row's length. Rows are never truncated."""
    rows = [list(r) for r in grid]
    width = max((len(r) for r in rows), default=0)
    for r in rows:
        if len(r) < width:
            r.extend([EMPTY] * (width - len(r)))
    return rows


def copy_grid(grid: Sequence[Sequence[Any]]) -> Grid:
    """Copy rows; cell values are immutable scalars so this is a deep copy."""
    return [list(r) for r in grid]


def width(grid: Sequence[Sequence[Any]]) -> int:
    return max((len(r) for r in grid), default=0)


def shape(grid: Sequence[Sequence[Any]]) -> tuple[int, int]:
    """Return ``(rows, cols)`` of the normalized grid."""
    return len(grid), width(grid)


def column_label(index: int) -> str:
    """Spreadsheet column letters: 0 -> A, 25 -> Z, 26 -> AA."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative, got {index}")
    label = ""
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        label = chr(65 + rem) + label
    return label


def cell_ref(row: int, col: int) -> str:
    """A1-style display reference for a zero-based coordinate."""
    return f"{column_label(col)}{row + 1}"


def grid_fingerprint(grid: Sequence[Sequence[Any]]) -> str:
    """SHA-256 of the normalized grid's canonical JSON."""
    digest = hashlib.sha256(orjson.dumps(normalize(grid))).hexdigest()
    return f"sha256:{digest}"


def set_cell(
    grid: Sequence[Sequence[Any]],
    row: int,
    col: int,
    value: Any,
    *,
    max_rows: int | None = None,
    max_cols: int | None = None,
) -> Grid:
    """Set one cell, growing the grid with empty filler when out of bounds.

    ``max_rows`` and ``max_cols`` cap how far the grid may grow.
    """
    if row < 0 or col < 0:
        raise ValueError(f"Cell coordinate must be non-negative, got ({row}, {col})")
    if max_rows is not None and row >= max_rows:
        raise ValueError(f"Row {row} is past the {max_rows}-row limit")
    if max_cols is not None and col >= max_cols:
        raise ValueError(f"Column {col} is past the {max_cols}-column limit")
    rows = copy_grid(grid)
    while len(rows) <= row:
        rows.append([])
    target = rows[row]
    while len(target) <= col:
        target.append(EMPTY)
    target[col] = EMPTY if value is None else value
    return normalize(rows)


def add_row(
    grid: Sequence[Sequence[Any]],
    position: int | None = None,
    values: Sequence[Any] | None = None,
) -> Grid:
    """Insert a row at ``position`` (append when None or past the end)."""
    rows = normalize(grid)
    if values is None:
        new_row = [EMPTY] * max(width(rows), 1)
    else:
        new_row = [EMPTY if v is None else v for v in values]
    if position is None or position > len(rows):
        position = len(rows)
    if position < 0:
        raise ValueError(f"Row position must be non-negative, got {position}")
    rows.insert(position, new_row)
    return normalize(rows)


def delete_row(grid: Sequence[Sequence[Any]], row: int) -> Grid:
    """Remove a row. Refuses to remove the last row; out of range is a no-op."""
    rows = normalize(grid)
    if len(rows) <= 1 or not 0 <= row < len(rows):
        return rows
    del rows[row]
    return rows


def add_column(
    grid: Sequence[Sequence[Any]],
    header: Any = EMPTY,
    position: int | None = None,
) -> Grid:
    """Insert an empty column, putting ``header`` in row 0."""
    rows = normalize(grid)
    if not rows:
        rows = [[]]
    w = width(rows)
    if position is None or position > w:
        position = w
    if position < 0:
        raise ValueError(f"Column position must be non-negative, got {position}")
    for i, r in enumerate(rows):
        r.insert(position, header if i == 0 else EMPTY)
    return normalize(rows)


def delete_column(grid: Sequence[Sequence[Any]], col: int) -> Grid:
    """Remove a column. Refuses to remove the last column; out of range is a no-op."""
    rows = normalize(grid)
    if width(rows) <= 1 or not 0 <= col < width(rows):
        return rows
    for r in rows:
        del r[col]
    return rows
