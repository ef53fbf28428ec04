"""Step interpreter: apply one typed edit step to a grid.

Handlers work on a private copy of the grid and raise :class:`StepError`
for anything they cannot apply (out-of-range indices, bad positions). The
plan executor turns those errors into skipped steps.
"""

from __future__ import annotations

import math
import re
from functools import cmp_to_key
from typing import Any, Callable

from xlforge.ai.settings import get_settings
from xlforge.contracts.plans import (
    AddColumnStep,
    AddRowStep,
    DeleteColumnStep,
    DeleteRowStep,
    FilterDeleteStep,
    MultiplyColumnStep,
    RenameColumnStep,
    ReplaceAllStep,
    SetCellStep,
    SortStep,
    Step,
    StepError,
    parse_step,
)
from xlforge.engine import grid as g
from xlforge.engine.grid import EMPTY, Grid

DEFAULT_COLUMN_HEADER = "New Column"

_NUMERIC_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def cell_text(value: Any) -> str:
    """Render a cell value as the text the editor displays."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_number(value: Any) -> float | None:
    """Leading-numeric-prefix parse: ``"10"`` -> 10.0, ``" 2.5kg"`` -> 2.5."""
    if isinstance(value, bool) or value is None:
        return None
    if _is_number(value):
        result = float(value)
    else:
        m = _NUMERIC_PREFIX.match(str(value))
        if not m:
            return None
        result = float(m.group(1))
    return result if math.isfinite(result) else None


def _check_row(rows: Grid, row: int) -> None:
    if not 0 <= row < len(rows):
        raise StepError(f"Row {row} out of range (grid has {len(rows)} rows)")


def _check_col(rows: Grid, col: int) -> None:
    w = g.width(rows)
    if not 0 <= col < w:
        raise StepError(f"Column {col} out of range (grid has {w} columns)")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------
def _set_cell(rows: Grid, step: SetCellStep) -> Grid:
    settings = get_settings()
    return g.set_cell(
        rows, step.row, step.col, step.value,
        max_rows=settings.XLFORGE_MAX_ROWS, max_cols=settings.XLFORGE_MAX_COLS,
    )


def _add_row(rows: Grid, step: AddRowStep) -> Grid:
    position = step.position
    if position == "end":
        position = None
    if position is not None and position < 0:
        raise StepError(f"Row position must be non-negative, got {position}")
    return g.add_row(rows, position, step.values)


def _delete_row(rows: Grid, step: DeleteRowStep) -> Grid:
    _check_row(rows, step.row)
    return g.delete_row(rows, step.row)


def _add_column(rows: Grid, step: AddColumnStep) -> Grid:
    if not rows:
        rows = [[]]
    header = step.header if step.header not in (None, "") else DEFAULT_COLUMN_HEADER
    fill = EMPTY if step.fill is None else step.fill
    values = step.values or []
    rows[0].append(header)
    for i in range(1, len(rows)):
        value = values[i - 1] if i - 1 < len(values) else None
        rows[i].append(fill if value is None else value)
    return rows


def _delete_column(rows: Grid, step: DeleteColumnStep) -> Grid:
    _check_col(rows, step.col)
    return g.delete_column(rows, step.col)


def _rename_column(rows: Grid, step: RenameColumnStep) -> Grid:
    if not rows:
        return rows
    _check_col(rows, step.col)
    rows[0][step.col] = EMPTY if step.new_name is None else step.new_name
    return rows


def _compare_cells(a: Any, b: Any) -> int:
    if _is_number(a) and _is_number(b):
        return (a > b) - (a < b)
    ta, tb = cell_text(a), cell_text(b)
    return (ta > tb) - (ta < tb)


def _sort(rows: Grid, step: SortStep) -> Grid:
    if not rows:
        return rows
    _check_col(rows, step.col)
    header = rows[:1] if step.has_header else []
    body = rows[1:] if step.has_header else rows
    sign = -1 if step.direction == "desc" else 1

    def compare(ra: list[Any], rb: list[Any]) -> int:
        return sign * _compare_cells(ra[step.col], rb[step.col])

    return header + sorted(body, key=cmp_to_key(compare))


def _keep_row(text: str, step: FilterDeleteStep) -> bool:
    value = cell_text(step.value)
    if step.operator == "equals":
        return text != value
    if step.operator == "empty":
        return text.strip() != ""
    if step.operator == "not_empty":
        return text.strip() == ""
    return value not in text  # contains


def _filter_delete(rows: Grid, step: FilterDeleteStep) -> Grid:
    if not rows:
        return rows
    _check_col(rows, step.col)
    kept = []
    for i, row in enumerate(rows):
        if i == 0 and step.has_header:
            kept.append(row)
        elif _keep_row(cell_text(row[step.col]), step):
            kept.append(row)
    return kept


def _replace_all(rows: Grid, step: ReplaceAllStep) -> Grid:
    if not rows:
        return rows
    if step.col == -1:
        columns = range(g.width(rows))
    else:
        _check_col(rows, step.col)
        columns = [step.col]
    for row in rows:
        for ci in columns:
            original = cell_text(row[ci])
            text = original
            if step.find is not None:
                text = text.replace(cell_text(step.find), cell_text(step.replace))
            if step.transform == "uppercase":
                text = text.upper()
            elif step.transform == "lowercase":
                text = text.lower()
            # untouched cells keep their type
            if text != original:
                row[ci] = text
    return rows


def _multiply_column(rows: Grid, step: MultiplyColumnStep) -> Grid:
    if not rows:
        return rows
    _check_col(rows, step.col)
    for row in rows[1:]:
        number = parse_number(row[step.col])
        if number is None:
            continue
        result = round(number * step.factor, 6)
        row[step.col] = int(result) if result.is_integer() else result
    return rows


_HANDLERS: dict[str, Callable[[Grid, Any], Grid]] = {
    "set_cell": _set_cell,
    "add_row": _add_row,
    "delete_row": _delete_row,
    "add_column": _add_column,
    "delete_column": _delete_column,
    "rename_column": _rename_column,
    "sort": _sort,
    "filter_delete": _filter_delete,
    "replace_all": _replace_all,
    "multiply_column": _multiply_column,
}


def apply_step(grid: Grid, step: Step | dict[str, Any]) -> Grid:
    """Apply a single step to a copy of ``grid`` and return the normalized result.

    Raises:
        StepError: the step is malformed or references cells outside the grid.
    """
    typed = parse_step(step)
    handler = _HANDLERS[typed.action]
    try:
        result = handler(g.normalize(grid), typed)
    except StepError:
        raise
    except (ValueError, TypeError, IndexError) as e:
        raise StepError(str(e)) from e
    return g.normalize(result)


def step_label(step: Any) -> str:
    """Short human-readable name for a raw or typed step."""
    if isinstance(step, dict):
        action = step.get("action")
        description = step.get("description")
    else:
        action = getattr(step, "action", None)
        description = getattr(step, "description", None)
    label = str(action) if action else "unknown"
    if description:
        label += f": {description}"
    return label
