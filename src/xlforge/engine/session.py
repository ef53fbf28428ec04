"""EditSession: workbook + per-sheet history + dirty flag.

All mutations go through :meth:`EditSession._mutate`, which records the
pre-change grid in the active sheet's history and commits the new grid.
"""

from __future__ import annotations

from typing import Any, Callable

from xlforge.ai.settings import get_settings
from xlforge.contracts.plans import Plan
from xlforge.contracts.responses import PlanResult, WorkbookPayload
from xlforge.engine import grid as g
from xlforge.engine.executor import execute_plan
from xlforge.engine.grid import Grid
from xlforge.engine.history import DEFAULT_MAX_DEPTH, History
from xlforge.engine.workbook import Workbook
from xlforge.observe.events import EventEmitter


class EditSession:
    def __init__(
        self,
        workbook: Workbook,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
        emitter: EventEmitter | None = None,
    ) -> None:
        self.max_depth = max_depth
        self.emitter = emitter or EventEmitter()
        self.workbook = workbook
        self._histories: dict[str, History] = {}
        self.dirty = False

    @classmethod
    def from_payload(cls, payload: WorkbookPayload, **kwargs: Any) -> "EditSession":
        return cls(Workbook.from_payload(payload), **kwargs)

    # -- state ------------------------------------------------------------
    @property
    def grid(self) -> Grid:
        return self.workbook.grid

    @property
    def active(self) -> str:
        return self.workbook.active

    @property
    def history(self) -> History:
        """History of the active sheet."""
        name = self.workbook.active
        if name not in self._histories:
            self._histories[name] = History(self.max_depth)
        return self._histories[name]

    def load(self, payload: WorkbookPayload) -> None:
        """Replace the workbook wholesale; all history is dropped."""
        self.workbook = Workbook.from_payload(payload)
        self._histories.clear()
        self.dirty = False

    def payload(self) -> WorkbookPayload:
        return self.workbook.payload()

    def switch_sheet(self, name: str) -> Grid:
        return self.workbook.switch(name)

    def mark_saved(self) -> None:
        self.dirty = False

    # -- mutations --------------------------------------------------------
    def _mutate(self, change: Callable[[Grid], Grid]) -> bool:
        before = self.workbook.grid
        after = change(before)
        if after == before:
            return False  # refused floor edit or no-op
        self.history.record(before)
        self.workbook.commit(after)
        self.dirty = True
        return True

    def set_cell(self, row: int, col: int, value: Any) -> bool:
        settings = get_settings()
        return self._mutate(lambda grid: g.set_cell(
            grid, row, col, value,
            max_rows=settings.XLFORGE_MAX_ROWS, max_cols=settings.XLFORGE_MAX_COLS,
        ))

    def add_row(self, position: int | None = None, values: list[Any] | None = None) -> bool:
        return self._mutate(lambda grid: g.add_row(grid, position, values))

    def delete_row(self, row: int) -> bool:
        return self._mutate(lambda grid: g.delete_row(grid, row))

    def add_column(self, header: Any = "", position: int | None = None) -> bool:
        return self._mutate(lambda grid: g.add_column(grid, header, position))

    def delete_column(self, col: int) -> bool:
        return self._mutate(lambda grid: g.delete_column(grid, col))

    def apply_plan(self, plan: Plan) -> PlanResult:
        """Run every step of ``plan``; the whole plan is one undo unit."""
        before = self.workbook.grid
        result = execute_plan(before, plan.steps, emitter=self.emitter)
        self.history.record(before)
        self.workbook.commit(result.grid)
        self.dirty = True
        return result

    def undo(self) -> bool:
        restored = self.history.undo(self.workbook.grid)
        if restored is None:
            return False
        self.workbook.commit(restored)
        self.dirty = True
        return True

    def redo(self) -> bool:
        restored = self.history.redo(self.workbook.grid)
        if restored is None:
            return False
        self.workbook.commit(restored)
        self.dirty = True
        return True
