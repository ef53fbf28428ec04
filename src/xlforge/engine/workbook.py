"""Workbook manager: named sheet grids with one active sheet."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from xlforge.contracts.responses import SheetMeta, WorkbookPayload
from xlforge.engine.grid import Grid, copy_grid, normalize, shape


class Workbook:
    """Ordered mapping of sheet name to grid.

    The active sheet's grid lives in :attr:`grid`; the mapping keeps the
    last committed copy of every other sheet. Switching commits the outgoing
    grid first so edits on the sheet being left are kept.
    """

    def __init__(
        self,
        sheet_names: Sequence[str],
        sheets: Mapping[str, Sequence[Sequence[Any]]],
        active: str | None = None,
    ) -> None:
        names = list(sheet_names)
        if len(set(names)) != len(names):
            raise ValueError(f"Sheet names must be unique: {names}")
        if not names:
            raise ValueError("Workbook needs at least one sheet")
        self.sheet_names: list[str] = names
        self.sheets: dict[str, Grid] = {
            name: normalize(sheets.get(name) or [[]]) for name in names
        }
        if active is None:
            active = names[0]
        if active not in self.sheets:
            raise KeyError(f"Sheet not found: {active}")
        self.active: str = active
        self.grid: Grid = copy_grid(self.sheets[active])

    @classmethod
    def from_payload(cls, payload: WorkbookPayload, active: str | None = None) -> "Workbook":
        return cls(payload.sheet_names, payload.sheets, active=active)

    def commit(self, grid: Sequence[Sequence[Any]]) -> Grid:
        """Replace the active grid. Returns the normalized grid now active."""
        self.grid = normalize(grid)
        return self.grid

    def switch(self, name: str) -> Grid:
        """Make ``name`` the active sheet and return its grid."""
        if name not in self.sheets:
            raise KeyError(f"Sheet not found: {name}")
        self.sheets[self.active] = normalize(self.grid)
        self.active = name
        self.grid = normalize(self.sheets[name])
        return self.grid

    def get(self, name: str) -> Grid:
        """Current grid of any sheet, including uncommitted active edits."""
        if name == self.active:
            return copy_grid(self.grid)
        if name not in self.sheets:
            raise KeyError(f"Sheet not found: {name}")
        return copy_grid(self.sheets[name])

    def payload(self) -> WorkbookPayload:
        """Snapshot of every sheet for persistence, active edits included."""
        sheets = {name: self.get(name) for name in self.sheet_names}
        return WorkbookPayload(sheet_names=list(self.sheet_names), sheets=sheets)

    def list_sheets(self) -> list[SheetMeta]:
        metas = []
        for index, name in enumerate(self.sheet_names):
            rows, cols = shape(self.get(name))
            metas.append(SheetMeta(
                name=name, index=index, rows=rows, cols=cols,
                active=name == self.active,
            ))
        return metas
