"""Undo/redo stacks of full grid snapshots."""

from __future__ import annotations

from typing import Any, Sequence

from xlforge.engine.grid import Grid, copy_grid

DEFAULT_MAX_DEPTH = 100


class History:
    """Two snapshot stacks for one sheet's edit session.

    Every mutation calls :meth:`record` with the grid as it was just before
    the change. :meth:`undo` and :meth:`redo` return the grid to show next, or
    ``None`` when there is nothing to undo or redo.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.max_depth = max_depth
        self._undo: list[Grid] = []
        self._redo: list[Grid] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def record(self, grid: Sequence[Sequence[Any]]) -> None:
        self._undo.append(copy_grid(grid))
        if self.max_depth and len(self._undo) > self.max_depth:
            del self._undo[0]
        self._redo.clear()

    def undo(self, current: Sequence[Sequence[Any]]) -> Grid | None:
        if not self._undo:
            return None
        previous = self._undo.pop()
        self._redo.append(copy_grid(current))
        return copy_grid(previous)

    def redo(self, current: Sequence[Sequence[Any]]) -> Grid | None:
        if not self._redo:
            return None
        following = self._redo.pop()
        self._undo.append(copy_grid(current))
        return copy_grid(following)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
