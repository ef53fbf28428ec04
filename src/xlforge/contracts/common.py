"""Envelope models shared by every CLI command and the stdio server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class WorkbookCorruptError(Exception):
    """The file exists but cannot be read as an .xlsx workbook."""


class Target(BaseModel):
    """Workbook file, sheet, and A1 cell (or column letter) a command acted on."""

    file: str | None = None
    sheet: str | None = None
    ref: str | None = None


class WarningDetail(BaseModel):
    """Non-fatal problem. ``path`` points into the plan, e.g. ``steps[2]``."""

    code: str
    message: str
    path: str | None = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class Metrics(BaseModel):
    duration_ms: int = 0


class ChangeRecord(BaseModel):
    """One edit made, or previewed with ``--dry-run``.

    ``before``/``after`` carry the sheet shape or the cell value; ``impact``
    counts steps and cells touched.
    """

    type: str
    target: str
    before: Any | None = None
    after: Any | None = None
    impact: dict[str, Any] | None = None


class SessionState(BaseModel):
    """Snapshot of an edit session after a request: active grid and history flags."""

    sheet: str
    grid: list[list[Any]] = Field(default_factory=list)
    dirty: bool = False
    can_undo: bool = False
    can_redo: bool = False


class ResponseEnvelope(BaseModel):
    """What every command prints: ``ok`` plus result, changes, warnings, errors."""

    ok: bool = True
    command: str = ""
    target: Target = Field(default_factory=Target)
    result: Any = None
    changes: list[ChangeRecord] = Field(default_factory=list)
    warnings: list[WarningDetail] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)
