"""Command-specific result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SheetMeta(BaseModel):
    """Metadata for a single sheet grid."""

    name: str
    index: int
    rows: int = 0
    cols: int = 0
    active: bool = False


class WorkbookPayload(BaseModel):
    """Save/load contract shared with the persistence layer.

    Serialized with ``by_alias=True`` it is the ``{sheetNames, sheets}``
    shape the editor exchanges with storage.
    """

    model_config = ConfigDict(populate_by_name=True)

    sheet_names: list[str] = Field(alias="sheetNames")
    sheets: dict[str, list[list[Any]]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _unique_names(self) -> "WorkbookPayload":
        seen: set[str] = set()
        for name in self.sheet_names:
            if name in seen:
                raise ValueError(f"Duplicate sheet name: {name}")
            seen.add(name)
        return self


class ValidationResult(BaseModel):
    """Result of a plan pre-flight check."""

    valid: bool = True
    checks: list[dict[str, Any]] = Field(default_factory=list)


class StepOutcome(BaseModel):
    """What happened to one step of a plan."""

    index: int
    action: str | None = None
    ok: bool
    message: str = ""


class PlanResult(BaseModel):
    """Output of executing a plan against a grid."""

    grid: list[list[Any]] = Field(default_factory=list)
    applied: int = 0
    failures: list[str] = Field(default_factory=list)
    outcomes: list[StepOutcome] = Field(default_factory=list)


class ApplyResult(BaseModel):
    """Result of an apply command."""

    applied: bool = False
    dry_run: bool = False
    sheet: str = ""
    summary: str = ""
    backup_path: str | None = None
    steps_total: int = 0
    steps_applied: int = 0
    steps_failed: int = 0
    fingerprint_before: str = ""
    fingerprint_after: str | None = None


class SaveResult(BaseModel):
    """Outcome of writing a workbook payload to disk."""

    path: str
    fingerprint: str
    size: int = 0
    backup_path: str | None = None
    pruned_backups: list[str] = Field(default_factory=list)
