"""Pydantic models for steps, plans, payloads, and responses."""

from xlforge.contracts.common import (
    ChangeRecord,
    ErrorDetail,
    Metrics,
    ResponseEnvelope,
    SessionState,
    Target,
    WarningDetail,
)
from xlforge.contracts.plans import (
    Plan,
    PlanParseError,
    Step,
    StepError,
    parse_step,
)
from xlforge.contracts.responses import (
    ApplyResult,
    PlanResult,
    SaveResult,
    SheetMeta,
    StepOutcome,
    ValidationResult,
    WorkbookPayload,
)

__all__ = [
    "ApplyResult",
    "ChangeRecord",
    "ErrorDetail",
    "Metrics",
    "Plan",
    "PlanParseError",
    "PlanResult",
    "ResponseEnvelope",
    "SaveResult",
    "SessionState",
    "SheetMeta",
    "Step",
    "StepError",
    "StepOutcome",
    "Target",
    "ValidationResult",
    "WarningDetail",
    "WorkbookPayload",
    "parse_step",
]
