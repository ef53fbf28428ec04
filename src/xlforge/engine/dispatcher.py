"""Response envelope helpers and exit code mapping."""

from __future__ import annotations

import sys
from typing import Any

import orjson

from xlforge.contracts.common import (
    ErrorDetail,
    Metrics,
    ResponseEnvelope,
    Target,
    WarningDetail,
)
from xlforge.contracts.responses import PlanResult

EXIT_CODES = {
    "success": 0,
    "validation": 10,
    "protection": 20,
    "conflict": 40,
    "io": 50,
    "ai": 60,
    "internal": 90,
}

# Every error code a command can emit, by exit category.
ERROR_CATEGORIES: dict[str, str] = {
    "ERR_PLAN_INVALID": "validation",
    "ERR_PLAN_PARSE": "validation",
    "ERR_SHEET_NOT_FOUND": "validation",
    "ERR_INVALID_ARGUMENT": "validation",
    "ERR_USAGE": "validation",
    "ERR_POLICY_VIOLATION": "protection",
    "ERR_PLAN_STALE": "conflict",
    "ERR_WORKBOOK_NOT_FOUND": "io",
    "ERR_WORKBOOK_CORRUPT": "io",
    "ERR_FILE_EXISTS": "io",
    "ERR_LOCK_HELD": "io",
    "ERR_SAVE_FAILED": "io",
    "ERR_AI_CONFIG": "ai",
    "ERR_AI_REQUEST": "ai",
    "ERR_INTERNAL": "internal",
}


def success_envelope(
    command: str,
    result: Any,
    *,
    target: Target | None = None,
    changes: list | None = None,
    warnings: list | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    return ResponseEnvelope(
        command=command,
        target=target or Target(),
        result=result,
        changes=changes or [],
        warnings=warnings or [],
        metrics=Metrics(duration_ms=duration_ms),
    )


def error_envelope(
    command: str,
    code: str,
    message: str,
    *,
    target: Target | None = None,
    details: dict | None = None,
    duration_ms: int = 0,
) -> ResponseEnvelope:
    """Failed command with a single error; ``code`` should be in ERROR_CATEGORIES."""
    return ResponseEnvelope(
        ok=False,
        command=command,
        target=target or Target(),
        errors=[ErrorDetail(code=code, message=message, details=details)],
        metrics=Metrics(duration_ms=duration_ms),
    )


def step_warnings(result: PlanResult) -> list[WarningDetail]:
    """One STEP_SKIPPED warning per failed step of an executed plan."""
    skipped = [o for o in result.outcomes if not o.ok]
    return [
        WarningDetail(code="STEP_SKIPPED", message=message, path=f"steps[{outcome.index - 1}]")
        for outcome, message in zip(skipped, result.failures)
    ]


def output_json(envelope: ResponseEnvelope) -> str:
    return orjson.dumps(envelope.model_dump(mode="json"), option=orjson.OPT_INDENT_2).decode()


def print_response(envelope: ResponseEnvelope) -> None:
    """Write the envelope to stdout; stderr is reserved for events and prompts."""
    sys.stdout.write(output_json(envelope) + "\n")


def exit_code_for(envelope: ResponseEnvelope) -> int:
    """Exit code for the first error; unknown codes count as internal."""
    if envelope.ok:
        return EXIT_CODES["success"]
    if not envelope.errors:
        return EXIT_CODES["internal"]
    category = ERROR_CATEGORIES.get(envelope.errors[0].code.upper(), "internal")
    return EXIT_CODES[category]
