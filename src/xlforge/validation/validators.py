"""Pre-flight checks for plans against the grid they will be applied to.

The checks simulate the plan step by step, so indices are judged against
the grid each step will actually see. Failing checks are advisory: the
executor still applies every step it can.
"""

from __future__ import annotations

from typing import Any, Sequence

from xlforge.contracts.plans import Plan, StepError
from xlforge.contracts.responses import ValidationResult
from xlforge.engine.grid import grid_fingerprint, normalize
from xlforge.engine.steps import apply_step, step_label


def check_fingerprint(grid: Sequence[Sequence[Any]], plan: Plan) -> dict[str, Any] | None:
    """Compare the plan's recorded fingerprint with the grid's current one."""
    if not plan.fingerprint:
        return None
    actual = grid_fingerprint(grid)
    ok = plan.fingerprint == actual
    return {
        "type": "fingerprint_match",
        "passed": ok,
        "expected": plan.fingerprint,
        "actual": actual,
        "message": "Grid unchanged since plan was generated" if ok
        else "Grid changed since plan was generated; row and column indices may be stale",
    }


def validate_plan(grid: Sequence[Sequence[Any]], plan: Plan) -> ValidationResult:
    checks: list[dict[str, Any]] = []

    fp_check = check_fingerprint(grid, plan)
    if fp_check is not None:
        checks.append(fp_check)

    if not plan.steps:
        checks.append({"type": "plan_not_empty", "passed": False, "message": "Plan has no steps"})

    current = normalize(grid)
    for index, step in enumerate(plan.steps, start=1):
        label = step_label(step)
        try:
            current = apply_step(current, step)
        except StepError as e:
            checks.append({
                "type": "step_valid",
                "index": index,
                "passed": False,
                "message": f"Step {index} ({label}) will be skipped: {e}",
            })
        else:
            checks.append({
                "type": "step_valid",
                "index": index,
                "passed": True,
                "message": f"Step {index} ({label}) is valid",
            })

    valid = all(c.get("passed", True) for c in checks)
    return ValidationResult(valid=valid, checks=checks)
