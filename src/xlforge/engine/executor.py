"""Plan executor: thread a grid through an ordered list of steps."""

from __future__ import annotations

from typing import Any, Sequence

from xlforge.contracts.responses import PlanResult, StepOutcome
from xlforge.engine.grid import Grid, normalize
from xlforge.engine.steps import apply_step, step_label
from xlforge.observe.events import EventEmitter


def execute_plan(
    grid: Sequence[Sequence[Any]],
    steps: Sequence[Any],
    *,
    emitter: EventEmitter | None = None,
) -> PlanResult:
    """Apply ``steps`` in order, skipping any step that fails.

    A failing step leaves the grid exactly as it was before that step; the
    next step runs against that grid. The input grid is never modified.
    """
    emitter = emitter or EventEmitter()
    current: Grid = normalize(grid)
    outcomes: list[StepOutcome] = []
    failures: list[str] = []

    emitter.emit("plan.start", {"steps": len(steps)})
    for index, step in enumerate(steps, start=1):
        label = step_label(step)
        action = step.get("action") if isinstance(step, dict) else getattr(step, "action", None)
        action = None if action is None else str(action)
        try:
            current = apply_step(current, step)
        except Exception as e:
            message = f"Step {index} ({label}): {e}"
            failures.append(message)
            outcomes.append(StepOutcome(index=index, action=action, ok=False, message=str(e)))
            emitter.emit("step.failed", {"index": index, "action": action, "error": str(e)})
            continue
        outcomes.append(StepOutcome(index=index, action=action, ok=True, message=label))
        emitter.emit("step.applied", {"index": index, "action": action})

    applied = sum(1 for o in outcomes if o.ok)
    emitter.emit("plan.done", {"applied": applied, "failed": len(failures)})
    return PlanResult(grid=current, applied=applied, failures=failures, outcomes=outcomes)
