"""Policy engine: load and enforce xlforge-policy.yaml rules."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from xlforge.contracts.plans import Plan
from xlforge.io.fileops import read_text_safe

POLICY_FILENAME = "xlforge-policy.yaml"


class Policy:
    """Represents a loaded policy configuration.

    Example ``xlforge-policy.yaml``::

        protected_sheets: [Notes]
        allowed_actions: [set_cell, add_column, rename_column]
        max_steps: 20
    """

    def __init__(self, data: dict[str, Any]) -> None:
        self.protected_sheets: list[str] = list(data.get("protected_sheets") or [])
        self.allowed_actions: list[str] = list(data.get("allowed_actions") or [])
        self.max_steps: int | None = data.get("max_steps")

    @classmethod
    def load(cls, path: str | Path) -> "Policy":
        """Load policy from a YAML file."""
        data = yaml.safe_load(read_text_safe(path)) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Policy file must be a mapping: {path}")
        return cls(data)

    @classmethod
    def load_from_dir(cls, directory: str | Path) -> "Policy | None":
        """Load xlforge-policy.yaml from a directory. Returns None if absent."""
        path = Path(directory) / POLICY_FILENAME
        if path.exists():
            return cls.load(path)
        return None


def check_plan_policy(policy: Policy, plan: Plan, sheet: str) -> list[dict[str, Any]]:
    """Check a plan bound for ``sheet`` against policy rules. Returns violations."""
    violations: list[dict[str, Any]] = []

    if sheet in policy.protected_sheets:
        violations.append({
            "type": "protected_sheet",
            "severity": "error",
            "message": f"Sheet '{sheet}' is protected by policy",
        })

    if policy.allowed_actions:
        for index, step in enumerate(plan.steps, start=1):
            action = step.get("action") if isinstance(step, dict) else None
            if action not in policy.allowed_actions:
                violations.append({
                    "type": "action_not_allowed",
                    "severity": "error",
                    "index": index,
                    "message": f"Step {index} uses action '{action}', not allowed by policy",
                })

    if policy.max_steps is not None and len(plan.steps) > policy.max_steps:
        violations.append({
            "type": "max_steps",
            "severity": "error",
            "message": f"Plan has {len(plan.steps)} steps, exceeding limit of {policy.max_steps}",
        })

    return violations
