"""Tests for plan pre-flight validation and policy enforcement."""

from __future__ import annotations

from pathlib import Path

import pytest

from xlforge.contracts.plans import Plan
from xlforge.engine.grid import grid_fingerprint
from xlforge.validation.policy import POLICY_FILENAME, Policy, check_plan_policy
from xlforge.validation.validators import check_fingerprint, validate_plan


def test_valid_plan(people_grid):
    result = validate_plan(people_grid, Plan(steps=[
        {"action": "add_column", "header": "Score"},
        {"action": "rename_column", "col": 3, "newName": "Points"},
    ]))
    assert result.valid
    assert [c["passed"] for c in result.checks] == [True, True]


def test_invalid_steps_reported(people_grid):
    result = validate_plan(people_grid, Plan(steps=[
        {"action": "delete_row", "row": 42},
        {"action": "shuffle"},
        {"action": "sort", "col": 0},
    ]))
    assert not result.valid
    step_checks = [c for c in result.checks if c["type"] == "step_valid"]
    assert [c["passed"] for c in step_checks] == [False, False, True]
    assert "will be skipped" in step_checks[0]["message"]


def test_validation_simulates_earlier_steps(people_grid):
    result = validate_plan(people_grid, Plan(steps=[
        {"action": "delete_column", "col": 2},
        {"action": "rename_column", "col": 2, "newName": "Gone"},
    ]))
    assert [c["passed"] for c in result.checks] == [True, False]


def test_empty_plan_is_invalid(people_grid):
    result = validate_plan(people_grid, Plan(steps=[]))
    assert not result.valid
    assert result.checks[0]["type"] == "plan_not_empty"


def test_fingerprint_check(people_grid):
    assert check_fingerprint(people_grid, Plan(steps=[])) is None

    fresh = Plan(steps=[], fingerprint=grid_fingerprint(people_grid))
    assert check_fingerprint(people_grid, fresh)["passed"] is True

    changed = [list(r) for r in people_grid]
    changed[1][0] = "Robert"
    stale = check_fingerprint(changed, fresh)
    assert stale["passed"] is False
    assert "stale" in stale["message"]


def test_stale_plan_fails_validation(people_grid):
    plan = Plan(steps=[{"action": "sort", "col": 0}], fingerprint="sha256:deadbeef")
    result = validate_plan(people_grid, plan)
    assert not result.valid
    assert result.checks[0]["type"] == "fingerprint_match"


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------
def _write_policy(directory: Path, text: str) -> Path:
    path = directory / POLICY_FILENAME
    path.write_text(text)
    return path


def test_policy_absent(tmp_path: Path):
    assert Policy.load_from_dir(tmp_path) is None


def test_protected_sheet(tmp_path: Path):
    _write_policy(tmp_path, "protected_sheets: [Notes]\n")
    policy = Policy.load_from_dir(tmp_path)
    plan = Plan(steps=[{"action": "sort", "col": 0}])
    assert check_plan_policy(policy, plan, "Stores") == []
    violations = check_plan_policy(policy, plan, "Notes")
    assert [v["type"] for v in violations] == ["protected_sheet"]


def test_allowed_actions_and_max_steps(tmp_path: Path):
    _write_policy(tmp_path, "allowed_actions: [set_cell, sort]\nmax_steps: 2\n")
    policy = Policy.load_from_dir(tmp_path)
    plan = Plan(steps=[
        {"action": "sort", "col": 0},
        {"action": "delete_row", "row": 1},
        {"action": "set_cell", "row": 0, "col": 0, "value": "x"},
    ])
    violations = check_plan_policy(policy, plan, "Stores")
    assert {v["type"] for v in violations} == {"action_not_allowed", "max_steps"}
    assert next(v for v in violations if v["type"] == "action_not_allowed")["index"] == 2


def test_policy_must_be_mapping(tmp_path: Path):
    path = _write_policy(tmp_path, "- just\n- a list\n")
    with pytest.raises(ValueError):
        Policy.load(path)


def test_empty_policy_allows_everything(tmp_path: Path):
    _write_policy(tmp_path, "")
    policy = Policy.load_from_dir(tmp_path)
    assert check_plan_policy(policy, Plan(steps=[{"action": "sort", "col": 0}] * 50), "Any") == []
