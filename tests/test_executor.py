"""Tests for the plan executor."""

from __future__ import annotations

import io
import json

from xlforge.engine.executor import execute_plan
from xlforge.observe.events import EventEmitter, TraceRecorder


def test_applies_steps_in_order():
    grid = [["Name", "Age"], ["Bob", "30"]]
    result = execute_plan(grid, [
        {"action": "add_column", "header": "Status", "fill": "Pending"},
        {"action": "rename_column", "col": 0, "newName": "ID"},
    ])
    assert result.grid == [["ID", "Age", "Status"], ["Bob", "30", "Pending"]]
    assert result.applied == 2
    assert result.failures == []


def test_failing_step_is_isolated(five_row_grid):
    result = execute_plan(five_row_grid, [
        {"action": "set_cell", "row": 1, "col": 0, "value": "A"},
        {"action": "delete_row", "row": 999},
        {"action": "set_cell", "row": 2, "col": 0, "value": "B"},
    ])
    assert len(result.failures) == 1
    assert result.failures[0].startswith("Step 2 (delete_row)")
    assert result.applied == 2
    assert result.grid[1][0] == "A"
    assert result.grid[2][0] == "B"
    assert len(result.grid) == 5


def test_single_out_of_range_delete(five_row_grid):
    result = execute_plan(five_row_grid, [{"action": "delete_row", "row": 999}])
    assert result.grid == five_row_grid
    assert len(result.failures) == 1


def test_malformed_steps_are_reported():
    result = execute_plan([["a"]], [
        "not a step",
        {"action": "bogus"},
        {"action": "set_cell", "col": 0},
        {"action": "set_cell", "row": 0, "col": 0, "value": "ok"},
    ])
    assert result.grid == [["ok"]]
    assert result.applied == 1
    assert len(result.failures) == 3
    assert [o.ok for o in result.outcomes] == [False, False, False, True]
    assert result.outcomes[1].action == "bogus"


def test_valueless_set_cell_is_skipped():
    grid = [["Name", "Age"], ["Bob", "30"]]
    result = execute_plan(grid, [{"action": "set_cell", "row": 1, "col": 1}])
    assert result.grid == [["Name", "Age"], ["Bob", "30"]]
    assert result.applied == 0
    assert len(result.failures) == 1
    assert "value" in result.failures[0]


def test_later_steps_see_earlier_results():
    result = execute_plan([["h"], ["x"]], [
        {"action": "add_row", "values": ["y"]},
        {"action": "delete_row", "row": 2},
    ])
    assert result.grid == [["h"], ["x"]]
    assert result.failures == []


def test_input_not_mutated(people_grid):
    snapshot = [list(r) for r in people_grid]
    execute_plan(people_grid, [{"action": "sort", "col": 0, "direction": "desc"}])
    assert people_grid == snapshot


def test_empty_plan(people_grid):
    result = execute_plan(people_grid, [])
    assert result.grid == people_grid
    assert result.applied == 0


def test_events_emitted():
    stream = io.StringIO()
    recorder = TraceRecorder()
    emitter = EventEmitter(enabled=True, recorder=recorder, stream=stream)
    execute_plan([["a"], ["b"]], [
        {"action": "delete_row", "row": 1},
        {"action": "delete_row", "row": 7},
    ], emitter=emitter)
    events = [json.loads(line)["event"] for line in stream.getvalue().splitlines()]
    assert events == ["plan.start", "step.applied", "step.failed", "plan.done"]
    assert [e["category"] for e in recorder.entries] == events
