"""Tests for the step interpreter."""

from __future__ import annotations

import pytest

from xlforge.contracts.plans import StepError, parse_step
from xlforge.engine.steps import apply_step, cell_text, parse_number, step_label


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def test_cell_text():
    assert cell_text(None) == ""
    assert cell_text(True) == "true"
    assert cell_text(2.0) == "2"
    assert cell_text(2.5) == "2.5"
    assert cell_text(7) == "7"
    assert cell_text("x") == "x"


@pytest.mark.parametrize("raw,expected", [
    ("10", 10.0),
    (" 2.5kg", 2.5),
    ("-3", -3.0),
    (".5", 0.5),
    (4, 4.0),
    ("n/a", None),
    ("", None),
    (True, None),
    (None, None),
    ("1e999", None),
])
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


def test_step_label():
    assert step_label({"action": "sort", "description": "by age"}) == "sort: by age"
    assert step_label({"action": "sort"}) == "sort"
    assert step_label({}) == "unknown"
    assert step_label(parse_step({"action": "delete_row", "row": 1})) == "delete_row"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
def test_unknown_action():
    with pytest.raises(StepError, match="Unsupported action"):
        apply_step([["a"]], {"action": "explode"})


def test_step_must_be_object():
    with pytest.raises(StepError):
        apply_step([["a"]], ["set_cell"])


def test_missing_field():
    with pytest.raises(StepError, match="row"):
        apply_step([["a"]], {"action": "set_cell", "col": 0, "value": "x"})


def test_set_cell_requires_value():
    with pytest.raises(StepError, match="value"):
        apply_step([["Name", "Age"], ["Bob", "30"]], {"action": "set_cell", "row": 1, "col": 1})


def test_set_cell_explicit_null_clears():
    result = apply_step([["Name", "Age"], ["Bob", "30"]], {"action": "set_cell", "row": 1, "col": 1, "value": None})
    assert result == [["Name", "Age"], ["Bob", ""]]


def test_negative_index_rejected():
    with pytest.raises(StepError):
        apply_step([["a"], ["b"]], {"action": "delete_row", "row": -1})


def test_camel_case_aliases():
    step = parse_step({"action": "sort", "col": 0, "hasHeader": False})
    assert step.has_header is False
    step = parse_step({"action": "rename_column", "col": 0, "newName": "ID"})
    assert step.new_name == "ID"


def test_extra_keys_tolerated():
    result = apply_step([["a"]], {"action": "set_cell", "row": 0, "col": 0, "value": "b", "why": "because"})
    assert result == [["b"]]


# ---------------------------------------------------------------------------
# set_cell / add_row / delete_row
# ---------------------------------------------------------------------------
def test_set_cell_grows(people_grid):
    result = apply_step(people_grid, {"action": "set_cell", "row": 5, "col": 4, "value": "x"})
    assert len(result) == 6
    assert all(len(r) == 5 for r in result)
    assert result[5][4] == "x"


def test_set_cell_growth_capped(people_grid, monkeypatch):
    monkeypatch.setenv("XLFORGE_MAX_ROWS", "100")
    with pytest.raises(StepError, match="row limit"):
        apply_step(people_grid, {"action": "set_cell", "row": 100_000_000, "col": 0, "value": "x"})
    result = apply_step(people_grid, {"action": "set_cell", "row": 99, "col": 0, "value": "x"})
    assert len(result) == 100


def test_apply_step_leaves_input_untouched(people_grid):
    snapshot = [list(r) for r in people_grid]
    apply_step(people_grid, {"action": "set_cell", "row": 0, "col": 0, "value": "changed"})
    apply_step(people_grid, {"action": "sort", "col": 0})
    assert people_grid == snapshot


def test_add_row_positions(people_grid):
    appended = apply_step(people_grid, {"action": "add_row", "position": "end", "values": ["Dan", "19"]})
    assert appended[-1] == ["Dan", "19", ""]
    inserted = apply_step(people_grid, {"action": "add_row", "position": 1})
    assert inserted[1] == ["", "", ""]
    assert len(inserted) == 5


def test_add_row_negative_position(people_grid):
    with pytest.raises(StepError):
        apply_step(people_grid, {"action": "add_row", "position": -2})


def test_delete_row(people_grid):
    result = apply_step(people_grid, {"action": "delete_row", "row": 1})
    assert [r[0] for r in result] == ["Name", "alice", "Carol"]


def test_delete_row_out_of_range(five_row_grid):
    with pytest.raises(StepError, match="out of range"):
        apply_step(five_row_grid, {"action": "delete_row", "row": 999})


def test_delete_only_row_is_refused():
    assert apply_step([["only", "row"]], {"action": "delete_row", "row": 0}) == [["only", "row"]]


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------
def test_add_column_fill_and_values(people_grid):
    result = apply_step(people_grid, {"action": "add_column", "header": "Status", "fill": "Pending"})
    assert result[0][-1] == "Status"
    assert [r[-1] for r in result[1:]] == ["Pending"] * 3

    result = apply_step(people_grid, {"action": "add_column", "header": "N", "values": [1, None], "fill": "-"})
    assert [r[-1] for r in result] == ["N", 1, "-", "-"]


def test_add_column_default_header():
    result = apply_step([["a"], ["b"]], {"action": "add_column"})
    assert result == [["a", "New Column"], ["b", ""]]


def test_delete_column(people_grid):
    result = apply_step(people_grid, {"action": "delete_column", "col": 1})
    assert result[0] == ["Name", "City"]


def test_delete_only_column_is_refused():
    grid = [["a"], ["b"]]
    assert apply_step(grid, {"action": "delete_column", "col": 0}) == grid


def test_delete_column_out_of_range(people_grid):
    with pytest.raises(StepError):
        apply_step(people_grid, {"action": "delete_column", "col": 3})


def test_rename_column(people_grid):
    result = apply_step(people_grid, {"action": "rename_column", "col": 2, "newName": "Town"})
    assert result[0] == ["Name", "Age", "Town"]
    with pytest.raises(StepError):
        apply_step(people_grid, {"action": "rename_column", "col": 9, "newName": "X"})


def test_add_and_rename_together():
    grid = [["Name", "Age"], ["Bob", "30"]]
    grid = apply_step(grid, {"action": "add_column", "header": "Status", "fill": "Pending"})
    grid = apply_step(grid, {"action": "rename_column", "col": 0, "newName": "ID"})
    assert grid == [["ID", "Age", "Status"], ["Bob", "30", "Pending"]]


# ---------------------------------------------------------------------------
# sort
# ---------------------------------------------------------------------------
def test_sort_numeric_stable_without_header():
    grid = [["B", 2], ["A", 2], ["C", 1]]
    result = apply_step(grid, {"action": "sort", "col": 1, "direction": "asc", "hasHeader": False})
    assert result == [["C", 1], ["B", 2], ["A", 2]]


def test_sort_keeps_header(people_grid):
    result = apply_step(people_grid, {"action": "sort", "col": 0})
    assert result[0] == people_grid[0]
    # text comparison is case-sensitive: capitals first
    assert [r[0] for r in result[1:]] == ["Bob", "Carol", "alice"]


def test_sort_desc(people_grid):
    result = apply_step(people_grid, {"action": "sort", "col": 1, "direction": "desc"})
    assert [r[1] for r in result[1:]] == ["41", "30", "25"]


def test_sort_desc_keeps_ties_in_order():
    grid = [["k", "v"], ["a", 1], ["b", 1], ["c", 2]]
    result = apply_step(grid, {"action": "sort", "col": 1, "direction": "desc"})
    assert [r[0] for r in result[1:]] == ["c", "a", "b"]


def test_sort_mixed_types_compare_as_text():
    grid = [[10], ["9"], [2]]
    result = apply_step(grid, {"action": "sort", "col": 0, "hasHeader": False})
    assert result == [[2], [10], ["9"]]


# ---------------------------------------------------------------------------
# filter_delete
# ---------------------------------------------------------------------------
def test_filter_delete_equals(people_grid):
    result = apply_step(people_grid, {"action": "filter_delete", "col": 2, "operator": "equals", "value": "Paris"})
    assert [r[0] for r in result] == ["Name", "alice", "Carol"]


def test_filter_delete_empty(people_grid):
    result = apply_step(people_grid, {"action": "filter_delete", "col": 2, "operator": "empty"})
    assert [r[0] for r in result] == ["Name", "Bob", "Carol"]


def test_filter_delete_not_empty(people_grid):
    result = apply_step(people_grid, {"action": "filter_delete", "col": 2, "operator": "not_empty"})
    assert [r[0] for r in result] == ["Name", "alice"]


def test_filter_delete_contains(people_grid):
    result = apply_step(people_grid, {"action": "filter_delete", "col": 0, "operator": "contains", "value": "o"})
    assert [r[0] for r in result] == ["Name", "alice"]


def test_filter_delete_without_header(people_grid):
    result = apply_step(people_grid, {
        "action": "filter_delete", "col": 2, "operator": "equals", "value": "City", "hasHeader": False,
    })
    assert result[0][0] == "Bob"


def test_filter_delete_numeric_value():
    grid = [["n"], [5], [6]]
    result = apply_step(grid, {"action": "filter_delete", "col": 0, "operator": "equals", "value": 5})
    assert result == [["n"], [6]]


def test_filter_delete_unknown_operator(people_grid):
    with pytest.raises(StepError):
        apply_step(people_grid, {"action": "filter_delete", "col": 0, "operator": "greater_than", "value": 3})


# ---------------------------------------------------------------------------
# replace_all
# ---------------------------------------------------------------------------
def test_replace_all_single_column(people_grid):
    result = apply_step(people_grid, {"action": "replace_all", "col": 0, "find": "a", "replace": "A"})
    assert [r[0] for r in result] == ["NAme", "Alice", "CArol"]
    assert result[0][1] == "Age"


def test_replace_all_every_column_with_transform(people_grid):
    result = apply_step(people_grid, {"action": "replace_all", "col": -1, "transform": "uppercase"})
    assert result[0] == ["NAME", "AGE", "CITY"]
    assert result[2] == ["ALICE", "25", ""]


def test_replace_all_lowercase():
    result = apply_step([["ABC"]], {"action": "replace_all", "transform": "lowercase"})
    assert result == [["abc"]]


def test_replace_all_keeps_untouched_numbers():
    result = apply_step([["n"], [5], [10]], {"action": "replace_all", "col": 0, "find": "1", "replace": "2"})
    assert result == [["n"], [5], ["20"]]
    assert isinstance(result[1][0], int)


# ---------------------------------------------------------------------------
# multiply_column
# ---------------------------------------------------------------------------
def test_multiply_column():
    grid = [["Price"], ["10"], ["n/a"], [2.5], [""]]
    result = apply_step(grid, {"action": "multiply_column", "col": 0, "factor": 1.1})
    assert result[0] == ["Price"]
    assert result[1] == [11]
    assert isinstance(result[1][0], int)
    assert result[2] == ["n/a"]
    assert result[3] == [2.75]
    assert result[4] == [""]


def test_multiply_column_out_of_range():
    with pytest.raises(StepError):
        apply_step([["a"], ["1"]], {"action": "multiply_column", "col": 1, "factor": 2})
