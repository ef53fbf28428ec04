"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from openpyxl import Workbook

from xlforge.ai.settings import get_settings


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep real API keys and .env files out of the tests."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def people_grid() -> list[list]:
    return [
        ["Name", "Age", "City"],
        ["Bob", "30", "Paris"],
        ["alice", "25", ""],
        ["Carol", "41", "Berlin"],
    ]


@pytest.fixture()
def five_row_grid() -> list[list]:
    return [["h1", "h2"], ["a", 1], ["b", 2], ["c", 3], ["d", 4]]


@pytest.fixture()
def store_workbook(tmp_path: Path) -> Path:
    """Two-sheet workbook: a small Stores table and a Notes sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Stores"
    ws.append(["Store ID", "Store Name", "Target", "Status"])
    ws.append(["S001", "Downtown", 150000, "Review"])
    ws.append(["S002", "West Side", 120000, "Verified"])
    ws.append(["S003", "Northgate", 100000, None])

    ws2 = wb.create_sheet("Notes")
    ws2["A1"] = "Sheet Notes"

    path = tmp_path / "stores.xlsx"
    wb.save(str(path))
    wb.close()
    return path


@pytest.fixture()
def sample_plan() -> dict:
    return {
        "summary": "Add an Owner column and rename the first column",
        "steps": [
            {"action": "add_column", "header": "Owner", "fill": "TBD", "description": "Add Owner"},
            {"action": "rename_column", "col": 0, "newName": "ID"},
        ],
    }


@pytest.fixture()
def sample_plan_file(tmp_path: Path, sample_plan: dict) -> Path:
    plan_path = tmp_path / "plan.json"
    plan_path.write_text(json.dumps(sample_plan))
    return plan_path
