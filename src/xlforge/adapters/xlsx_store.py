"""openpyxl persistence: workbook files <-> ``WorkbookPayload``.

Only cell values travel; formatting and formulas' cached results beyond the
stored value are not preserved.
"""

from __future__ import annotations

import datetime as dt
from io import BytesIO
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl import Workbook

from xlforge.contracts.common import WorkbookCorruptError
from xlforge.contracts.responses import SaveResult, WorkbookPayload
from xlforge.io.fileops import (
    WorkbookLock,
    atomic_write,
    backup,
    fingerprint,
    prune_backups,
)

DEFAULT_KEEP_BACKUPS = 5

SAMPLE_SHEETS: dict[str, list[list[Any]]] = {
    "Stores": [
        ["Store ID", "Store Name", "Manager", "City", "Region", "Monthly Target ($)", "Actual Sales ($)", "Status"],
        ["S001", "Downtown Central", "Alice Johnson", "New York", "East", 150000, 142000, "Review"],
        ["S002", "West Side Mall", "Bob Martinez", "Los Angeles", "West", 120000, 135000, "Verified"],
        ["S003", "Northgate Plaza", "Carol White", "Chicago", "Midwest", 100000, 98000, "Review"],
        ["S004", "Eastfield Centre", "David Lee", "Houston", "South", 110000, 115000, "Verified"],
        ["S005", "Riverside Market", "Eva Patel", "Phoenix", "West", 90000, 87000, "Review"],
        ["S006", "Lakeside Store", "Frank Brown", "Philadelphia", "East", 130000, 128000, "Pending"],
        ["S007", "Summit Square", "Grace Kim", "San Antonio", "South", 95000, 101000, "Verified"],
        ["S008", "Metro Junction", "Henry Davis", "San Diego", "West", 105000, 99000, "Pending"],
        ["S009", "Pinewood Corner", "Iris Chen", "Dallas", "South", 115000, 120000, "Verified"],
        ["S010", "Cedarwood Mall", "James Wilson", "San Jose", "West", 125000, 118000, "Review"],
    ],
    "Notes": [
        ["Sheet Notes"],
        [""],
        ["This file is managed via the xlforge editor."],
        ["Store managers can verify and update their information through the editor."],
    ],
}


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    return value


def _is_blank(row: list[Any]) -> bool:
    return all(v == "" for v in row)


def load_workbook_payload(path: str | Path) -> WorkbookPayload:
    """Read every sheet's values, header row included.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        WorkbookCorruptError: the file cannot be parsed as a workbook.
    """
    p = Path(path).resolve()
    if not p.exists():
        raise FileNotFoundError(f"Workbook not found: {p}")
    try:
        wb = openpyxl.load_workbook(str(p), data_only=True)
    except Exception as e:
        raise WorkbookCorruptError(f"Cannot open workbook {p}: {e}") from e
    try:
        sheets: dict[str, list[list[Any]]] = {}
        for ws in wb.worksheets:
            rows = [[_cell_value(v) for v in row] for row in ws.iter_rows(values_only=True)]
            while rows and _is_blank(rows[-1]):
                rows.pop()
            sheets[ws.title] = rows
        return WorkbookPayload(sheet_names=list(wb.sheetnames), sheets=sheets)
    finally:
        wb.close()


def payload_to_bytes(payload: WorkbookPayload) -> bytes:
    wb = Workbook()
    wb.remove(wb.active)
    for name in payload.sheet_names:
        ws = wb.create_sheet(title=name)
        for row in payload.sheets.get(name) or []:
            ws.append([None if v == "" else v for v in row])
    buf = BytesIO()
    wb.save(buf)
    wb.close()
    return buf.getvalue()


def save_workbook_payload(
    path: str | Path,
    payload: WorkbookPayload,
    *,
    make_backup: bool = True,
    keep_backups: int = DEFAULT_KEEP_BACKUPS,
    lock_timeout: float = 0,
) -> SaveResult:
    """Write ``payload`` to ``path`` atomically under the sidecar lock.

    The previous file is copied to a backup first; only the newest
    ``keep_backups`` backups are kept. Errors propagate unchanged.
    """
    p = Path(path).resolve()
    data = payload_to_bytes(payload)
    backup_path = None
    pruned: list[str] = []
    with WorkbookLock(p, timeout=lock_timeout):
        if make_backup and p.exists():
            backup_path = backup(p)
            pruned = prune_backups(p, keep_backups)
        atomic_write(p, data)
    return SaveResult(
        path=str(p),
        fingerprint=fingerprint(p),
        size=p.stat().st_size,
        backup_path=backup_path,
        pruned_backups=pruned,
    )


def create_sample_workbook(path: str | Path) -> SaveResult:
    """Write the sample store workbook. Raises FileExistsError if ``path`` exists."""
    p = Path(path).resolve()
    if p.exists():
        raise FileExistsError(f"File already exists: {p}")
    payload = WorkbookPayload(sheet_names=list(SAMPLE_SHEETS), sheets=SAMPLE_SHEETS)
    return save_workbook_payload(p, payload, make_backup=False)
