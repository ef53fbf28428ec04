"""stdio server mode: JSON line-delimited protocol over one edit session."""

from __future__ import annotations

import json
import sys
from typing import Any, TextIO

from xlforge.adapters.xlsx_store import load_workbook_payload, save_workbook_payload
from xlforge.ai.settings import get_settings
from xlforge.contracts.common import SessionState
from xlforge.contracts.plans import Plan
from xlforge.contracts.responses import WorkbookPayload
from xlforge.engine.session import EditSession


class StdioServer:
    """Simple JSON-RPC-like server over stdin/stdout.

    One :class:`EditSession` lives for the whole connection, so undo and redo
    span requests. Nothing reaches disk until ``save``.
    """

    def __init__(self) -> None:
        self.session: EditSession | None = None
        self.file: str | None = None

    def _require_session(self) -> EditSession:
        if self.session is None:
            raise RuntimeError("No workbook loaded; send 'load' first")
        return self.session

    def _state(self) -> dict[str, Any]:
        session = self._require_session()
        return SessionState(
            sheet=session.active,
            grid=session.grid,
            dirty=session.dirty,
            can_undo=session.history.can_undo,
            can_redo=session.history.can_redo,
        ).model_dump()

    def _load(self, args: dict[str, Any]) -> dict[str, Any]:
        if "payload" in args:
            payload = WorkbookPayload.model_validate(args["payload"])
        else:
            file = args.get("file", "")
            if not file:
                raise ValueError("Missing 'file' or 'payload' in args")
            payload = load_workbook_payload(file)
            self.file = file
        if self.session is None:
            self.session = EditSession.from_payload(payload)
        else:
            self.session.load(payload)
        return {"sheet_names": payload.sheet_names, **self._state()}

    def _edit(self, applied: bool) -> dict[str, Any]:
        return {"applied": applied, **self._state()}

    def handle_request(self, request: dict[str, Any]) -> dict[str, Any]:
        req_id = request.get("id", "")
        command = request.get("command", "")
        args = request.get("args", {}) or {}

        try:
            if command == "load":
                return {"id": req_id, "ok": True, "result": self._load(args)}

            elif command == "close":
                self.session = None
                self.file = None
                return {"id": req_id, "ok": True, "result": "closed"}

            session = self._require_session()

            if command == "sheet.switch":
                session.switch_sheet(args["sheet"])
                result = self._state()

            elif command == "cell.set":
                result = self._edit(session.set_cell(int(args["row"]), int(args["col"]), args.get("value", "")))

            elif command == "row.add":
                position = args.get("position")
                if position == "end":
                    position = None
                result = self._edit(session.add_row(position, args.get("values")))

            elif command == "row.delete":
                result = self._edit(session.delete_row(int(args["row"])))

            elif command == "col.add":
                result = self._edit(session.add_column(args.get("header", ""), args.get("position")))

            elif command == "col.delete":
                result = self._edit(session.delete_column(int(args["col"])))

            elif command == "plan.apply":
                plan = Plan.model_validate(args.get("plan") or {})
                plan_result = session.apply_plan(plan)
                result = {
                    "applied": plan_result.applied,
                    "failures": plan_result.failures,
                    **self._state(),
                }

            elif command == "undo":
                result = self._edit(session.undo())

            elif command == "redo":
                result = self._edit(session.redo())

            elif command == "payload":
                result = session.payload().model_dump(by_alias=True)

            elif command == "save":
                file = args.get("file") or self.file
                if not file:
                    raise ValueError("Missing 'file' in args")
                saved = save_workbook_payload(
                    file, session.payload(),
                    make_backup=args.get("backup", True),
                    keep_backups=get_settings().XLFORGE_KEEP_BACKUPS,
                )
                session.mark_saved()
                self.file = file
                result = saved.model_dump()

            else:
                return {"id": req_id, "ok": False, "error": f"Unknown command: {command}"}

            return {"id": req_id, "ok": True, "result": result}

        except KeyError as e:
            return {"id": req_id, "ok": False, "error": f"Not found or missing argument: {e}"}
        except Exception as e:
            return {"id": req_id, "ok": False, "error": str(e)}

    def run(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Main server loop: read JSON lines from stdin, write responses to stdout."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        for line in stdin:
            line = line.strip()
            if not line:
                continue
            try:
                request = json.loads(line)
            except json.JSONDecodeError as e:
                response = {"ok": False, "error": f"Invalid JSON: {e}"}
                stdout.write(json.dumps(response) + "\n")
                stdout.flush()
                continue

            response = self.handle_request(request)
            stdout.write(json.dumps(response, default=str) + "\n")
            stdout.flush()

        self.session = None
