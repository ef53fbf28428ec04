"""Typer CLI application: top-level commands and subcommand groups."""

from __future__ import annotations

import math
from pathlib import Path
from typing import Annotated, Any, Optional

import orjson
import portalocker
import typer

import xlforge
from xlforge.adapters.xlsx_store import (
    create_sample_workbook,
    load_workbook_payload,
    save_workbook_payload,
)
from xlforge.ai.settings import get_settings
from xlforge.contracts.common import (
    ChangeRecord,
    ResponseEnvelope,
    Target,
    WarningDetail,
    WorkbookCorruptError,
)
from xlforge.contracts.plans import Plan, PlanParseError
from xlforge.contracts.responses import ApplyResult, SaveResult
from xlforge.diff.differ import diff_grids
from xlforge.engine.dispatcher import (
    error_envelope,
    exit_code_for,
    print_response,
    step_warnings,
    success_envelope,
)
from xlforge.engine.grid import cell_ref, column_label, grid_fingerprint
from xlforge.engine.session import EditSession
from xlforge.engine.steps import step_label
from xlforge.io.fileops import read_text_safe
from xlforge.observe.events import EventEmitter, Timer, TraceRecorder
from xlforge.validation.policy import Policy, check_plan_policy
from xlforge.validation.validators import check_fingerprint, validate_plan

# ---------------------------------------------------------------------------
# App & subcommand groups
# ---------------------------------------------------------------------------

_MAIN_HELP = """\
Review and apply AI-generated edit plans to spreadsheet workbooks (.xlsx).

**Recommended workflow:**  ask → review → apply → undo if needed

1. `xlforge sheet show -f data.xlsx`  — look at the active sheet
2. `xlforge ask -f data.xlsx -i "Add a Status column with value Pending"`  — get a plan, confirm, apply
3. `xlforge plan validate -f data.xlsx --plan plan.json`  — pre-flight a saved plan
4. `xlforge apply -f data.xlsx --plan plan.json --dry-run`  — preview the cell diff
5. `xlforge apply -f data.xlsx --plan plan.json`  — apply and save (backup on by default)

**Every command** returns a JSON `ResponseEnvelope`:
`{"ok": bool, "command": "...", "result": {...}, "errors": [...], "warnings": [...], "metrics": {"duration_ms": N}}`

Steps that cannot be applied are skipped and reported as `STEP_SKIPPED` warnings;
the rest of the plan still applies.

**Exit codes:** 0=success, 10=validation, 20=policy, 40=conflict, 50=io, 60=ai, 90=internal
"""

_PLAN_EPILOG = """\
**Plans** are JSON objects `{"steps": [...], "summary": "..."}`; raw model output
wrapped in code fences is accepted.

`xlforge plan show --plan plan.json`

`xlforge plan prompt -f data.xlsx -s Stores`  — the system prompt sent to the model

`xlforge plan validate -f data.xlsx --plan plan.json`
"""

_EDIT_EPILOG = """\
Rows and columns are zero-based indices. Row 0 is the header row.
Deleting the last remaining row or column is refused silently.
"""


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(xlforge.__version__)
        raise typer.Exit()


app = typer.Typer(
    name="xlforge",
    help=_MAIN_HELP,
    no_args_is_help=True,
    rich_markup_mode="markdown",
)

sheet_app = typer.Typer(
    name="sheet", help="List and show sheet grids.",
    no_args_is_help=True, rich_markup_mode="markdown",
)
cell_app = typer.Typer(
    name="cell", help="Edit individual cells.", epilog=_EDIT_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
row_app = typer.Typer(
    name="row", help="Insert and delete rows.", epilog=_EDIT_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
col_app = typer.Typer(
    name="col", help="Insert and delete columns.", epilog=_EDIT_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
plan_app = typer.Typer(
    name="plan", help="Inspect, prompt for, and validate edit plans.",
    epilog=_PLAN_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)

app.add_typer(sheet_app)
app.add_typer(cell_app)
app.add_typer(row_app)
app.add_typer(col_app)
app.add_typer(plan_app)


@app.callback(invoke_without_command=True)
def main_callback(
    version: Annotated[
        bool, typer.Option("--version", "-V", help="Print version and exit.", is_eager=True)
    ] = False,
) -> None:
    if version:
        _version_callback(True)


# Type aliases for common options
FilePath = Annotated[str, typer.Option("--file", "-f", help="Path to .xlsx workbook file")]
SheetOpt = Annotated[Optional[str], typer.Option("--sheet", "-s", help="Sheet name (default: first sheet)")]
PlanPath = Annotated[str, typer.Option("--plan", "-p", help="Path to plan JSON file")]
BackupFlag = Annotated[bool, typer.Option("--backup/--no-backup", help="Back up the file before writing (default: on)")]
EventsFlag = Annotated[bool, typer.Option("--events", help="Emit NDJSON lifecycle events to stderr")]
TraceOpt = Annotated[Optional[str], typer.Option("--trace", help="Write a JSON trace of plan execution to this path")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _emit(envelope, code=None):
    print_response(envelope)
    raise typer.Exit(code if code is not None else exit_code_for(envelope))


def _open_session(file: str, cmd: str, sheet: str | None = None, *, emitter: EventEmitter | None = None) -> EditSession:
    """Load the workbook into a session, or emit an error envelope."""
    try:
        payload = load_workbook_payload(file)
    except FileNotFoundError:
        _emit(error_envelope(cmd, "ERR_WORKBOOK_NOT_FOUND", f"File not found: {file}", target=Target(file=file)))
    except WorkbookCorruptError as e:
        _emit(error_envelope(cmd, "ERR_WORKBOOK_CORRUPT", str(e), target=Target(file=file)))
    if not payload.sheet_names:
        _emit(error_envelope(cmd, "ERR_WORKBOOK_CORRUPT", "Workbook has no sheets", target=Target(file=file)))
    session = EditSession.from_payload(payload, emitter=emitter)
    if sheet:
        try:
            session.switch_sheet(sheet)
        except KeyError:
            _emit(error_envelope(
                cmd, "ERR_SHEET_NOT_FOUND", f"Sheet not found: {sheet}",
                target=Target(file=file, sheet=sheet),
                details={"available": payload.sheet_names},
            ))
    return session


def _save_or_emit(file: str, session: EditSession, cmd: str, *, do_backup: bool, emitter: EventEmitter | None = None) -> SaveResult:
    try:
        saved = save_workbook_payload(
            file, session.payload(),
            make_backup=do_backup,
            keep_backups=get_settings().XLFORGE_KEEP_BACKUPS,
        )
    except portalocker.LockException:
        _emit(error_envelope(cmd, "ERR_LOCK_HELD", f"File is locked by another process: {file}", target=Target(file=file)))
    except (OSError, ValueError) as e:
        _emit(error_envelope(cmd, "ERR_SAVE_FAILED", f"Could not save file: {e}", target=Target(file=file)))
    session.mark_saved()
    if emitter is not None:
        emitter.emit("workbook.saved", {"path": saved.path, "size": saved.size})
    return saved


def _load_plan(plan_path: str) -> Plan:
    """Read a plan file. Accepts plain JSON or raw model output with code fences."""
    from xlforge.ai.planner import extract_plan

    try:
        text = read_text_safe(plan_path)
    except OSError as e:
        raise ValueError(f"Cannot read plan: {e}") from e
    try:
        return extract_plan(text)
    except PlanParseError as e:
        raise ValueError(f"Cannot parse plan: {e}") from e


def _load_plan_or_emit(plan_path: str, cmd: str, file: str | None = None) -> Plan:
    try:
        return _load_plan(plan_path)
    except ValueError as e:
        _emit(error_envelope(cmd, "ERR_PLAN_INVALID", str(e), target=Target(file=file)))


def _parse_json_option(raw: str | None, option: str, cmd: str) -> Any:
    if raw is None:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        _emit(error_envelope(cmd, "ERR_INVALID_ARGUMENT", f"{option} must be valid JSON: {e}"))


def _coerce_value(raw: str, cell_type: str) -> Any:
    if cell_type == "text":
        return raw
    if cell_type == "number":
        number = float(raw)
        if not math.isfinite(number):
            raise ValueError(raw)
        return int(number) if number.is_integer() else number
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        number = float(raw)
    except ValueError:
        return raw
    return number if math.isfinite(number) else raw


def _make_emitter(events: bool, trace: str | None) -> tuple[EventEmitter, TraceRecorder | None]:
    recorder = TraceRecorder() if trace else None
    return EventEmitter(enabled=events, recorder=recorder), recorder


def _edit_and_save(
    file: str,
    cmd: str,
    sheet: str | None,
    edit,
    *,
    do_backup: bool,
    change: ChangeRecord,
) -> None:
    """Shared body of the direct-edit commands."""
    with Timer() as t:
        session = _open_session(file, cmd, sheet)
        before = session.grid
        try:
            applied = edit(session)
        except ValueError as e:
            _emit(error_envelope(cmd, "ERR_INVALID_ARGUMENT", str(e), target=Target(file=file, sheet=session.active)))
        saved = _save_or_emit(file, session, cmd, do_backup=do_backup) if applied else None

    change.before = {"rows": len(before), "cols": len(before[0]) if before else 0}
    change.after = {"rows": len(session.grid), "cols": len(session.grid[0]) if session.grid else 0}
    warnings = [] if applied else [WarningDetail(code="EDIT_REFUSED", message="Edit left the grid unchanged")]
    env = success_envelope(
        cmd,
        {
            "applied": applied,
            "sheet": session.active,
            "fingerprint_after": saved.fingerprint if saved else None,
            "backup_path": saved.backup_path if saved else None,
        },
        target=Target(file=file, sheet=session.active),
        changes=[change] if applied else [],
        warnings=warnings,
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlforge version / init
# ---------------------------------------------------------------------------
@app.command()
def version():
    """Print the xlforge version.

    Example: `xlforge version`
    """
    _emit(success_envelope("version", {"version": xlforge.__version__}))


@app.command()
def init(
    file: FilePath,
):
    """Create a sample store workbook to try the editor on.

    Example: `xlforge init -f store-data.xlsx`
    """
    with Timer() as t:
        try:
            saved = create_sample_workbook(file)
        except FileExistsError as e:
            _emit(error_envelope("init", "ERR_FILE_EXISTS", str(e), target=Target(file=file)))
    _emit(success_envelope("init", saved.model_dump(), target=Target(file=file), duration_ms=t.elapsed_ms))


# ---------------------------------------------------------------------------
# xlforge sheet ls / show
# ---------------------------------------------------------------------------
@sheet_app.command("ls")
def sheet_ls(
    file: FilePath,
):
    """List sheets with their grid dimensions.

    Example: `xlforge sheet ls -f data.xlsx`
    """
    with Timer() as t:
        session = _open_session(file, "sheet.ls")
        sheets = session.workbook.list_sheets()
    _emit(success_envelope(
        "sheet.ls", [s.model_dump() for s in sheets],
        target=Target(file=file), duration_ms=t.elapsed_ms,
    ))


@sheet_app.command("show")
def sheet_show(
    file: FilePath,
    sheet: SheetOpt = None,
    limit: Annotated[Optional[int], typer.Option("--limit", "-n", help="Show at most N rows")] = None,
):
    """Show a sheet's grid with column labels.

    Example: `xlforge sheet show -f data.xlsx -s Stores -n 10`
    """
    with Timer() as t:
        session = _open_session(file, "sheet.show", sheet)
        grid = session.grid
        rows = grid[:limit] if limit is not None else grid
        width = len(grid[0]) if grid else 0
    _emit(success_envelope(
        "sheet.show",
        {
            "sheet": session.active,
            "rows": len(grid),
            "cols": width,
            "columns": [column_label(i) for i in range(width)],
            "fingerprint": grid_fingerprint(grid),
            "data": rows,
            "truncated": len(rows) < len(grid),
        },
        target=Target(file=file, sheet=session.active),
        duration_ms=t.elapsed_ms,
    ))


# ---------------------------------------------------------------------------
# Direct edits
# ---------------------------------------------------------------------------
@cell_app.command("set")
def cell_set_cmd(
    file: FilePath,
    row: Annotated[int, typer.Option("--row", "-r", help="Zero-based row index")],
    col: Annotated[int, typer.Option("--col", "-c", help="Zero-based column index")],
    value: Annotated[str, typer.Option("--value", "-v", help="Cell value")],
    sheet: SheetOpt = None,
    cell_type: Annotated[str, typer.Option("--type", help="auto, text, or number")] = "auto",
    do_backup: BackupFlag = True,
):
    """Set one cell, growing the grid if needed. Mutating.

    Example: `xlforge cell set -f data.xlsx -s Stores -r 1 -c 7 -v Verified`
    """
    if cell_type not in ("auto", "text", "number"):
        _emit(error_envelope("cell.set", "ERR_INVALID_ARGUMENT", f"Unknown --type: {cell_type}"))
    try:
        coerced = _coerce_value(value, cell_type)
    except ValueError:
        _emit(error_envelope("cell.set", "ERR_INVALID_ARGUMENT", f"Not a number: {value}"))
    ref = cell_ref(row, col) if row >= 0 and col >= 0 else f"({row},{col})"
    _edit_and_save(
        file, "cell.set", sheet,
        lambda s: s.set_cell(row, col, coerced),
        do_backup=do_backup,
        change=ChangeRecord(type="cell.set", target=ref, after={"value": coerced}),
    )


@row_app.command("add")
def row_add_cmd(
    file: FilePath,
    sheet: SheetOpt = None,
    position: Annotated[Optional[int], typer.Option("--position", help="Insert before this row (default: append)")] = None,
    values: Annotated[Optional[str], typer.Option("--values", help="JSON array of cell values")] = None,
    do_backup: BackupFlag = True,
):
    """Insert a row. Mutating.

    Example: `xlforge row add -f data.xlsx --values '["S011", "New Store"]'`
    """
    parsed = _parse_json_option(values, "--values", "row.add")
    if parsed is not None and not isinstance(parsed, list):
        _emit(error_envelope("row.add", "ERR_INVALID_ARGUMENT", "--values must be a JSON array"))
    _edit_and_save(
        file, "row.add", sheet,
        lambda s: s.add_row(position, parsed),
        do_backup=do_backup,
        change=ChangeRecord(type="row.add", target="end" if position is None else str(position)),
    )


@row_app.command("delete")
def row_delete_cmd(
    file: FilePath,
    row: Annotated[int, typer.Option("--row", "-r", help="Zero-based row index")],
    sheet: SheetOpt = None,
    do_backup: BackupFlag = True,
):
    """Delete a row. The last remaining row is never deleted. Mutating.

    Example: `xlforge row delete -f data.xlsx -r 3`
    """
    _edit_and_save(
        file, "row.delete", sheet,
        lambda s: s.delete_row(row),
        do_backup=do_backup,
        change=ChangeRecord(type="row.delete", target=str(row)),
    )


@col_app.command("add")
def col_add_cmd(
    file: FilePath,
    sheet: SheetOpt = None,
    header: Annotated[str, typer.Option("--header", help="Header cell for row 0")] = "",
    position: Annotated[Optional[int], typer.Option("--position", help="Insert before this column (default: append)")] = None,
    do_backup: BackupFlag = True,
):
    """Insert an empty column. Mutating.

    Example: `xlforge col add -f data.xlsx --header Notes`
    """
    _edit_and_save(
        file, "col.add", sheet,
        lambda s: s.add_column(header, position),
        do_backup=do_backup,
        change=ChangeRecord(type="col.add", target="end" if position is None else column_label(max(position, 0))),
    )


@col_app.command("delete")
def col_delete_cmd(
    file: FilePath,
    col: Annotated[int, typer.Option("--col", "-c", help="Zero-based column index")],
    sheet: SheetOpt = None,
    do_backup: BackupFlag = True,
):
    """Delete a column. The last remaining column is never deleted. Mutating.

    Example: `xlforge col delete -f data.xlsx -c 2`
    """
    _edit_and_save(
        file, "col.delete", sheet,
        lambda s: s.delete_column(col),
        do_backup=do_backup,
        change=ChangeRecord(type="col.delete", target=column_label(col) if col >= 0 else str(col)),
    )


# ---------------------------------------------------------------------------
# xlforge plan show / prompt / validate
# ---------------------------------------------------------------------------
@plan_app.command("show")
def plan_show(
    plan_path: PlanPath,
):
    """Display a plan's steps and summary.

    Example: `xlforge plan show --plan plan.json`
    """
    plan = _load_plan_or_emit(plan_path, "plan.show")
    steps = [
        {"index": i, "label": step_label(step), "step": step}
        for i, step in enumerate(plan.steps, start=1)
    ]
    _emit(success_envelope("plan.show", {
        "summary": plan.summary,
        "fingerprint": plan.fingerprint,
        "steps": steps,
    }))


@plan_app.command("prompt")
def plan_prompt(
    file: FilePath,
    sheet: SheetOpt = None,
):
    """Print the system prompt the AI would receive for this sheet.

    Example: `xlforge plan prompt -f data.xlsx -s Stores`
    """
    from xlforge.ai.planner import build_system_prompt

    session = _open_session(file, "plan.prompt", sheet)
    prompt = build_system_prompt(session.grid, get_settings().XLFORGE_PREVIEW_ROWS)
    _emit(success_envelope(
        "plan.prompt",
        {"sheet": session.active, "fingerprint": grid_fingerprint(session.grid), "system": prompt},
        target=Target(file=file, sheet=session.active),
    ))


@plan_app.command("validate")
def plan_validate(
    file: FilePath,
    plan_path: PlanPath,
    sheet: SheetOpt = None,
):
    """Pre-flight a plan against the sheet: which steps would be skipped, and staleness.

    Validation is advisory; `xlforge apply` still applies every valid step.

    Example: `xlforge plan validate -f data.xlsx --plan plan.json`
    """
    plan = _load_plan_or_emit(plan_path, "plan.validate", file)
    with Timer() as t:
        session = _open_session(file, "plan.validate", sheet)
        result = validate_plan(session.grid, plan)
    _emit(success_envelope(
        "plan.validate", result.model_dump(),
        target=Target(file=file, sheet=session.active),
        duration_ms=t.elapsed_ms,
    ))


# ---------------------------------------------------------------------------
# xlforge apply / ask
# ---------------------------------------------------------------------------
def _apply_plan(
    cmd: str,
    file: str,
    session: EditSession,
    plan: Plan,
    *,
    dry_run: bool,
    do_backup: bool,
    strict: bool,
    emitter: EventEmitter,
) -> ResponseEnvelope:
    target = Target(file=file, sheet=session.active)

    policy = Policy.load_from_dir(Path(file).resolve().parent)
    if policy is not None:
        violations = check_plan_policy(policy, plan, session.active)
        if violations:
            _emit(error_envelope(
                cmd, "ERR_POLICY_VIOLATION", "Plan violates policy",
                target=target, details={"violations": violations},
            ))

    warnings: list[WarningDetail] = []
    fp_check = check_fingerprint(session.grid, plan)
    if fp_check is not None and not fp_check["passed"]:
        if strict:
            _emit(error_envelope(cmd, "ERR_PLAN_STALE", fp_check["message"], target=target, details=fp_check))
        warnings.append(WarningDetail(code="PLAN_STALE", message=fp_check["message"]))

    before = session.grid
    result = session.apply_plan(plan)
    warnings.extend(step_warnings(result))
    diff = diff_grids(before, result.grid, sheet=session.active)

    saved = None
    if not dry_run:
        saved = _save_or_emit(file, session, cmd, do_backup=do_backup, emitter=emitter)

    apply_result = ApplyResult(
        applied=not dry_run,
        dry_run=dry_run,
        sheet=session.active,
        summary=plan.summary,
        backup_path=saved.backup_path if saved else None,
        steps_total=len(plan.steps),
        steps_applied=result.applied,
        steps_failed=len(result.failures),
        fingerprint_before=diff["fingerprint_before"],
        fingerprint_after=saved.fingerprint if saved else None,
    ).model_dump()
    apply_result["outcomes"] = [o.model_dump() for o in result.outcomes]
    if dry_run:
        apply_result["diff"] = diff

    change = ChangeRecord(
        type="plan.apply",
        target=session.active,
        before=diff["shape_before"],
        after=diff["shape_after"],
        impact={"steps": result.applied, "cells": diff["total_changes"]},
    )
    return success_envelope(
        cmd, apply_result,
        target=target, changes=[change], warnings=warnings,
    )


@app.command("apply")
def apply_cmd(
    file: FilePath,
    plan_path: PlanPath,
    sheet: SheetOpt = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Preview the cell diff without writing")] = False,
    do_backup: BackupFlag = True,
    strict: Annotated[bool, typer.Option("--strict", help="Refuse to apply when the sheet changed since the plan was generated")] = False,
    events: EventsFlag = False,
    trace: TraceOpt = None,
):
    """Apply an edit plan to a sheet. Mutating.

    Steps run in order; a step that cannot be applied is skipped and reported
    as a `STEP_SKIPPED` warning. The whole plan is saved as one change.

    Example (preview): `xlforge apply -f data.xlsx --plan plan.json --dry-run`

    Example (apply): `xlforge apply -f data.xlsx --plan plan.json -s Stores`
    """
    emitter, recorder = _make_emitter(events, trace)
    plan = _load_plan_or_emit(plan_path, "apply", file)
    try:
        with Timer() as t:
            session = _open_session(file, "apply", sheet, emitter=emitter)
            env = _apply_plan(
                "apply", file, session, plan,
                dry_run=dry_run, do_backup=do_backup, strict=strict,
                emitter=emitter,
            )
        env.metrics.duration_ms = t.elapsed_ms
        _emit(env)
    finally:
        if recorder is not None:
            recorder.save(trace)


@app.command("ask")
def ask_cmd(
    file: FilePath,
    instruction: Annotated[str, typer.Option("--instruction", "-i", help="What to change, in plain language")],
    sheet: SheetOpt = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Apply without asking for confirmation")] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Fetch and preview the plan without writing")] = False,
    plan_out: Annotated[Optional[str], typer.Option("--out", help="Also write the plan JSON to this path")] = None,
    do_backup: BackupFlag = True,
    events: EventsFlag = False,
    trace: TraceOpt = None,
):
    """Ask the AI for an edit plan, review it, and apply it. Mutating.

    The plan summary and steps are printed to stderr for confirmation; stdout
    carries only the JSON envelope. Requires `ANTHROPIC_API_KEY`.

    Example: `xlforge ask -f data.xlsx -i "Sort by Actual Sales descending"`
    """
    from xlforge.ai.planner import PlannerClient, PlannerConfigError, PlannerError

    emitter, recorder = _make_emitter(events, trace)
    try:
        with Timer() as t:
            session = _open_session(file, "ask", sheet, emitter=emitter)
            target = Target(file=file, sheet=session.active)
            try:
                plan = PlannerClient().request_plan(session.grid, instruction)
            except PlannerConfigError as e:
                _emit(error_envelope("ask", "ERR_AI_CONFIG", str(e), target=target))
            except PlannerError as e:
                _emit(error_envelope("ask", "ERR_AI_REQUEST", str(e), target=target))
            except PlanParseError as e:
                _emit(error_envelope(
                    "ask", "ERR_PLAN_PARSE",
                    f"Could not parse AI response. Try rephrasing. ({e})", target=target,
                ))
            except ValueError as e:
                _emit(error_envelope("ask", "ERR_INVALID_ARGUMENT", str(e), target=target))
            emitter.emit("plan.received", {"steps": len(plan.steps), "summary": plan.summary})

            if plan_out:
                Path(plan_out).write_text(orjson.dumps(plan.model_dump(mode="json"), option=orjson.OPT_INDENT_2).decode())

            if not yes and not dry_run:
                typer.echo(f"Plan: {plan.summary}", err=True)
                for i, step in enumerate(plan.steps, start=1):
                    typer.echo(f"  {i}. {step_label(step)}", err=True)
                if not typer.confirm(f"Apply {len(plan.steps)} step(s) to '{session.active}'?", err=True):
                    _emit(success_envelope(
                        "ask",
                        {"applied": False, "declined": True, "plan": plan.model_dump(mode="json")},
                        target=target, duration_ms=t.elapsed_ms,
                    ))

            env = _apply_plan(
                "ask", file, session, plan,
                dry_run=dry_run, do_backup=do_backup, strict=False,
                emitter=emitter,
            )
        env.metrics.duration_ms = t.elapsed_ms
        _emit(env)
    finally:
        if recorder is not None:
            recorder.save(trace)


# ---------------------------------------------------------------------------
# xlforge serve --stdio
# ---------------------------------------------------------------------------
@app.command("serve")
def serve_cmd(
    stdio: Annotated[bool, typer.Option("--stdio", help="Use stdin/stdout for JSON request/response")] = True,
):
    """Start a stdio editing server over one in-memory session.

    Each line is a JSON object: `{"id": "1", "command": "load", "args": {"file": "data.xlsx"}}`.
    Commands: load, sheet.switch, cell.set, row.add, row.delete, col.add,
    col.delete, plan.apply, undo, redo, payload, save, close.

    Example: `xlforge serve --stdio`
    """
    from xlforge.server.stdio import StdioServer

    StdioServer().run()


# ---------------------------------------------------------------------------
# Entrypoint (for `python -m xlforge`)
# ---------------------------------------------------------------------------
def main() -> None:
    try:
        app()
    except SystemExit:
        raise
    except Exception as exc:
        # Machine consumers always get a JSON envelope, never a traceback.
        env = error_envelope("unknown", "ERR_INTERNAL", str(exc))
        print_response(env)
        raise SystemExit(90) from exc


if __name__ == "__main__":
    main()
