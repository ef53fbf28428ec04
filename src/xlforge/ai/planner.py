"""AI planner: prompt construction, response parsing, and the provider client.

The model is asked for a JSON object ``{"steps": [...], "summary": "..."}``.
Nothing here edits a grid; the returned :class:`Plan` is reviewed and then
handed to the executor.
"""

from __future__ import annotations

import re
import threading
from typing import Any, Sequence

import httpx
import orjson
from pydantic import ValidationError

from xlforge.ai.settings import Settings, get_settings
from xlforge.contracts.plans import Plan, PlanParseError
from xlforge.engine.grid import grid_fingerprint, shape
from xlforge.engine.steps import cell_text

ANTHROPIC_VERSION = "2023-06-01"

_ACTIONS_HELP = (
    "set_cell(row,col,value) | add_row(position,values[]) | delete_row(row) | "
    "add_column(header,fill,values[]) | delete_column(col) | rename_column(col,newName) | "
    "sort(col,direction,hasHeader) | filter_delete(col,operator,value,hasHeader) | "
    "replace_all(col,find,replace,transform) | multiply_column(col,factor)"
)

_FENCE = re.compile(r"```(?:json)?\s*\n?", re.IGNORECASE)


class PlannerError(Exception):
    """The AI provider request failed."""


class PlannerConfigError(PlannerError):
    """The planner is missing configuration, such as the API key."""


class PlannerBusyError(PlannerError):
    """A plan request is already outstanding on this client."""


def _preview(grid: Sequence[Sequence[Any]], preview_rows: int) -> str:
    return "\n".join(
        ",".join(cell_text(v) for v in row) for row in list(grid)[:preview_rows]
    )


def build_system_prompt(grid: Sequence[Sequence[Any]], preview_rows: int = 25) -> str:
    """System instruction describing the action set and a preview of the grid."""
    rows, cols = shape(grid)
    return (
        "You are an expert spreadsheet transformation engine.\n"
        "Respond ONLY with a valid JSON object, no markdown, no explanation.\n"
        "{\n"
        '  "steps": [{ "action": string, "description": string, ...fields }],\n'
        '  "summary": string\n'
        "}\n"
        f"Actions: {_ACTIONS_HELP}\n"
        "Rows and columns are zero-based; row 0 is the header row. "
        'position is "end" or a row index; direction is "asc" or "desc"; '
        'operator is one of "equals", "empty", "not_empty", "contains"; '
        'transform is null, "uppercase" or "lowercase"; col -1 in replace_all '
        "targets all columns.\n"
        f"Sheet: {rows} rows x {cols} cols.\n"
        f"CSV preview:\n{_preview(grid, preview_rows)}"
    )


def _decode_object(text: str) -> Any:
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise
        return orjson.loads(text[start:end + 1])


def extract_plan(raw: str) -> Plan:
    """Parse a model response into a :class:`Plan`.

    Tolerates surrounding code fences and prose around the JSON object.

    Raises:
        PlanParseError: no usable plan object could be read.
    """
    text = _FENCE.sub("", raw or "").strip()
    if not text:
        raise PlanParseError("AI response was empty")
    try:
        data = _decode_object(text)
    except orjson.JSONDecodeError as e:
        raise PlanParseError(f"AI response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PlanParseError("AI response must be a JSON object")
    if not isinstance(data.get("steps"), list):
        raise PlanParseError("AI response has no 'steps' array")
    try:
        return Plan.model_validate(data)
    except ValidationError as e:
        raise PlanParseError(f"AI response is not a valid plan: {e}") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return str(err.get("message") or err)
    if err:
        return str(err)
    return f"HTTP {response.status_code}"


class PlannerClient:
    """Sends one instruction at a time to the Anthropic Messages API."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport
        self._lock = threading.Lock()

    def build_request(self, grid: Sequence[Sequence[Any]], instruction: str) -> dict[str, Any]:
        return {
            "model": self.settings.XLFORGE_MODEL,
            "max_tokens": self.settings.XLFORGE_MAX_TOKENS,
            "system": build_system_prompt(grid, self.settings.XLFORGE_PREVIEW_ROWS),
            "messages": [{"role": "user", "content": instruction}],
        }

    def request_plan(self, grid: Sequence[Sequence[Any]], instruction: str) -> Plan:
        """Ask the model for a plan. The plan is stamped with the grid fingerprint."""
        if not instruction.strip():
            raise ValueError("Instruction must not be empty")
        api_key = self.settings.ANTHROPIC_API_KEY
        if not api_key:
            raise PlannerConfigError("ANTHROPIC_API_KEY is not set")
        if not self._lock.acquire(blocking=False):
            raise PlannerBusyError("A plan request is already in progress")
        try:
            body = self.build_request(grid, instruction)
            headers = {
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            }
            try:
                with httpx.Client(timeout=self.settings.XLFORGE_TIMEOUT, transport=self._transport) as client:
                    response = client.post(self.settings.XLFORGE_API_URL, json=body, headers=headers)
            except httpx.HTTPError as e:
                raise PlannerError(f"AI request failed: {e}") from e
        finally:
            self._lock.release()

        if response.status_code >= 400:
            raise PlannerError(f"AI provider returned {response.status_code}: {_error_message(response)}")
        try:
            data = response.json()
        except ValueError as e:
            raise PlanParseError(f"AI provider response is not JSON: {e}") from e
        blocks = data.get("content") if isinstance(data, dict) else None
        raw = "".join(
            str(b.get("text") or "") for b in (blocks or []) if isinstance(b, dict)
        )
        plan = extract_plan(raw)
        plan.fingerprint = grid_fingerprint(grid)
        return plan
