"""Edit plan models: the tagged step variants and the plan envelope."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

CellValue = Union[str, int, float, bool, None]


class StepError(ValueError):
    """Raised when a step is malformed or cannot be applied to the grid."""


class PlanParseError(ValueError):
    """Raised when an AI response cannot be turned into a plan."""


class _StepBase(BaseModel):
    # Plans come from a model; tolerate extra keys such as "description".
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    description: str | None = None


class SetCellStep(_StepBase):
    action: Literal["set_cell"]
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    value: CellValue


class AddRowStep(_StepBase):
    action: Literal["add_row"]
    position: Union[Literal["end"], int, None] = None
    values: list[CellValue] | None = None


class DeleteRowStep(_StepBase):
    action: Literal["delete_row"]
    row: int = Field(ge=0)


class AddColumnStep(_StepBase):
    action: Literal["add_column"]
    header: CellValue = None
    fill: CellValue = None
    values: list[CellValue] | None = None


class DeleteColumnStep(_StepBase):
    action: Literal["delete_column"]
    col: int = Field(ge=0)


class RenameColumnStep(_StepBase):
    action: Literal["rename_column"]
    col: int = Field(ge=0)
    new_name: CellValue = Field(alias="newName")


class SortStep(_StepBase):
    action: Literal["sort"]
    col: int = Field(ge=0)
    direction: Literal["asc", "desc"] = "asc"
    has_header: bool = Field(default=True, alias="hasHeader")


class FilterDeleteStep(_StepBase):
    action: Literal["filter_delete"]
    col: int = Field(ge=0)
    operator: Literal["equals", "empty", "not_empty", "contains"]
    value: CellValue = None
    has_header: bool = Field(default=True, alias="hasHeader")


class ReplaceAllStep(_StepBase):
    action: Literal["replace_all"]
    col: int = Field(default=-1, ge=-1)  # -1 targets every column
    find: CellValue = None
    replace: CellValue = None
    transform: Literal["uppercase", "lowercase"] | None = None


class MultiplyColumnStep(_StepBase):
    action: Literal["multiply_column"]
    col: int = Field(ge=0)
    factor: float


Step = Annotated[
    Union[
        SetCellStep,
        AddRowStep,
        DeleteRowStep,
        AddColumnStep,
        DeleteColumnStep,
        RenameColumnStep,
        SortStep,
        FilterDeleteStep,
        ReplaceAllStep,
        MultiplyColumnStep,
    ],
    Field(discriminator="action"),
]

STEP_ACTIONS: frozenset[str] = frozenset({
    "set_cell", "add_row", "delete_row",
    "add_column", "delete_column", "rename_column",
    "sort", "filter_delete", "replace_all", "multiply_column",
})

_STEP_ADAPTER: TypeAdapter[Step] = TypeAdapter(Step)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"][1:]) or "step"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def parse_step(raw: Any) -> Step:
    """Validate one untrusted step dict into its typed variant."""
    if isinstance(raw, BaseModel):
        return raw  # already typed
    if not isinstance(raw, dict):
        raise StepError(f"Step must be an object, got {type(raw).__name__}")
    action = raw.get("action")
    if action not in STEP_ACTIONS:
        raise StepError(f"Unsupported action: {action!r}")
    try:
        return _STEP_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise StepError(_format_validation_error(e)) from e


class Plan(BaseModel):
    """The complete AI response for one user instruction.

    ``steps`` stay raw here; each one is validated on its own when the plan
    is executed, so a single bad step cannot reject the whole plan.
    """

    model_config = ConfigDict(extra="ignore")

    steps: list[Any] = Field(default_factory=list)
    summary: str = ""
    fingerprint: str | None = None  # grid fingerprint the plan was generated against
