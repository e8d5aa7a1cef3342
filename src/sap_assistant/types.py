"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Record = dict[str, Any]
ParameterSet = dict[str, Any]


@dataclass(frozen=True, slots=True)
class KnowledgeEntry:
    """One knowledge-base term with its reference definition."""

    term: str
    definition: str


@dataclass(slots=True)
class SearchHit:
    """A fuzzy search result. Lower scores are better matches."""

    record: Record
    score: float


@dataclass(frozen=True, slots=True)
class TextDecision:
    """The model chose to answer directly."""

    content: str


@dataclass(frozen=True, slots=True)
class ToolCallDecision:
    """The model chose a tool and supplied best-effort parameters."""

    tool_name: str
    parameters: ParameterSet = field(default_factory=dict)


Decision = Union[TextDecision, ToolCallDecision]


@dataclass(frozen=True, slots=True)
class TextReply:
    """Tool output that is already a finished sentence for the user."""

    content: str


@dataclass(frozen=True, slots=True)
class FormRequest:
    """Tool output asking the UI to open a form."""

    form: str


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


class TextPayload(BaseModel):
    type: Literal["text"] = "text"
    content: str


class TablePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["table"] = "table"
    columns: list[str] = Field(alias="tableColumns")
    rows: list[dict[str, Any]] = Field(alias="tableData")


class DetailPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["detail"] = "detail"
    fields: dict[str, Any] = Field(alias="detailData")


class FormTriggerPayload(BaseModel):
    type: Literal["form_trigger"] = "form_trigger"
    form: str = "leave_application"


ResponsePayload = Annotated[
    Union[TextPayload, TablePayload, DetailPayload, FormTriggerPayload],
    Field(discriminator="type"),
]
