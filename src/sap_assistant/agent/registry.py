"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from time import perf_counter
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sap_assistant.types import ToolTrace


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Per-request facts a handler may need besides its arguments."""

    utterance: str


ToolHandler = Callable[[Any, ToolContext], Awaitable[Any]]


class ToolArgs(BaseModel):
    """Base for tool argument schemas: every field optional, extras dropped."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler
    tags: list[str] = Field(default_factory=list)

    @property
    def parameters(self) -> dict[str, str]:
        """Parameter name -> description, read from the argument schema."""
        return {
            name: field.description or ""
            for name, field in self.args_schema.model_fields.items()
        }

    @property
    def needs_parameters(self) -> bool:
        return bool(self.args_schema.model_fields)

    async def ainvoke(self, payload: dict[str, Any], context: ToolContext) -> Any:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data, context)


class ToolRegistry:
    """Stores tool specs and renders them for the classifier prompt."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return spec

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def render_catalog(self) -> str:
        """One line per tool: name, description and parameter descriptions."""
        return "\n".join(
            f"- {spec.name}: {spec.description} "
            f"(Parameters: {json.dumps(spec.parameters, ensure_ascii=False)})"
            for spec in self._tools.values()
        )

    async def execute(
        self,
        name: str,
        payload: dict[str, Any],
        context: ToolContext,
        *,
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> Any:
        spec = self.get(name)
        start = perf_counter()
        output = await spec.ainvoke(payload, context)
        latency_ms = (perf_counter() - start) * 1000.0

        if observer is not None:
            observer(
                ToolTrace(
                    name=spec.name,
                    input_payload=payload,
                    output_preview=repr(output)[:320],
                    latency_ms=latency_ms,
                )
            )
        return output
