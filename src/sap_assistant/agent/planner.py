"""Request pipeline: classify, recover parameters, execute, assemble."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from sap_assistant.agent.assembler import Payload, ResponseAssembler
from sap_assistant.agent.definitions import DefinitionAnswer
from sap_assistant.agent.extractor import (
    ExtractionStage,
    ParameterExtractor,
    ParameterResolution,
    normalize_parameters,
)
from sap_assistant.agent.llm import LanguageModel
from sap_assistant.agent.registry import ToolContext, ToolRegistry
from sap_assistant.config import AgentConfig
from sap_assistant.errors import UpstreamUnavailable
from sap_assistant.obs.tracing import Timer, TraceDraft, TraceStore, estimate_token_count
from sap_assistant.types import Decision, TextDecision, TextReply, ToolCallDecision

logger = logging.getLogger(__name__)

UNKNOWN_TOOL_TEXT = "Sorry, I couldn't process that request. Could you please rephrase?"
UNKNOWN_TOOL_PERSONA = "You are a helpful SAP assistant."
INVALID_PARAMETERS_TEXT = (
    "Sorry, I couldn't understand the details of that request. Could you rephrase it?"
)


class Classifier(Protocol):
    async def classify(self, utterance: str) -> Decision:
        """Produce exactly one Decision for the utterance."""


@dataclass(slots=True)
class PlannerResult:
    payload: Payload
    trace_id: str
    latency_ms: float
    latency_target_met: bool


class SapAssistantPlanner:
    """High-level orchestrator for one chat turn.

    Only model calls suspend; the registry, indices and assembler are shared
    read-only, and every per-request value lives in locals or the trace draft.
    """

    def __init__(
        self,
        *,
        classifier: Classifier,
        tool_registry: ToolRegistry,
        trace_store: TraceStore,
        extractor: ParameterExtractor | None = None,
        llm: LanguageModel | None = None,
        assembler: ResponseAssembler | None = None,
        config: AgentConfig | None = None,
    ) -> None:
        self.classifier = classifier
        self.tool_registry = tool_registry
        self.trace_store = trace_store
        self.extractor = extractor
        self.llm = llm
        self.assembler = assembler or ResponseAssembler()
        self.config = config or AgentConfig()

    async def ainvoke(self, utterance: str) -> PlannerResult:
        """Run one full turn and persist its trace.

        ``UpstreamUnavailable`` and ``ClassificationAmbiguous`` propagate; all
        other conditions end in a payload.
        """

        logger.info("Received query: %r", utterance)
        draft = TraceDraft(utterance=utterance)
        with Timer() as timer:
            decision = await self.classifier.classify(utterance)
            output = await self._execute(decision, utterance, draft)
            payload = self.assembler.assemble(output)

        record = self.trace_store.create_record(
            draft,
            payload_type=payload.type,
            input_tokens=estimate_token_count(utterance),
            output_tokens=estimate_token_count(payload.model_dump_json()),
            latency_ms=timer.elapsed_ms,
        )
        return PlannerResult(
            payload=payload,
            trace_id=record.trace_id,
            latency_ms=record.latency_ms,
            latency_target_met=record.latency_ms
            <= (self.config.target_latency_seconds * 1000.0),
        )

    async def _execute(self, decision: Decision, utterance: str, draft: TraceDraft) -> Any:
        match decision:
            case TextDecision(content=content):
                draft.decision = "text"
                logger.info("Model decided to have a normal conversation")
                return TextReply(content=content)
            case ToolCallDecision(tool_name=tool_name):
                draft.decision = "tool_call"
                draft.tool_name = tool_name
                if tool_name not in self.tool_registry:
                    logger.warning("Unhandled tool requested: %s", tool_name)
                    draft.decision = "unknown_tool"
                    return await self._clarify_unknown_tool(tool_name, utterance)

                resolution = await self._resolve_parameters(decision, utterance)
                draft.parameters = resolution.parameters
                draft.extraction_reason = resolution.reason
                draft.extraction_stages = [stage.value for stage in resolution.history]

                output = await self._run_tool(tool_name, resolution.parameters, utterance, draft)
                if isinstance(output, DefinitionAnswer):
                    draft.definition_outcome = output.outcome
                return output
        raise TypeError(f"Unsupported decision: {decision!r}")

    async def _run_tool(
        self, tool_name: str, parameters: dict[str, Any], utterance: str, draft: TraceDraft
    ) -> Any:
        """Execute a tool, dropping arguments its schema rejects and retrying once."""
        context = ToolContext(utterance=utterance)
        logger.info("Executing tool %s with %s", tool_name, parameters)
        try:
            return await self.tool_registry.execute(
                tool_name, parameters, context, observer=draft.tool_traces.append
            )
        except ValidationError as exc:
            rejected = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
            logger.warning("Tool %s rejected arguments %s", tool_name, sorted(rejected))

        parameters = {key: value for key, value in parameters.items() if key not in rejected}
        draft.parameters = parameters
        try:
            return await self.tool_registry.execute(
                tool_name, parameters, context, observer=draft.tool_traces.append
            )
        except ValidationError as exc:
            logger.warning("Tool %s still rejected its arguments: %s", tool_name, exc)
            draft.decision = "invalid_parameters"
            return TextReply(content=INVALID_PARAMETERS_TEXT)

    async def _resolve_parameters(
        self, decision: ToolCallDecision, utterance: str
    ) -> ParameterResolution:
        if self.extractor is not None and self.config.enable_extraction:
            return await self.extractor.resolve(decision, utterance)
        resolution = ParameterResolution(
            tool_name=decision.tool_name,
            parameters=normalize_parameters(decision.parameters),
        )
        resolution.advance(ExtractionStage.READY)
        return resolution

    async def _clarify_unknown_tool(self, tool_name: str, utterance: str) -> TextReply:
        if self.llm is None:
            return TextReply(content=UNKNOWN_TOOL_TEXT)
        prompt = (
            f'The user said: "{utterance}". I decided to use a tool called \'{tool_name}\' '
            "which isn't recognized. Ask the user to clarify or rephrase."
        )
        try:
            content = await self.llm.complete(UNKNOWN_TOOL_PERSONA, prompt)
        except UpstreamUnavailable as exc:
            logger.warning("Clarification request failed: %s", exc)
            return TextReply(content=UNKNOWN_TOOL_TEXT)
        return TextReply(content=content.strip() or UNKNOWN_TOOL_TEXT)
