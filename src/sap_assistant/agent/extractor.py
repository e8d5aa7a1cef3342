"""Second-pass parameter recovery for tool calls the classifier under-filled.

Parameter resolution is a small stage machine::

    classified -> needs_extraction -> extracted -> ready
    classified -> ready                       (no suspected omission)

``needs_extraction`` is the cheap first-tier check and is pure, so the reason
an extraction fired can be tested without a model.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sap_assistant.agent.llm import LanguageModel
from sap_assistant.errors import UpstreamUnavailable
from sap_assistant.types import ParameterSet, ToolCallDecision

logger = logging.getLogger(__name__)


class ExtractionStage(str, Enum):
    CLASSIFIED = "classified"
    NEEDS_EXTRACTION = "needs_extraction"
    EXTRACTED = "extracted"
    READY = "ready"


@dataclass(frozen=True, slots=True)
class ExtractionTemplate:
    """Keys one tool accepts and how to describe them to the model."""

    keys: tuple[str, ...]
    instructions: str


EXTRACTION_TEMPLATES: dict[str, ExtractionTemplate] = {
    "get_sap_definition": ExtractionTemplate(
        keys=("term",),
        instructions=(
            '- "term": the SAP term, T-code, abbreviation or process the user wants explained, '
            "without filler words such as 'what is' or 'the'."
        ),
    ),
    "query_inventory": ExtractionTemplate(
        keys=("material_id", "comparison", "quantity"),
        instructions=(
            '- "material_id": the material ID or item name(s) mentioned, e.g. "PUMP-1001" or '
            '"pumps, bearings".\n'
            '- "comparison": "less than" or "greater than" when the user filters by stock level.\n'
            '- "quantity": the number the stock level is compared against.'
        ),
    ),
    "get_sales_orders": ExtractionTemplate(
        keys=("customer", "status", "material"),
        instructions=(
            '- "customer": the customer name the orders belong to.\n'
            '- "status": the order status asked for, e.g. "open", "in process", "completed".\n'
            '- "material": a material ID or item name the orders must contain.'
        ),
    ),
    "get_purchase_orders": ExtractionTemplate(
        keys=("vendor", "status", "material"),
        instructions=(
            '- "vendor": the vendor/supplier name the orders were placed with.\n'
            '- "status": the order status asked for, e.g. "ordered", "delivered".\n'
            '- "material": a material ID or item name the orders must contain.'
        ),
    ),
    "get_record_details": ExtractionTemplate(
        keys=("identifier",),
        instructions=(
            '- "identifier": the material ID or order number the user wants details for.'
        ),
    ),
}

_ITEM_PHRASE = re.compile(
    r"\b(?:stock(?:\s+levels?)?\s+(?:of|for)|inventory\s+(?:of|for)|do\s+we\s+have|"
    r"how\s+many|availability\s+of|any)\s+\w+"
    r"|\b\w+\s+(?:in\s+stock|available)\b",
    flags=re.IGNORECASE,
)
_NUMERIC_PHRASE = re.compile(
    r"\b(?:less|fewer|below|under|lower|more|greater|above|over|higher)\b.*\d",
    flags=re.IGNORECASE,
)
_COUNTERPART_PHRASE = re.compile(
    r"\b(?:for|from|by|with|to)\s+(?:customer\s+|vendor\s+|supplier\s+)?[A-Z][\w&.\-]*"
)
_STATUS_PHRASE = re.compile(
    r"\b(?:open|closed|completed|delivered|ordered|in\s+process|pending|shipped|"
    r"cancell?ed|in\s+transit)\b",
    flags=re.IGNORECASE,
)
_IDENTIFIER_PHRASE = re.compile(r"\b(?:[A-Za-z]+-\d+|\d{4,})\b")

_COUNTERPART_PARAM = {"get_sales_orders": "customer", "get_purchase_orders": "vendor"}

EXTRACTION_SYSTEM_PROMPT = (
    "You extract structured parameters for an SAP assistant tool. "
    "Reply with ONLY a single JSON object. Use null for anything the user did not "
    "clearly mention. Never invent values."
)


def _filled(parameters: ParameterSet, key: str) -> bool:
    value = parameters.get(key)
    if value is None:
        return False
    return bool(str(value).strip()) and str(value).strip().casefold() not in {"null", "none"}


def needs_extraction(
    tool_name: str, utterance: str, parameters: ParameterSet
) -> str | None:
    """Return why a second extraction pass should run, or ``None``."""
    template = EXTRACTION_TEMPLATES.get(tool_name)
    if template is None:
        return None
    if not any(_filled(parameters, key) for key in template.keys):
        return "no_parameters"

    text = utterance or ""
    if tool_name == "query_inventory":
        if not _filled(parameters, "material_id") and _ITEM_PHRASE.search(text):
            return "material_phrase"
        if (
            not (_filled(parameters, "comparison") and _filled(parameters, "quantity"))
            and _NUMERIC_PHRASE.search(text)
        ):
            return "numeric_phrase"
    elif tool_name in _COUNTERPART_PARAM:
        if not _filled(parameters, _COUNTERPART_PARAM[tool_name]) and _COUNTERPART_PHRASE.search(text):
            return "counterpart_phrase"
        if not _filled(parameters, "status") and _STATUS_PHRASE.search(text):
            return "status_phrase"
    elif tool_name == "get_record_details":
        if not _filled(parameters, "identifier") and _IDENTIFIER_PHRASE.search(text):
            return "identifier_phrase"
    return None


def normalize_parameters(raw: Any) -> ParameterSet:
    """Coerce model output into ``name -> str | number | None``.

    Lists become comma-joined strings so that multi-item requests reach the
    index's term splitter intact.
    """

    if not isinstance(raw, dict):
        return {}
    normalized: ParameterSet = {}
    for key, value in raw.items():
        if isinstance(value, (list, tuple)):
            items = [str(item).strip() for item in value if item is not None and str(item).strip()]
            normalized[str(key)] = ", ".join(items) if items else None
        elif isinstance(value, bool):
            # no tool argument is a flag
            normalized[str(key)] = None
        elif value is None or isinstance(value, (str, int, float)):
            if isinstance(value, str) and value.strip().casefold() in {"", "null", "none"}:
                normalized[str(key)] = None
            else:
                normalized[str(key)] = value
        else:
            normalized[str(key)] = str(value)
    return normalized


def merge_parameters(
    original: ParameterSet, extracted: ParameterSet, targeted: tuple[str, ...]
) -> ParameterSet:
    """Extracted values win for targeted keys; everything else is preserved."""
    merged = dict(original)
    for key in targeted:
        value = extracted.get(key)
        if value is not None:
            merged[key] = value
    return merged


@dataclass(slots=True)
class ParameterResolution:
    tool_name: str
    parameters: ParameterSet
    stage: ExtractionStage = ExtractionStage.CLASSIFIED
    reason: str | None = None
    history: list[ExtractionStage] = field(
        default_factory=lambda: [ExtractionStage.CLASSIFIED]
    )

    def advance(self, stage: ExtractionStage) -> None:
        self.stage = stage
        self.history.append(stage)


class ParameterExtractor:
    """Narrow model call that re-asks for exactly one tool's parameters."""

    def __init__(
        self,
        llm: LanguageModel,
        templates: dict[str, ExtractionTemplate] | None = None,
    ) -> None:
        self.llm = llm
        self.templates = templates or EXTRACTION_TEMPLATES

    def build_prompt(self, tool_name: str, utterance: str) -> str:
        template = self.templates[tool_name]
        keys = ", ".join(f'"{key}"' for key in template.keys)
        return (
            f'Tool: {tool_name}\n'
            f'User request: "{utterance}"\n\n'
            f"Return a JSON object with exactly these keys: {keys}.\n"
            f"{template.instructions}"
        )

    async def extract(self, tool_name: str, utterance: str) -> ParameterSet:
        """Ask the model for the tool's parameters; ``{}`` on any failure."""
        template = self.templates.get(tool_name)
        if template is None:
            return {}
        try:
            raw = await self.llm.complete(
                EXTRACTION_SYSTEM_PROMPT,
                self.build_prompt(tool_name, utterance),
                json_mode=True,
            )
        except UpstreamUnavailable as exc:
            logger.warning("Parameter extraction for %s failed: %s", tool_name, exc)
            return {}
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("Parameter extraction for %s returned invalid JSON: %r", tool_name, raw)
            return {}
        if not isinstance(parsed, dict):
            logger.warning("Parameter extraction for %s returned non-object JSON", tool_name)
            return {}
        extracted = normalize_parameters(parsed)
        return {key: extracted.get(key) for key in template.keys}

    async def resolve(self, decision: ToolCallDecision, utterance: str) -> ParameterResolution:
        resolution = ParameterResolution(
            tool_name=decision.tool_name,
            parameters=normalize_parameters(decision.parameters),
        )
        reason = needs_extraction(decision.tool_name, utterance, resolution.parameters)
        if reason is None:
            resolution.advance(ExtractionStage.READY)
            return resolution

        resolution.reason = reason
        resolution.advance(ExtractionStage.NEEDS_EXTRACTION)
        logger.info("Running parameter extraction for %s (%s)", decision.tool_name, reason)
        extracted = await self.extract(decision.tool_name, utterance)
        resolution.parameters = merge_parameters(
            resolution.parameters,
            extracted,
            self.templates[decision.tool_name].keys,
        )
        resolution.advance(ExtractionStage.EXTRACTED)
        resolution.advance(ExtractionStage.READY)
        logger.info("Parameters after extraction: %s", resolution.parameters)
        return resolution
