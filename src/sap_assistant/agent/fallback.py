"""Deterministic fallback planner when no language model is configured."""

from __future__ import annotations

import re

from sap_assistant.agent.planner import SapAssistantPlanner
from sap_assistant.agent.registry import ToolRegistry
from sap_assistant.agent.tools import (
    DEFINITION_TOOL,
    INVENTORY_TOOL,
    LEAVE_FORM_TOOL,
    PURCHASE_ORDERS_TOOL,
    RECORD_DETAILS_TOOL,
    SALES_ORDERS_TOOL,
)
from sap_assistant.config import AgentConfig
from sap_assistant.obs.tracing import TraceStore
from sap_assistant.types import Decision, ParameterSet, TextDecision, ToolCallDecision

HELP_TEXT = (
    "I can help with SAP queries: check stock levels, list sales or purchase orders, "
    "show the details of a material or order, open the leave application form, or "
    "explain SAP terms such as FB60."
)
ACKNOWLEDGEMENT_TEXT = "You're welcome! How else can I help with SAP?"
GREETING_TEXT = "Hello! How can I help with SAP today?"

_GREETING = re.compile(r"^(?:hi|hello|hey|good (?:morning|afternoon|evening))\b[\s!.,]*$", re.I)
_ACKNOWLEDGEMENT = re.compile(
    r"^(?:thanks?(?: you)?|thank you(?: so much)?|ok(?:ay)?|great|cool|nice|perfect|got it|"
    r"awesome|you(?:'re| are) (?:amazing|great|awesome))\b[\s!.,]*$",
    re.I,
)
_GREETING_PREFIX = re.compile(r"^(?:hi|hello|hey)\b[\s,!.]*", re.I)
_LEAVE = re.compile(r"\b(?:leave|time off|vacation|day off)\b", re.I)
_DEFINITION = re.compile(
    r"^(?:what\s+is|what's|whats|define|explain|meaning\s+of|what\s+does)\s+"
    r"(?:an?\s+|the\s+)?(?P<term>.+?)(?:\s+mean)?\s*\??$",
    re.I,
)
_PROCESS = re.compile(
    r"\b(?:how\s+(?:to|do\s+i|can\s+i)|process\s+(?:for|of)|steps\s+(?:for|to))\s+"
    r"(?:an?\s+|the\s+)?(?P<term>.+?)\s*\??$",
    re.I,
)
_PURCHASE_ORDERS = re.compile(r"\bpurchase\s+orders?\b|\bPOs?\b")
_SALES_ORDERS = re.compile(r"\bsales\s+orders?\b|\bSOs?\b")
_STOCK = re.compile(r"\b(?:stock|inventory|do\s+we\s+have|materials?)\b", re.I)
_DETAILS = re.compile(r"\b(?:details?|show\s+order|order\s+#?\d+)\b", re.I)
_IDENTIFIER = re.compile(r"\b(?:[A-Za-z]+-\d+|\d{4,})\b")
_STATUS = re.compile(
    r"\b(?P<status>open|closed|completed|delivered|ordered|in\s+process|pending|shipped|"
    r"cancell?ed|in\s+transit)\b",
    re.I,
)
_STOP = r"(?=\s+(?:that|which|with|are|is|in|where|having)\b|\s*[?.!]?$)"
_CUSTOMER = re.compile(r"\b(?:for|of|by)\s+(?:customer\s+)?(?P<name>[A-Z][\w&.\- ]*?)" + _STOP)
_VENDOR = re.compile(r"\b(?:from|by|with)\s+(?:vendor\s+|supplier\s+)?(?P<name>[A-Z][\w&.\- ]*?)" + _STOP)
_ITEM = re.compile(
    r"\b(?:of|for|have|any)\s+(?P<item>[\w,&\- ]+?)"
    r"(?=\s+(?:with|in|less|more|below|above|under|over|fewer|greater|that|left)\b|\s*[?.!]?$)",
    re.I,
)
_COMPARISON = re.compile(
    r"\b(?P<op>less\s+than|fewer\s+than|below|under|more\s+than|greater\s+than|above|over)\s+"
    r"(?P<qty>\d[\d,]*)",
    re.I,
)


class KeywordClassifier:
    """Rule-based stand-in for the model classifier.

    Keeps the same ``classify`` contract so the planner pipeline is unchanged.
    """

    async def classify(self, utterance: str) -> Decision:
        return classify_keywords(utterance)


def classify_keywords(utterance: str) -> Decision:
    text = (utterance or "").strip()
    if not text:
        return TextDecision(content=HELP_TEXT)
    if _ACKNOWLEDGEMENT.match(text):
        return TextDecision(content=ACKNOWLEDGEMENT_TEXT)
    if _GREETING.match(text):
        return TextDecision(content=GREETING_TEXT)

    text = _GREETING_PREFIX.sub("", text).strip()

    definition = _DEFINITION.match(text)
    if definition and not re.match(r"^what\s+are\b", text, re.I):
        return ToolCallDecision(DEFINITION_TOOL, {"term": definition.group("term").strip()})
    process = _PROCESS.search(text)
    if process:
        return ToolCallDecision(DEFINITION_TOOL, {"term": process.group("term").strip()})

    if _LEAVE.search(text):
        return ToolCallDecision(LEAVE_FORM_TOOL, {})

    identifier = _IDENTIFIER.search(text)
    if identifier and _DETAILS.search(text):
        return ToolCallDecision(RECORD_DETAILS_TOOL, {"identifier": identifier.group(0)})

    if _PURCHASE_ORDERS.search(text) or re.search(r"\bpurchase\s+orders?\b", text, re.I):
        return ToolCallDecision(
            PURCHASE_ORDERS_TOOL, _order_parameters(text, _VENDOR, "vendor")
        )
    if re.search(r"\bsales\s+orders?\b", text, re.I) or _SALES_ORDERS.search(text):
        return ToolCallDecision(
            SALES_ORDERS_TOOL, _order_parameters(text, _CUSTOMER, "customer")
        )
    if _STOCK.search(text):
        return ToolCallDecision(INVENTORY_TOOL, _inventory_parameters(text))
    return TextDecision(content=HELP_TEXT)


def _order_parameters(text: str, pattern: re.Pattern[str], key: str) -> ParameterSet:
    parameters: ParameterSet = {}
    name = pattern.search(text)
    if name:
        parameters[key] = name.group("name").strip()
    status = _STATUS.search(text)
    if status:
        parameters["status"] = status.group("status")
    return parameters


def _inventory_parameters(text: str) -> ParameterSet:
    parameters: ParameterSet = {}
    item = _ITEM.search(text)
    if item:
        value = item.group("item").strip()
        if value.lower() not in {"stock", "materials", "material", "inventory", "all"}:
            parameters["material_id"] = value
    comparison = _COMPARISON.search(text)
    if comparison:
        parameters["comparison"] = comparison.group("op")
        parameters["quantity"] = comparison.group("qty").replace(",", "")
    return parameters


class DeterministicPlanner(SapAssistantPlanner):
    """Planner that routes by keywords without any model dependency.

    Keeps the same response contract as ``SapAssistantPlanner`` and is useful
    for local/offline environments where no API key is configured. The
    registry passed in should carry a model-free definition resolver.
    """

    def __init__(
        self,
        *,
        tool_registry: ToolRegistry,
        trace_store: TraceStore,
        config: AgentConfig | None = None,
    ) -> None:
        super().__init__(
            classifier=KeywordClassifier(),
            tool_registry=tool_registry,
            trace_store=trace_store,
            extractor=None,
            llm=None,
            config=config,
        )
