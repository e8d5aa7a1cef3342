"""First-pass tool classification through the language model."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from sap_assistant.agent.llm import LanguageModel
from sap_assistant.agent.registry import ToolRegistry
from sap_assistant.errors import ClassificationAmbiguous
from sap_assistant.types import Decision, TextDecision, ToolCallDecision

logger = logging.getLogger(__name__)

EMPTY_TEXT_FALLBACK = "Sorry, I couldn't generate a response."

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(?P<body>.*?)\s*```$", flags=re.DOTALL | re.IGNORECASE)

_SYSTEM_PROMPT = """
You are a helpful and friendly SAP Assistant. Your primary goal is to assist users with specific SAP-related tasks using the tools provided, explaining concepts clearly.

Available Tools:
{catalog}

Follow these rules STRICTLY based on the user's latest input:
1. PRIORITY: Does the input contain a specific question or command related to SAP that matches one of the tools (even if mixed with greetings like 'hey' or 'hello')?
2. If YES: choose the matching tool_name, extract every relevant parameter mentioned (term, material_id, customer, vendor, status, material, comparison, quantity, identifier) and ignore the greeting. Respond in JSON format B.
3. Definition versus data: a question asking what a thing IS ("what is a purchase order", "define MIRO", "explain FB60", "how do I post an invoice") uses get_sap_definition. A request for actual records ("what are the purchase orders", "show purchase orders", "list open sales orders") uses the matching data tool.
4. If NO, and the input is only an acknowledgment ('ok', 'thanks', 'great'), a compliment or a greeting: reply with a brief, friendly text in JSON format A.
5. Otherwise (a non-SAP question, a vague request or something unrelated): reply in JSON format A, politely explaining that you can look up stock, sales orders, purchase orders and record details, open the leave form, or define SAP terms with get_sap_definition.

Your response MUST be a single valid JSON object in ONE of these formats ONLY:
A. For text responses: {{"type": "text", "content": "Your conversational response here."}}
B. To use a tool: {{"type": "tool_call", "tool_name": "name_of_the_tool", "parameters": {{"param": "value"}}}}
""".strip()


def build_system_prompt(registry: ToolRegistry) -> str:
    return _SYSTEM_PROMPT.format(catalog=registry.render_catalog())


def build_user_prompt(utterance: str) -> str:
    return (
        f'User\'s input: "{utterance}"\n\n'
        "Based on this input and the rules provided in the system prompt, "
        "what is the correct JSON response?"
    )


def parse_decision(raw: str) -> Decision:
    """Turn the classifier reply into a Decision.

    Plain prose is accepted as a text reply. Anything that looks like JSON but
    does not describe a text reply or tool call raises
    ``ClassificationAmbiguous``.
    """

    text = (raw or "").strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group("body").strip()

    try:
        payload: Any = json.loads(text)
    except ValueError:
        if text and not text.startswith(("{", "[")):
            logger.info("Decision wasn't JSON, using it as a text reply")
            return TextDecision(content=text)
        raise ClassificationAmbiguous(raw) from None

    if not isinstance(payload, dict):
        raise ClassificationAmbiguous(raw)

    kind = str(payload.get("type", "")).strip().lower()
    tool_name = payload.get("tool_name")
    if kind in {"tool_call", "tool"} or (not kind and tool_name):
        if not isinstance(tool_name, str) or not tool_name.strip():
            raise ClassificationAmbiguous(raw)
        parameters = payload.get("parameters")
        return ToolCallDecision(
            tool_name=tool_name.strip(),
            parameters=parameters if isinstance(parameters, dict) else {},
        )
    if kind == "text":
        content = payload.get("content")
        if not isinstance(content, str) or not content.strip():
            return TextDecision(content=EMPTY_TEXT_FALLBACK)
        return TextDecision(content=content.strip())
    raise ClassificationAmbiguous(raw)


class DecisionClassifier:
    """Asks the model to pick a direct reply or one registered tool."""

    def __init__(self, llm: LanguageModel, registry: ToolRegistry) -> None:
        self.llm = llm
        self.registry = registry
        self.system_prompt = build_system_prompt(registry)

    async def classify(self, utterance: str) -> Decision:
        raw = await self.llm.complete(
            self.system_prompt, build_user_prompt(utterance), json_mode=True
        )
        try:
            decision = parse_decision(raw)
        except ClassificationAmbiguous:
            logger.error("Failed to interpret decision from model: %r", raw)
            raise
        logger.info("Parsed decision: %s", decision)
        return decision
