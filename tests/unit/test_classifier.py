import asyncio

import pytest

from sap_assistant.agent.classifier import (
    EMPTY_TEXT_FALLBACK,
    DecisionClassifier,
    build_system_prompt,
    parse_decision,
)
from sap_assistant.agent.registry import ToolRegistry
from sap_assistant.errors import ClassificationAmbiguous, UpstreamUnavailable
from sap_assistant.types import TextDecision, ToolCallDecision


def test_parse_tool_call() -> None:
    decision = parse_decision(
        '{"type": "tool_call", "tool_name": "query_inventory", "parameters": {"material_id": "bearings"}}'
    )

    assert decision == ToolCallDecision("query_inventory", {"material_id": "bearings"})


def test_parse_text() -> None:
    assert parse_decision('{"type": "text", "content": " Hello! "}') == TextDecision("Hello!")


def test_empty_text_content_uses_fallback() -> None:
    assert parse_decision('{"type": "text", "content": ""}') == TextDecision(EMPTY_TEXT_FALLBACK)


def test_code_fenced_json_is_accepted() -> None:
    raw = '```json\n{"type": "tool_call", "tool_name": "get_sales_orders"}\n```'

    assert parse_decision(raw) == ToolCallDecision("get_sales_orders", {})


def test_tool_name_without_type_is_a_tool_call() -> None:
    decision = parse_decision('{"tool_name": "get_purchase_orders", "parameters": "oops"}')

    assert decision == ToolCallDecision("get_purchase_orders", {})


def test_plain_prose_is_a_text_reply() -> None:
    assert parse_decision("Sure, happy to help.") == TextDecision("Sure, happy to help.")


@pytest.mark.parametrize(
    "raw",
    [
        '{"type": "tool_call"}',
        '{"type": "banana", "content": "x"}',
        '["query_inventory"]',
        '{"type": "tool_call", "tool_name": ',
        "",
    ],
)
def test_uninterpretable_replies_are_ambiguous(raw: str) -> None:
    with pytest.raises(ClassificationAmbiguous) as excinfo:
        parse_decision(raw)

    assert excinfo.value.raw == raw
    assert str(excinfo.value) == "Failed to interpret AI decision."


def test_classifier_uses_json_mode_and_catalog(scripted_llm) -> None:
    registry = ToolRegistry()
    classifier = DecisionClassifier(scripted_llm, registry)
    scripted_llm.replies.append('{"type": "text", "content": "Hi there!"}')

    decision = asyncio.run(classifier.classify("hello"))

    assert decision == TextDecision("Hi there!")
    system_prompt, user_prompt, json_mode = scripted_llm.calls[0]
    assert json_mode is True
    assert system_prompt == build_system_prompt(registry)
    assert '"hello"' in user_prompt


def test_classifier_propagates_upstream_failures(scripted_llm) -> None:
    classifier = DecisionClassifier(scripted_llm, ToolRegistry())
    scripted_llm.replies.append(UpstreamUnavailable("quota exceeded", status_code=429))

    with pytest.raises(UpstreamUnavailable) as excinfo:
        asyncio.run(classifier.classify("show stock"))

    assert excinfo.value.upstream_status == 429
