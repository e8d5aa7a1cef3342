import pytest

from sap_assistant.agent.fallback import (
    ACKNOWLEDGEMENT_TEXT,
    GREETING_TEXT,
    HELP_TEXT,
    classify_keywords,
)
from sap_assistant.types import TextDecision, ToolCallDecision


@pytest.mark.parametrize(
    ("utterance", "tool", "parameters"),
    [
        ("What is FB60?", "get_sap_definition", {"term": "FB60"}),
        ("what is a purchase order", "get_sap_definition", {"term": "purchase order"}),
        ("hey, what is MIRO?", "get_sap_definition", {"term": "MIRO"}),
        ("what are the purchase orders", "get_purchase_orders", {}),
        ("show sales orders for TechCorp that are open", "get_sales_orders", {"customer": "TechCorp", "status": "open"}),
        ("delivered purchase orders from SKF", "get_purchase_orders", {"vendor": "SKF", "status": "delivered"}),
        ("Do we have bearings in stock?", "query_inventory", {"material_id": "bearings"}),
        ("check stock of bearings", "query_inventory", {"material_id": "bearings"}),
        ("materials with stock less than 100", "query_inventory", {"comparison": "less than", "quantity": "100"}),
        ("I want to apply for leave", "show_leave_application_form", {}),
        ("show details of PUMP-1001", "get_record_details", {"identifier": "PUMP-1001"}),
    ],
)
def test_routes_to_tools(utterance: str, tool: str, parameters: dict) -> None:
    assert classify_keywords(utterance) == ToolCallDecision(tool, parameters)


def test_definition_and_data_questions_diverge() -> None:
    definition = classify_keywords("what is a purchase order?")
    data = classify_keywords("what are the purchase orders?")

    assert isinstance(definition, ToolCallDecision)
    assert isinstance(data, ToolCallDecision)
    assert definition.tool_name == "get_sap_definition"
    assert data.tool_name == "get_purchase_orders"


def test_process_questions_route_to_definitions() -> None:
    decision = classify_keywords("how do I create a purchase order")

    assert isinstance(decision, ToolCallDecision)
    assert decision.tool_name == "get_sap_definition"
    assert decision.parameters["term"] == "create a purchase order"


@pytest.mark.parametrize(
    ("utterance", "content"),
    [
        ("thanks!", ACKNOWLEDGEMENT_TEXT),
        ("ok", ACKNOWLEDGEMENT_TEXT),
        ("hello", GREETING_TEXT),
        ("tell me a joke", HELP_TEXT),
        ("", HELP_TEXT),
    ],
)
def test_conversational_replies(utterance: str, content: str) -> None:
    assert classify_keywords(utterance) == TextDecision(content)
