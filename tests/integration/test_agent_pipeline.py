import asyncio
import json

import pytest

from sap_assistant.agent.fallback import DeterministicPlanner
from sap_assistant.agent.planner import UNKNOWN_TOOL_TEXT
from sap_assistant.api.context import build_context
from sap_assistant.config import DataConfig
from sap_assistant.errors import ClassificationAmbiguous, UpstreamUnavailable
from sap_assistant.types import FormTriggerPayload, TablePayload, TextPayload


def _tool_call(tool_name: str, **parameters) -> str:
    return json.dumps({"type": "tool_call", "tool_name": tool_name, "parameters": parameters})


@pytest.fixture
def context(datasets, scripted_llm, tmp_path):
    return build_context(
        datasets=datasets,
        llm=scripted_llm,
        data_config=DataConfig(leave_db_path=tmp_path / "leave.db"),
    )


def test_inventory_question_returns_table(context, scripted_llm) -> None:
    scripted_llm.replies.append(_tool_call("query_inventory", material_id="bearings"))

    result = asyncio.run(context.planner.ainvoke("Do we have bearings in stock?"))

    assert isinstance(result.payload, TablePayload)
    assert [row["Material"] for row in result.payload.rows] == ["BRG-2001", "BRG-2002", "BRG-2003"]
    assert len(scripted_llm.calls) == 1

    trace = context.trace_store.get(result.trace_id)
    assert trace.decision == "tool_call"
    assert trace.extraction_reason is None
    assert trace.extraction_stages == ["classified", "ready"]
    assert [tool.name for tool in trace.tool_traces] == ["query_inventory"]


def test_missing_customer_is_recovered_by_extraction(context, scripted_llm) -> None:
    scripted_llm.replies.extend(
        [
            _tool_call("get_sales_orders", status="open"),
            '{"customer": "TechCorp", "status": "open", "material": null}',
        ]
    )

    result = asyncio.run(context.planner.ainvoke("Show open sales orders for TechCorp"))

    assert isinstance(result.payload, TablePayload)
    assert [row["ID"] for row in result.payload.rows] == [5001, 5005]
    trace = context.trace_store.get(result.trace_id)
    assert trace.extraction_reason == "counterpart_phrase"
    assert trace.parameters["customer"] == "TechCorp"
    assert trace.extraction_stages == ["classified", "needs_extraction", "extracted", "ready"]
    assert scripted_llm.calls[1][2] is True


def test_definition_is_grounded_in_knowledge_base(context, scripted_llm) -> None:
    scripted_llm.replies.extend(
        [
            _tool_call("get_sap_definition", term="fb60"),
            "FB60 is how Accounts Payable posts a vendor invoice without a purchase order.",
        ]
    )

    result = asyncio.run(context.planner.ainvoke("What is fb60?"))

    assert result.payload == TextPayload(
        content="FB60 is how Accounts Payable posts a vendor invoice without a purchase order."
    )
    assert "Transaction code used in SAP FI" in scripted_llm.calls[1][1]
    assert context.trace_store.get(result.trace_id).definition_outcome == "grounded"


def test_leave_request_triggers_form(context, scripted_llm) -> None:
    scripted_llm.replies.append(_tool_call("show_leave_application_form"))

    result = asyncio.run(context.planner.ainvoke("I want to apply for leave next week"))

    assert result.payload == FormTriggerPayload(form="leave_application")
    assert len(scripted_llm.calls) == 1


def test_greeting_is_answered_directly(context, scripted_llm) -> None:
    scripted_llm.replies.append('{"type": "text", "content": "Hello! How can I help?"}')

    result = asyncio.run(context.planner.ainvoke("hello"))

    assert result.payload == TextPayload(content="Hello! How can I help?")
    assert context.trace_store.get(result.trace_id).decision == "text"
    assert result.latency_target_met


def test_unknown_tool_asks_user_to_rephrase(context, scripted_llm) -> None:
    scripted_llm.replies.extend(
        [_tool_call("get_invoices", vendor="SKF"), "Could you tell me what you'd like to see?"]
    )

    result = asyncio.run(context.planner.ainvoke("show invoices from SKF"))

    assert result.payload == TextPayload(content="Could you tell me what you'd like to see?")
    assert "get_invoices" in scripted_llm.calls[1][1]
    assert context.trace_store.get(result.trace_id).decision == "unknown_tool"


def test_unknown_tool_falls_back_when_clarification_fails(context, scripted_llm) -> None:
    scripted_llm.replies.extend([_tool_call("get_invoices"), UpstreamUnavailable("down")])

    result = asyncio.run(context.planner.ainvoke("invoices"))

    assert result.payload == TextPayload(content=UNKNOWN_TOOL_TEXT)


def test_ambiguous_classification_propagates(context, scripted_llm) -> None:
    scripted_llm.replies.append('{"type": "maybe"}')

    with pytest.raises(ClassificationAmbiguous):
        asyncio.run(context.planner.ainvoke("hmm"))
    assert len(context.trace_store) == 0


def test_upstream_failure_propagates(context, scripted_llm) -> None:
    scripted_llm.replies.append(UpstreamUnavailable("Invalid API key", status_code=401))

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(context.planner.ainvoke("Do we have pumps?"))


def test_concurrent_requests_keep_separate_traces(context, scripted_llm) -> None:
    def _route(system_prompt: str, user_prompt: str) -> str:
        if "bearings" in user_prompt:
            return _tool_call("query_inventory", material_id="bearings")
        return _tool_call("get_purchase_orders", vendor="Grundfos")

    scripted_llm.replies.extend([_route, _route])

    async def _both():
        return await asyncio.gather(
            context.planner.ainvoke("Do we have bearings in stock?"),
            context.planner.ainvoke("Purchase orders from Grundfos"),
        )

    bearings, grundfos = asyncio.run(_both())

    assert [row["Material"] for row in bearings.payload.rows] == ["BRG-2001", "BRG-2002", "BRG-2003"]
    assert [row["ID"] for row in grundfos.payload.rows] == [4500017104, 4500017105]
    first = context.trace_store.get(bearings.trace_id)
    second = context.trace_store.get(grundfos.trace_id)
    assert [tool.input_payload for tool in first.tool_traces] == [{"material_id": "bearings"}]
    assert [tool.input_payload for tool in second.tool_traces] == [{"vendor": "Grundfos"}]


def test_deterministic_planner_serves_offline(datasets, tmp_path) -> None:
    context = build_context(
        datasets=datasets,
        use_env_llm=False,
        data_config=DataConfig(leave_db_path=tmp_path / "leave.db"),
    )
    assert isinstance(context.planner, DeterministicPlanner)
    assert context.planner_mode == "deterministic"

    data = asyncio.run(context.planner.ainvoke("what are the purchase orders?"))
    definition = asyncio.run(context.planner.ainvoke("what is a purchase order?"))

    assert isinstance(data.payload, TablePayload)
    assert len(data.payload.rows) == 8
    assert isinstance(definition.payload, TextPayload)
    assert definition.payload.content.startswith("Purchase Order: A legally binding document")

    summary = context.trace_store.summary()
    assert summary["total_requests"] == 2
    assert summary["tool_counts"] == {"get_purchase_orders": 1, "get_sap_definition": 1}
    assert summary["payload_counts"] == {"table": 1, "text": 1}


def test_boolean_tool_argument_is_ignored(context, scripted_llm) -> None:
    scripted_llm.replies.append(
        json.dumps(
            {
                "type": "tool_call",
                "tool_name": "query_inventory",
                "parameters": {"material_id": "bearings", "comparison": "less than", "quantity": True},
            }
        )
    )

    result = asyncio.run(context.planner.ainvoke("Do we have bearings in stock?"))

    assert isinstance(result.payload, TablePayload)
    assert [row["Material"] for row in result.payload.rows] == ["BRG-2001", "BRG-2002", "BRG-2003"]
    assert context.trace_store.get(result.trace_id).parameters["quantity"] is None
