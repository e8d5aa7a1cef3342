import pytest

from sap_assistant.obs.tracing import CostModel, TraceDraft, TraceStore, estimate_token_count


def _record(store: TraceStore, *, payload_type: str = "text", latency_ms: float = 10.0, **draft):
    return store.create_record(
        TraceDraft(utterance="hi", **draft),
        payload_type=payload_type,
        input_tokens=10,
        output_tokens=20,
        latency_ms=latency_ms,
    )


def test_empty_summary() -> None:
    summary = TraceStore().summary()

    assert summary["total_requests"] == 0
    assert summary["tool_counts"] == {}


def test_summary_aggregates_records() -> None:
    store = TraceStore(cost_model=CostModel(input_per_1k=1.0, output_per_1k=2.0))
    _record(store, payload_type="table", tool_name="query_inventory", extraction_reason="no_parameters")
    _record(store, tool_name="get_sap_definition", definition_outcome="grounded", latency_ms=30.0)
    _record(store, decision="text")

    summary = store.summary()

    assert summary["total_requests"] == 3
    assert summary["avg_latency_ms"] == pytest.approx(50.0 / 3)
    assert summary["extraction_rate"] == pytest.approx(1 / 3)
    assert summary["tool_counts"] == {"query_inventory": 1, "get_sap_definition": 1}
    assert summary["payload_counts"] == {"table": 1, "text": 2}
    assert summary["definition_outcomes"] == {"grounded": 1}
    assert summary["total_estimated_cost_usd"] == pytest.approx(0.15)


def test_store_evicts_oldest_records() -> None:
    store = TraceStore(max_records=2)
    first = _record(store)
    _record(store)
    third = _record(store)

    assert len(store) == 2
    assert store.list_recent(limit=1)[0].trace_id == third.trace_id
    assert first.trace_id not in {record.trace_id for record in store.list_recent()}


def test_estimate_token_count() -> None:
    assert estimate_token_count("What is FB60?") == 4
