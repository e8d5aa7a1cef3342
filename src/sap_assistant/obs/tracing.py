"""Request tracing, cost accounting and aggregate metrics."""

from __future__ import annotations

import re
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sap_assistant.types import ToolTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    utterance: str
    decision: str
    tool_name: str | None
    parameters: dict[str, Any]
    extraction_reason: str | None
    extraction_stages: list[str]
    payload_type: str
    definition_outcome: str | None
    tool_traces: list[ToolTrace]
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    latency_ms: float


@dataclass(slots=True)
class CostModel:
    """Simple token pricing model (USD per 1K tokens)."""

    input_per_1k: float = 0.00005
    output_per_1k: float = 0.00008

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens / 1000.0) * self.input_per_1k + (
            output_tokens / 1000.0
        ) * self.output_per_1k


@dataclass(slots=True)
class TraceDraft:
    """Mutable per-request builder; one instance per pipeline run."""

    utterance: str
    decision: str = "unknown"
    tool_name: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    extraction_reason: str | None = None
    extraction_stages: list[str] = field(default_factory=list)
    definition_outcome: str | None = None
    tool_traces: list[ToolTrace] = field(default_factory=list)


class TraceStore:
    """In-memory trace storage for API-level observability."""

    def __init__(
        self,
        *,
        cost_model: CostModel | None = None,
        max_records: int = 1000,
    ) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._cost_model = cost_model or CostModel()
        self._max_records = max_records

    def create_record(
        self,
        draft: TraceDraft,
        *,
        payload_type: str,
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
    ) -> TraceRecord:
        trace_id = str(uuid.uuid4())
        record = TraceRecord(
            trace_id=trace_id,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            utterance=draft.utterance,
            decision=draft.decision,
            tool_name=draft.tool_name,
            parameters=dict(draft.parameters),
            extraction_reason=draft.extraction_reason,
            extraction_stages=list(draft.extraction_stages),
            payload_type=payload_type,
            definition_outcome=draft.definition_outcome,
            tool_traces=list(draft.tool_traces),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=self._cost_model.estimate_cost(input_tokens, output_tokens),
            latency_ms=latency_ms,
        )
        self._records[trace_id] = record
        while len(self._records) > self._max_records:
            del self._records[next(iter(self._records))]
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        if limit <= 0:
            return []
        return list(self._records.values())[-limit:]

    def __len__(self) -> int:
        return len(self._records)

    def summary(self) -> dict[str, Any]:
        """Aggregate core observability metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "extraction_rate": 0.0,
                "total_input_tokens": 0,
                "total_output_tokens": 0,
                "total_estimated_cost_usd": 0.0,
                "tool_counts": {},
                "payload_counts": {},
                "definition_outcomes": {},
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        extracted = sum(1 for record in records if record.extraction_reason is not None)

        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "extraction_rate": extracted / total,
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
            "tool_counts": dict(Counter(r.tool_name for r in records if r.tool_name)),
            "payload_counts": dict(Counter(record.payload_type for record in records)),
            "definition_outcomes": dict(
                Counter(r.definition_outcome for r in records if r.definition_outcome)
            ),
        }


class Timer:
    """Simple context timer used by planner."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
