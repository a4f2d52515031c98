"""Per-question trace records and timing."""

from __future__ import annotations

import time
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from rag_assistant.types import AgentResult, ToolTrace


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    question: str
    answer: str
    context_mode: str
    sources: list[str]
    tool_traces: list[ToolTrace]
    iterations: int
    forced_final: bool
    latency_ms: float


class TraceStore:
    """In-memory trace storage for the session's answered questions."""

    def __init__(self, max_records: int = 500) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._max_records = max_records

    def create_record(
        self,
        *,
        question: str,
        result: AgentResult,
        context_mode: str,
        sources: list[str],
        latency_ms: float,
    ) -> TraceRecord:
        record = TraceRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            question=question,
            answer=result.answer,
            context_mode=context_mode,
            sources=sources,
            tool_traces=list(result.tool_traces),
            iterations=result.iterations,
            forced_final=result.forced_final,
            latency_ms=latency_ms,
        )
        self._records[record.trace_id] = record
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

    def summary(self) -> dict[str, Any]:
        """Aggregate loop and tool metrics over the stored records."""
        records = list(self._records.values())
        total = len(records)
        traces = [trace for record in records for trace in record.tool_traces]
        summary: dict[str, Any] = {
            "total_requests": total,
            "avg_latency_ms": 0.0,
            "avg_iterations": 0.0,
            "forced_final_count": sum(1 for record in records if record.forced_final),
            "tool_calls": len(traces),
            "failed_tool_calls": sum(1 for trace in traces if trace.failed),
            "tool_usage": dict(Counter(trace.name for trace in traces)),
            "context_modes": dict(Counter(record.context_mode for record in records)),
        }
        if total:
            summary["avg_latency_ms"] = sum(record.latency_ms for record in records) / total
            summary["avg_iterations"] = sum(record.iterations for record in records) / total
        return summary


class Timer:
    """Simple context timer."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
