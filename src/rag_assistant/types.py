"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass(frozen=True, slots=True)
class IndexEntry:
    """One embedded fragment of a source document."""

    source: str
    chunk_index: int
    text: str
    embedding: tuple[float, ...]


@dataclass(frozen=True, slots=True)
class Index:
    """Ordered, immutable collection of index entries for one root.

    Entries keep document scan order; a rebuild produces a new `Index` rather
    than mutating this one.
    """

    root: str
    entries: tuple[IndexEntry, ...] = ()

    def __post_init__(self) -> None:
        dimension: int | None = None
        last_chunk: dict[str, int] = {}
        for entry in self.entries:
            if dimension is None:
                dimension = len(entry.embedding)
            elif len(entry.embedding) != dimension:
                raise ValueError(
                    f"Embedding length {len(entry.embedding)} differs from index dimension {dimension}"
                )
            previous = last_chunk.get(entry.source, -1)
            if entry.chunk_index <= previous:
                raise ValueError(
                    f"chunk_index must increase per source: {entry.source}#{entry.chunk_index}"
                )
            last_chunk[entry.source] = entry.chunk_index

    @property
    def dimension(self) -> int | None:
        return len(self.entries[0].embedding) if self.entries else None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[IndexEntry]:
        return iter(self.entries)


@dataclass(frozen=True, slots=True)
class ScoredEntry:
    """A ranking result."""

    entry: IndexEntry
    score: float


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    question: str
    answer: str


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    failed: bool = False


@dataclass(slots=True)
class AgentResult:
    """Outcome of one orchestrated question."""

    answer: str
    iterations: int
    forced_final: bool
    tool_traces: list[ToolTrace] = field(default_factory=list)
