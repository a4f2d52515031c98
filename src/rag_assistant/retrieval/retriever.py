"""Query-time retrieval and prompt context assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from rag_assistant.config import IndexConfig, RetrievalConfig
from rag_assistant.errors import RetrievalDegradation
from rag_assistant.ingest.embedder import Embedder
from rag_assistant.ingest.files import iter_source_files, read_text_file, relative_source
from rag_assistant.retrieval.ranker import filter_by_threshold, rank
from rag_assistant.types import Index, ScoredEntry

logger = logging.getLogger(__name__)


class Retriever:
    """Embeds a query and ranks it against the active index.

    The active index is replaced wholesale through `swap_index`; queries read
    whichever `Index` object was current when they started.
    """

    def __init__(
        self,
        index: Index,
        embedder: Embedder,
        config: RetrievalConfig | None = None,
    ) -> None:
        self._index = index
        self.embedder = embedder
        self.config = config or RetrievalConfig()

    @property
    def index(self) -> Index:
        return self._index

    def swap_index(self, index: Index) -> None:
        self._index = index

    def search(
        self,
        query: str,
        *,
        top_n: int | None = None,
        threshold: float | None = None,
    ) -> list[ScoredEntry]:
        """Return ranked entries scoring at least `threshold`, best first."""

        index = self._index
        try:
            query_vector = self.embedder.embed_query(query)
        except Exception as exc:
            raise RetrievalDegradation(f"Query embedding failed: {exc}") from exc

        if index.dimension is not None and len(query_vector) != index.dimension:
            raise RetrievalDegradation(
                f"Query vector has {len(query_vector)} dimensions, index has {index.dimension}"
            )

        ranked = rank(index, query_vector, top_n or self.config.top_n)
        limit = self.config.threshold if threshold is None else threshold
        return filter_by_threshold(ranked, limit)


@dataclass(slots=True)
class RetrievalContext:
    """Prompt context plus how it was produced (`ranked`, `raw` or `empty`)."""

    text: str
    mode: str
    hits: list[ScoredEntry] = field(default_factory=list)


class ContextBuilder:
    """Turns a question into documentation context for the system prompt.

    When ranking fails or nothing clears the threshold, the leading part of
    the indexed files is used instead, unranked.
    """

    def __init__(
        self,
        retriever: Retriever,
        index_config: IndexConfig | None = None,
    ) -> None:
        self.retriever = retriever
        self.index_config = index_config or IndexConfig()

    def build(self, question: str) -> RetrievalContext:
        try:
            hits = self.retriever.search(question)
        except RetrievalDegradation as exc:
            logger.warning("Retrieval degraded, using raw context: %s", exc)
            hits = []

        if hits:
            logger.info("Retrieved %d relevant fragment(s)", len(hits))
            return RetrievalContext(text=format_hits(hits), mode="ranked", hits=hits)

        raw = self.raw_context()
        if raw:
            return RetrievalContext(text=raw, mode="raw")
        return RetrievalContext(text="", mode="empty")

    def raw_context(self) -> str:
        config = self.retriever.config
        if config.fallback_max_files == 0:
            return ""
        root = Path(self.retriever.index.root)
        if not root.is_dir():
            return ""

        sections: list[str] = []
        for path in iter_source_files(
            root, self.index_config.included_extensions, self.index_config.excluded_dirs
        ):
            try:
                text = read_text_file(path)
            except OSError:
                continue
            if not text or not text.strip():
                continue
            head = text[: config.fallback_chars_per_file]
            sections.append(f"[{relative_source(path, root)}]\n{head}")
            if len(sections) >= config.fallback_max_files:
                break
        return "\n\n".join(sections)


def format_hits(hits: list[ScoredEntry]) -> str:
    return "\n\n".join(
        f"[Source {i}: {hit.entry.source}, chunk #{hit.entry.chunk_index}, score={hit.score:.2f}]\n"
        f"{hit.entry.text}"
        for i, hit in enumerate(hits, start=1)
    )
