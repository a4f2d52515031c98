"""Sliding-window character chunking."""

from __future__ import annotations

from rag_assistant.config import ChunkingConfig


def chunk_text(text: str, chunk_size: int = 500, overlap: int = 50) -> list[str]:
    """Split text into overlapping fixed-size windows.

    The text is trimmed first. Text no longer than `chunk_size` comes back as a
    single fragment; otherwise a `chunk_size`-wide window slides forward by
    `chunk_size - overlap` characters until it would start at or past the end.
    The last window may be shorter than `chunk_size`.
    """

    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must satisfy 0 <= overlap < chunk_size")

    trimmed = text.strip()
    if len(trimmed) <= chunk_size:
        return [trimmed]

    stride = chunk_size - overlap
    return [
        trimmed[start : start + chunk_size]
        for start in range(0, len(trimmed), stride)
    ]


class SlidingWindowChunker:
    """Character-count chunker bound to a `ChunkingConfig`.

    Not semantics-aware: windows may cut through words and sentences. The
    overlap keeps neighbouring context available for retrieval.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str) -> list[str]:
        return chunk_text(text, self.config.chunk_size, self.config.overlap)
