"""Cosine-similarity ranking over an index."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from math import sqrt

from rag_assistant.types import IndexEntry, ScoredEntry


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return dot(a, b) / (|a| * |b|), or 0.0 when either norm is zero."""

    if len(a) != len(b):
        raise ValueError(f"Vector lengths differ: {len(a)} != {len(b)}")
    numerator = sum(x * y for x, y in zip(a, b))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)


def rank(
    entries: Iterable[IndexEntry], query_vector: Sequence[float], top_n: int
) -> list[ScoredEntry]:
    """Score every entry against the query and keep the best `top_n`.

    Sorting is stable, so entries with equal scores keep index order.
    """

    if top_n < 0:
        raise ValueError("top_n must be non-negative")
    scored = [
        ScoredEntry(entry=entry, score=cosine_similarity(entry.embedding, query_vector))
        for entry in entries
    ]
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored[:top_n]


def filter_by_threshold(ranked: Iterable[ScoredEntry], threshold: float) -> list[ScoredEntry]:
    return [item for item in ranked if item.score >= threshold]
