"""Embedding abstractions, an Ollama client and a deterministic baseline."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

import httpx

from rag_assistant.config import EmbeddingConfig

logger = logging.getLogger(__name__)


class Embedder(ABC):
    """Embedder interface used by indexing and retrieval components."""

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many documents."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""

    def close(self) -> None:
        """Release any underlying resources."""


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    Used for offline runs and tests; `OllamaEmbedder` is the networked one.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class OllamaEmbedder(Embedder):
    """Calls a local Ollama server's `/api/embed` endpoint."""

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config or EmbeddingConfig()
        self._client = client or httpx.Client(
            base_url=self.config.base_url, timeout=self.config.timeout_seconds
        )

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return self._embed(texts)

    def embed_query(self, text: str) -> list[float]:
        return self._embed([text])[0]

    def _embed(self, inputs: list[str]) -> list[list[float]]:
        response = self._client.post(
            "/api/embed", json={"model": self.config.model, "input": inputs}
        )
        response.raise_for_status()
        embeddings = response.json().get("embeddings") or []
        if len(embeddings) != len(inputs):
            raise ValueError(
                f"Expected {len(inputs)} embeddings from Ollama, got {len(embeddings)}"
            )
        logger.debug("Embedded %d text(s) with %s", len(inputs), self.config.model)
        return [[float(value) for value in vector] for vector in embeddings]

    def close(self) -> None:
        self._client.close()


def create_embedder(config: EmbeddingConfig) -> Embedder:
    if config.provider == "hashing":
        logger.info("Using offline hashing embedder (%d dimensions)", config.dimension)
        return HashingEmbedder(dimension=config.dimension)
    logger.info("Using Ollama embedder %s at %s", config.model, config.base_url)
    return OllamaEmbedder(config)
