"""Embedding provider interface and LiteLLM implementation."""

import math
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

import litellm

from mnemos.core.logging import get_logger
from mnemos.memory.base import EmbeddingError

logger = get_logger("llm.embeddings")

# Disable LiteLLM's verbose logging
litellm.suppress_debug_info = True


@dataclass
class DocumentWithEmbedding:
    id: str
    content: str
    embedding: list[float]


@dataclass
class SimilarityResult:
    id: str
    content: str
    similarity: float


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine of the angle between two vectors, 0.0 if either is all zeros."""
    if len(a) != len(b):
        raise ValueError(f"Vectors must have the same length ({len(a)} != {len(b)})")

    dot = sum(x * y for x, y in zip(a, b))
    magnitude = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if magnitude == 0:
        return 0.0
    return dot / magnitude


def find_most_similar(
    query_embedding: list[float],
    documents: Iterable[DocumentWithEmbedding],
    top_k: int = 5,
) -> list[SimilarityResult]:
    """Rank documents by similarity, highest first. Ties keep input order."""
    results = [
        SimilarityResult(
            id=doc.id,
            content=doc.content,
            similarity=cosine_similarity(query_embedding, doc.embedding),
        )
        for doc in documents
    ]
    # sorted() is stable, so equal scores stay in insertion order
    results = sorted(results, key=lambda r: r.similarity, reverse=True)
    return results[:max(top_k, 0)]


class EmbeddingProvider(ABC):
    """Turns text into fixed-length vectors."""

    @abstractmethod
    async def create_embedding(self, text: str) -> list[float]:
        """Embed text. Raises EmbeddingError on failure."""
        ...

    def cosine_similarity(self, a: list[float], b: list[float]) -> float:
        return cosine_similarity(a, b)

    def find_most_similar(
        self,
        query_embedding: list[float],
        documents: Iterable[DocumentWithEmbedding],
        top_k: int = 5,
    ) -> list[SimilarityResult]:
        return find_most_similar(query_embedding, documents, top_k)


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embeddings via litellm.aembedding (OpenAI and compatible providers)."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        api_key: str | None = None,
    ):
        self.model = model
        self.dimensions = dimensions
        self.api_key = api_key or None

    async def create_embedding(self, text: str) -> list[float]:
        logger.debug(f"Creating embedding ({len(text)} chars) with {self.model}")

        kwargs = {"model": self.model, "input": [text]}
        if self.api_key:
            kwargs["api_key"] = self.api_key

        try:
            response = await litellm.aembedding(**kwargs)
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if not response.data:
            raise EmbeddingError("No embedding returned from provider")

        embedding = [float(x) for x in response.data[0]["embedding"]]
        if len(embedding) != self.dimensions:
            raise EmbeddingError(
                f"Expected {self.dimensions}-dim embedding, got {len(embedding)}"
            )

        logger.debug(f"Embedding created ({len(embedding)} dims)")
        return embedding
