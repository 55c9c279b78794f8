"""Tests for similarity helpers and the LiteLLM embedding provider."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from mnemos.llm.embeddings import (
    DocumentWithEmbedding,
    LiteLLMEmbeddingProvider,
    cosine_similarity,
    find_most_similar,
)
from mnemos.memory.base import EmbeddingError


def test_cosine_similarity_basics():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)


def test_cosine_similarity_zero_vector():
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_similarity_length_mismatch():
    with pytest.raises(ValueError):
        cosine_similarity([1.0], [1.0, 2.0])


def test_find_most_similar_orders_and_limits():
    docs = [
        DocumentWithEmbedding(id="far", content="far", embedding=[0.0, 1.0]),
        DocumentWithEmbedding(id="near", content="near", embedding=[1.0, 0.1]),
        DocumentWithEmbedding(id="mid", content="mid", embedding=[1.0, 1.0]),
    ]
    results = find_most_similar([1.0, 0.0], docs, top_k=2)
    assert [r.id for r in results] == ["near", "mid"]


def test_find_most_similar_stable_ties():
    docs = [DocumentWithEmbedding(id=str(i), content="", embedding=[1.0, 1.0]) for i in range(4)]
    assert [r.id for r in find_most_similar([1.0, 1.0], docs, top_k=4)] == ["0", "1", "2", "3"]


def _response(vector: list[float]) -> SimpleNamespace:
    return SimpleNamespace(data=[{"object": "embedding", "index": 0, "embedding": vector}])


@pytest.mark.asyncio
async def test_litellm_provider_returns_vector():
    provider = LiteLLMEmbeddingProvider(model="text-embedding-3-small", dimensions=3, api_key="sk-test")
    with patch("mnemos.llm.embeddings.litellm.aembedding", new=AsyncMock(return_value=_response([0.1, 0.2, 0.3]))) as mock:
        embedding = await provider.create_embedding("hello")

    assert embedding == [0.1, 0.2, 0.3]
    mock.assert_awaited_once()
    kwargs = mock.call_args.kwargs
    assert kwargs["model"] == "text-embedding-3-small"
    assert kwargs["input"] == ["hello"]
    assert kwargs["api_key"] == "sk-test"


@pytest.mark.asyncio
async def test_litellm_provider_wrong_dimension():
    provider = LiteLLMEmbeddingProvider(dimensions=4)
    with patch("mnemos.llm.embeddings.litellm.aembedding", new=AsyncMock(return_value=_response([0.1, 0.2]))):
        with pytest.raises(EmbeddingError):
            await provider.create_embedding("hello")


@pytest.mark.asyncio
async def test_litellm_provider_wraps_errors():
    provider = LiteLLMEmbeddingProvider(dimensions=4)
    with patch("mnemos.llm.embeddings.litellm.aembedding", new=AsyncMock(side_effect=ConnectionError("offline"))):
        with pytest.raises(EmbeddingError, match="offline"):
            await provider.create_embedding("hello")


@pytest.mark.asyncio
async def test_litellm_provider_empty_response():
    provider = LiteLLMEmbeddingProvider(dimensions=4)
    with patch("mnemos.llm.embeddings.litellm.aembedding", new=AsyncMock(return_value=SimpleNamespace(data=[]))):
        with pytest.raises(EmbeddingError):
            await provider.create_embedding("hello")
