"""Tests for the embedding client."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.errors import EmbeddingUnavailable, ValidationError
from src.memory.embeddings import EmbeddingClient


def _client_returning(vector: list[float]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=vector)]
    client = MagicMock()
    client.embeddings.create = AsyncMock(return_value=response)
    return client


async def test_embed_returns_vector() -> None:
    client = _client_returning([0.1, 0.2, 0.3])
    emb = EmbeddingClient(client=client, model="text-embedding-test")

    assert await emb.embed("hello") == [0.1, 0.2, 0.3]
    client.embeddings.create.assert_awaited_once_with(model="text-embedding-test", input="hello")


async def test_embed_rejects_blank_text() -> None:
    emb = EmbeddingClient(client=_client_returning([1.0]))
    with pytest.raises(ValidationError):
        await emb.embed("   ")


async def test_embed_rejects_oversized_text() -> None:
    emb = EmbeddingClient(client=_client_returning([1.0]), max_chars=10)
    with pytest.raises(ValidationError, match="too long"):
        await emb.embed("x" * 11)


async def test_provider_error_is_unavailable() -> None:
    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=RuntimeError("timeout"))
    emb = EmbeddingClient(client=client)
    with pytest.raises(EmbeddingUnavailable, match="timeout"):
        await emb.embed("hello")


async def test_empty_vector_is_unavailable() -> None:
    emb = EmbeddingClient(client=_client_returning([]))
    with pytest.raises(EmbeddingUnavailable):
        await emb.embed("hello")


async def test_try_embed_swallows_failures(broken_embeddings: EmbeddingClient) -> None:
    assert await broken_embeddings.try_embed("hello") is None
    assert await broken_embeddings.try_embed("") is None


def test_singleton_reset() -> None:
    EmbeddingClient._reset()
    first = EmbeddingClient.get()
    assert EmbeddingClient.get() is first
    EmbeddingClient._reset()
    assert EmbeddingClient.get() is not first
    EmbeddingClient._reset()
