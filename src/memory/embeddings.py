"""Text embeddings via the OpenAI embeddings endpoint."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.config import settings
from src.errors import EmbeddingUnavailable, ValidationError

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Turns text into a fixed-length vector.

    Singleton accessed via ``EmbeddingClient.get()``. Pass an explicit
    *client* for tests.
    """

    _instance: EmbeddingClient | None = None

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        max_chars: int | None = None,
    ) -> None:
        self._client = client
        self.model = model or settings.embedding_model
        self.max_chars = max_chars or settings.max_embedding_chars

    @classmethod
    def get(cls) -> EmbeddingClient:
        """Return the shared EmbeddingClient instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.request_timeout_seconds,
                max_retries=1,
            )
        return self._client

    def validate(self, text: str) -> str:
        """Reject empty or oversized input."""
        if not text or not text.strip():
            msg = "text cannot be empty"
            raise ValidationError(msg)
        if len(text) > self.max_chars:
            msg = f"text is too long (max {self.max_chars} characters)"
            raise ValidationError(msg)
        return text

    async def embed(self, text: str) -> list[float]:
        """Embed *text*.

        Raises:
            ValidationError: empty or oversized input.
            EmbeddingUnavailable: provider error, timeout or empty vector.
        """
        self.validate(text)
        try:
            response = await self._get_client().embeddings.create(
                model=self.model,
                input=text,
            )
        except Exception as exc:
            msg = f"Embedding provider failed: {exc}"
            raise EmbeddingUnavailable(msg) from exc

        vector = list(response.data[0].embedding) if response.data else []
        if not vector:
            msg = "Embedding provider returned an empty vector"
            raise EmbeddingUnavailable(msg)
        logger.debug("Embedded %d chars -> %d dims", len(text), len(vector))
        return vector

    async def try_embed(self, text: str) -> list[float] | None:
        """Embed *text*, returning None instead of raising.

        For callers where a missing vector only degrades quality.
        """
        try:
            return await self.embed(text)
        except (EmbeddingUnavailable, ValidationError) as exc:
            logger.warning("Embedding unavailable, continuing without vector: %s", exc)
            return None
