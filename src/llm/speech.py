"""Text-to-speech via the OpenAI audio endpoint.

Audio comes back as raw 16-bit little-endian PCM, mono, 24 kHz, and is
returned base64-encoded for JSON transport.
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING

from src.config import settings
from src.errors import SpeechUnavailable, ValidationError

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

SAMPLE_RATE = 24_000
CHANNELS = 1
MAX_SPEECH_CHARS = 4096

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client  # noqa: PLW0603
    if _client is None:
        from openai import AsyncOpenAI

        _client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.request_timeout_seconds,
            max_retries=1,
        )
    return _client


async def synthesize_speech(text: str, *, client: AsyncOpenAI | None = None) -> str:
    """Speak *text* and return base64 PCM16 mono 24 kHz audio.

    Raises:
        ValidationError: empty text.
        SpeechUnavailable: provider error or empty audio.
    """
    if not text or not text.strip():
        msg = "text cannot be empty"
        raise ValidationError(msg)
    if len(text) > MAX_SPEECH_CHARS:
        logger.info("Truncating speech input from %d to %d chars", len(text), MAX_SPEECH_CHARS)
        text = text[:MAX_SPEECH_CHARS]

    client = client or _get_client()
    try:
        response = await client.audio.speech.create(
            model=settings.speech_model,
            voice=settings.speech_voice,
            input=text,
            response_format="pcm",
        )
    except Exception as exc:
        msg = f"Speech provider failed: {exc}"
        raise SpeechUnavailable(msg) from exc

    audio = response.content
    if not audio:
        msg = "Speech provider returned no audio"
        raise SpeechUnavailable(msg)
    logger.debug("Synthesized %d chars -> %d bytes of PCM", len(text), len(audio))
    return base64.b64encode(audio).decode("ascii")
