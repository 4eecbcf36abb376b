"""Remote-proxy backend: runs exchanges through another Jarvis server."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx
import pydantic

from src.config import settings
from src.errors import StreamError
from src.llm.backend import ExchangeDone, FunctionCalls, TextChunk
from src.tools.base import ToolCall

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from src.llm.backend import ExchangeEvent
    from src.validation import ExchangeRequest

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/chat/message-stream"
RESET_PATH = "/api/chat/reset"

_TOOL_CALLS = pydantic.TypeAdapter(list[ToolCall])


async def parse_sse(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """Yield the JSON payload of every ``data:`` line.

    Lines that are not valid JSON objects are skipped with a warning.
    """
    async for line in lines:
        if not line.startswith("data:"):
            continue
        raw = line[5:].strip()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed SSE payload: %.200s", raw)
            continue
        if isinstance(data, dict):
            yield data


def _error_message(body: bytes, status: int) -> str:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"Remote server returned HTTP {status}"


class RemoteBackend:
    """Speaks the ``connected/chunk/functionCalls/done/error`` event protocol."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout or settings.request_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "text/event-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self._transport,
        )

    async def exchange(
        self, request: ExchangeRequest, user_id: str | None
    ) -> AsyncIterator[ExchangeEvent]:
        # The remote server resolves the user from the bearer token.
        text = ""
        calls: list[ToolCall] = []
        try:
            async with self._client() as client, client.stream(
                "POST", STREAM_PATH, json=request.to_wire()
            ) as resp:
                if resp.status_code >= 400:
                    raise StreamError(_error_message(await resp.aread(), resp.status_code))

                async for data in parse_sse(resp.aiter_lines()):
                    kind = data.get("type")
                    if kind == "chunk":
                        chunk = data.get("text") or ""
                        text += chunk
                        yield TextChunk(chunk)
                    elif kind == "functionCalls":
                        try:
                            calls = _TOOL_CALLS.validate_python(data.get("calls") or [])
                        except pydantic.ValidationError as exc:
                            logger.warning("Malformed functionCalls event: %s", exc)
                            msg = "Malformed functionCalls event"
                            raise StreamError(msg) from exc
                        yield FunctionCalls(calls=calls)
                    elif kind == "done":
                        yield ExchangeDone(
                            text=data.get("text", text),
                            needs_function_response=bool(data.get("needsFunctionResponse")),
                        )
                        return
                    elif kind == "error":
                        raise StreamError(data.get("error") or "Remote exchange failed")
        except httpx.HTTPError as exc:
            logger.warning("Remote exchange to %s failed: %s", self.base_url, exc)
            raise StreamError(f"Remote exchange failed: {exc}") from exc

        # The stream closed without a done event.
        logger.warning("Remote stream ended without a done event")
        yield ExchangeDone(text=text, needs_function_response=bool(calls))

    async def reset(self, session_id: str, user_id: str | None) -> None:
        try:
            async with self._client() as client:
                resp = await client.post(RESET_PATH, json={"sessionId": session_id})
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise StreamError(f"Remote reset failed: {exc}") from exc
