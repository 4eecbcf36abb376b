"""Async Claude API client: single-shot completions and streamed exchanges."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import anthropic

from src.config import settings
from src.errors import StreamError
from src.llm.backend import ExchangeDone, FunctionCalls, TextChunk
from src.llm.prompt import build_user_content
from src.tools import registry as default_registry
from src.tools.base import ToolCall

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from src.llm.backend import ExchangeEvent
    from src.llm.session import ChatSession, SessionStore
    from src.tools.base import ToolResponse
    from src.tools.registry import ToolRegistry
    from src.validation import ExchangeRequest

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None

ABANDONED_TOOL_RESULT = "The user moved on before this tool call completed."
MISSING_TOOL_RESULT = "No result was provided for this tool call."


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.request_timeout_seconds,
        )
    return _client


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | list[dict[str, Any]] | None = None,
    model: str | None = None,
    max_tokens: int | None = None,
) -> str:
    """Single-shot Claude call — no tools, no session, no streaming.

    Use this for isolated LLM tasks (summarization, tagging) where a
    chat session is not needed.
    """
    client = _get_client()
    kwargs: dict[str, Any] = {
        "model": model or settings.chat_model,
        "max_tokens": max_tokens or settings.chat_max_tokens,
        "messages": messages,
    }
    if system is not None:
        kwargs["system"] = system
    response = await client.messages.create(**kwargs)
    return "".join(b.text for b in response.content if b.type == "text")


def _serialize_content(content: list[Any]) -> list[dict[str, Any]]:
    """Convert SDK content blocks to plain dicts for message history."""
    result: list[dict[str, Any]] = []
    for block in content:
        if block.type == "text":
            result.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            result.append({
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            })
    return result


def _is_error_response(response: dict[str, Any]) -> bool:
    result = response.get("result")
    return isinstance(result, dict) and "error" in result


def _tool_result_block(tool_use_id: str, content: str, is_error: bool) -> dict[str, Any]:
    return {
        "type": "tool_result",
        "tool_use_id": tool_use_id,
        "content": content,
        "is_error": is_error,
    }


def _error_content(message: str) -> str:
    return json.dumps({"result": {"error": message}})


def tool_result_blocks(
    pending_ids: list[str], responses: list[ToolResponse]
) -> list[dict[str, Any]]:
    """Answer every pending tool_use id, in the order the model asked.

    Ids the caller did not answer get an error result so the history
    stays valid. Responses for unknown ids are appended after them.
    """
    by_id = {r.id: r for r in responses}
    order = list(pending_ids) + [r.id for r in responses if r.id not in pending_ids]
    blocks = []
    for tool_use_id in order:
        response = by_id.get(tool_use_id)
        if response is None:
            blocks.append(_tool_result_block(tool_use_id, _error_content(MISSING_TOOL_RESULT), True))
            continue
        blocks.append(
            _tool_result_block(
                tool_use_id,
                json.dumps(response.response),
                _is_error_response(response.response),
            )
        )
    return blocks


class AnthropicBackend:
    """Local-direct backend: one exchange is one ``messages.stream`` call.

    History lives in a ``ChatSession`` so continuations only carry the
    tool results.
    """

    def __init__(
        self,
        sessions: SessionStore,
        *,
        client: anthropic.AsyncAnthropic | None = None,
        tools: ToolRegistry | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.sessions = sessions
        self._client = client
        self.tools = tools or default_registry
        self.model = model or settings.chat_model
        self.max_tokens = max_tokens or settings.chat_max_tokens

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = _get_client()
        return self._client

    def _build_input(
        self, session: ChatSession, request: ExchangeRequest
    ) -> list[dict[str, Any]]:
        if request.is_continuation:
            return tool_result_blocks(session.pending_tool_ids, request.function_responses)

        blocks: list[dict[str, Any]] = [
            _tool_result_block(tid, _error_content(ABANDONED_TOOL_RESULT), True)
            for tid in session.pending_tool_ids
        ]
        blocks.extend(
            build_user_content(
                request.message,
                context=request.context_memories,
                attachments=request.attachments,
            )
        )
        return blocks

    async def exchange(
        self, request: ExchangeRequest, user_id: str | None
    ) -> AsyncIterator[ExchangeEvent]:
        session = self.sessions.get_or_create(request.session_id, user_id, request.user_name)
        pending_before = list(session.pending_tool_ids)

        session.messages.append({"role": "user", "content": self._build_input(session, request)})
        session.pending_tool_ids = []

        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": [
                {
                    "type": "text",
                    "text": session.system_prompt,
                    "cache_control": {"type": "ephemeral"},
                },
            ],
            "messages": session.messages,
        }
        tool_schemas = self.tools.get_schemas()
        if tool_schemas:
            kwargs["tools"] = tool_schemas

        text = ""
        try:
            async with self.client.messages.stream(**kwargs) as stream:
                async for delta in stream.text_stream:
                    text += delta
                    yield TextChunk(delta)
                response = await stream.get_final_message()
        except anthropic.APIError as exc:
            session.messages.pop()
            session.pending_tool_ids = pending_before
            logger.warning("Exchange failed for session %s: %s", session.key, exc)
            raise StreamError(str(exc) or "Model request failed") from exc

        session.messages.append({
            "role": "assistant",
            "content": _serialize_content(response.content),
        })

        calls = [
            ToolCall(id=b.id, name=b.name, args=dict(b.input or {}))
            for b in response.content
            if b.type == "tool_use"
        ]
        if not calls:
            yield ExchangeDone(text=text)
            return

        session.pending_tool_ids = [c.id for c in calls]
        logger.info(
            "Session %s: %d tool call(s): %s",
            session.key,
            len(calls),
            ", ".join(c.name for c in calls),
        )
        yield FunctionCalls(calls=calls)
        yield ExchangeDone(text=text, needs_function_response=True)

    async def reset(self, session_id: str, user_id: str | None) -> None:
        self.sessions.reset(session_id, user_id)
