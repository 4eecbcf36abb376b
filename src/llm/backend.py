"""Model backends and the events of a single exchange.

An exchange is one request to the model: a new user message or a batch
of tool results. It streams ``TextChunk`` events and ends with
``ExchangeDone``. When the model asks for tools, ``FunctionCalls`` comes
immediately before ``ExchangeDone(needs_function_response=True)`` and the
caller must answer in a new exchange.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from src.config import Settings
    from src.llm.session import SessionStore
    from src.tools.base import ToolCall
    from src.validation import ExchangeRequest


@dataclass
class TextChunk:
    text: str

    def to_sse(self) -> dict[str, Any]:
        return {"type": "chunk", "text": self.text}


@dataclass
class FunctionCalls:
    calls: list[ToolCall] = field(default_factory=list)

    def to_sse(self) -> dict[str, Any]:
        return {"type": "functionCalls", "calls": [c.model_dump() for c in self.calls]}


@dataclass
class ExchangeDone:
    text: str
    needs_function_response: bool = False

    def to_sse(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "done", "text": self.text}
        if self.needs_function_response:
            data["needsFunctionResponse"] = True
        return data


ExchangeEvent = TextChunk | FunctionCalls | ExchangeDone


class ModelBackend(Protocol):
    """Something that can run one exchange against a model."""

    def exchange(
        self, request: ExchangeRequest, user_id: str | None
    ) -> AsyncIterator[ExchangeEvent]:
        """Stream the events of one exchange.

        Raises:
            StreamError: the provider or transport failed mid-exchange.
        """
        ...

    async def reset(self, session_id: str, user_id: str | None) -> None:
        """Forget the conversation held for this session."""
        ...


async def collect(events: AsyncIterator[ExchangeEvent]) -> dict[str, Any]:
    """Drain an exchange into the non-streaming ``{text, functionCalls}`` shape."""
    text = ""
    calls: list[ToolCall] = []
    async for event in events:
        if isinstance(event, TextChunk):
            text += event.text
        elif isinstance(event, FunctionCalls):
            calls = event.calls
    return {"text": text, "functionCalls": [c.model_dump() for c in calls]}


def build_backend(config: Settings, sessions: SessionStore) -> ModelBackend:
    """Pick the backend named by ``config.model_backend``."""
    if config.model_backend == "remote":
        from src.llm.remote import RemoteBackend

        return RemoteBackend(base_url=config.remote_api_url, token=config.remote_api_token)
    if config.model_backend == "local":
        from src.llm.client import AnthropicBackend

        return AnthropicBackend(sessions)
    msg = f"Unknown model backend: {config.model_backend!r}"
    raise ValueError(msg)
