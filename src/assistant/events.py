"""Progress events emitted while an assistant turn runs.

A turn yields any number of ``Chunk``/``ToolCallStarted``/``ToolResult``
events and ends with exactly one ``Done`` or ``Failed``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.memory.models import MemoryRecord
    from src.tools import base as tool_base


@dataclass
class ContextRetrieved:
    """Memories the context assembler injected into the prompt."""

    memories: list[MemoryRecord] = field(default_factory=list)

    def to_sse(self) -> dict[str, Any]:
        return {
            "type": "context",
            "memories": [
                m.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"embedding"})
                for m in self.memories
            ],
        }


@dataclass
class Chunk:
    text: str

    def to_sse(self) -> dict[str, Any]:
        return {"type": "chunk", "text": self.text}


@dataclass
class ToolCallStarted:
    call: tool_base.ToolCall

    def to_sse(self) -> dict[str, Any]:
        return {"type": "toolCall", **self.call.model_dump()}


@dataclass
class ToolResult:
    """A finished tool call. ``result.display`` carries the observer payload."""

    call: tool_base.ToolCall
    result: tool_base.ToolResult

    def to_sse(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "toolResult",
            "id": self.call.id,
            "name": self.call.name,
            "result": self.result.to_response()["result"],
        }
        if self.result.display is not None:
            data["display"] = self.result.display
        return data


@dataclass
class Done:
    text: str
    rounds: int = 0

    def to_sse(self) -> dict[str, Any]:
        return {"type": "done", "text": self.text, "rounds": self.rounds}


@dataclass
class Failed:
    """Terminal failure. ``text`` keeps whatever was streamed before it."""

    error: Exception
    text: str = ""

    def to_sse(self) -> dict[str, Any]:
        return {
            "type": "error",
            "error": str(self.error) or type(self.error).__name__,
            "kind": type(self.error).__name__,
            "text": self.text,
        }


TurnEvent = ContextRetrieved | Chunk | ToolCallStarted | ToolResult | Done | Failed
