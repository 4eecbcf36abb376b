"""Base types for the tool-calling framework."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from src.memory.embeddings import EmbeddingClient
    from src.memory.models import Attachment
    from src.memory.store import MemoryStore


@dataclass
class ToolResult:
    """Result of a tool execution.

    Every tool returns one of these. ``data`` (or ``error``) goes back to
    the model; ``display`` is an optional richer payload for the UI that
    is never sent to the model.
    """

    data: dict[str, Any] | None = None
    error: str | None = None
    display: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_response(self) -> dict[str, Any]:
        """The ``response`` bag for the model: payload wrapped under ``result``."""
        if self.error:
            return {"result": {"error": self.error}}
        return {"result": self.data or {}}


class ToolParams(BaseModel):
    """Base class for tool parameter models.

    Subclass with Field() definitions. The JSON schema is auto-generated
    via model_json_schema() for the model's tool declarations.
    """


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResponse(BaseModel):
    """A tool result correlated to its call by id."""

    id: str
    name: str
    response: dict[str, Any]


@dataclass
class TurnContext:
    """Per-turn state handed to tool handlers that ask for ``turn``.

    Attributes:
        user_id: Resolved user, or None when the caller is unauthenticated.
        attachments: Files sent with the user message that opened the turn.
        memory_store: Store used by memory tools.
        embeddings: Embedding client used by memory tools.
    """

    user_id: str | None
    memory_store: MemoryStore
    embeddings: EmbeddingClient
    attachments: list[Attachment] = field(default_factory=list)
