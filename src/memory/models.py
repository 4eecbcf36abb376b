"""Data models for memory and conversation storage.

Python attributes are snake_case; the wire format (HTTP bodies, tool
results) uses the camelCase names the web client expects.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(UTC)


class WireModel(BaseModel):
    """Base for models that travel over HTTP with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MemoryType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    FILE = "file"

    @classmethod
    def from_mime(cls, mime_type: str) -> MemoryType:
        """Classify an attachment MIME type: image/*, audio/*, anything else is a file."""
        if mime_type.startswith("image/"):
            return cls.IMAGE
        if mime_type.startswith("audio/"):
            return cls.AUDIO
        return cls.FILE


class Attachment(WireModel):
    """A file sent alongside a user message (base64 payload)."""

    type: str = "file"
    mime_type: str
    data: str
    name: str | None = None


class MemoryRecord(WireModel):
    """A persisted memory."""

    id: int
    content: str
    category: str = "general"
    tags: list[str] = Field(default_factory=list)
    type: MemoryType = MemoryType.TEXT
    media_data: str | None = None
    media_mime_type: str | None = None
    media_name: str | None = None
    embedding: list[float] | None = None
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


class SanitizedMemory(WireModel):
    """A memory stripped of ``media_data`` and ``embedding``.

    This is the only shape that may be forwarded to the model.
    """

    id: int
    content: str
    category: str
    tags: list[str]
    timestamp: datetime
    type: MemoryType
    media_name: str | None = None


class Message(WireModel):
    """A single conversation message."""

    id: str = ""
    role: str
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    attachments: list[Attachment] = Field(default_factory=list)
    latency_ms: int | None = None


class ConversationRecord(WireModel):
    """A saved conversation. ``messages`` is empty in list views."""

    id: str
    title: str
    messages: list[Message] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)
