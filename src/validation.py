"""Request bodies and input limits.

Every HTTP body is parsed into one of these models before it reaches a
store or the model provider. ``parse_body`` converts pydantic's errors
into ``errors.ValidationError`` so handlers can map them to 400s.
"""

from __future__ import annotations

from typing import Annotated, Any, TypeVar

import pydantic
from pydantic import AfterValidator, Field, model_validator

from src.errors import ValidationError
from src.memory.models import Attachment, Message, MemoryType, WireModel
from src.tools.base import ToolResponse

MAX_MESSAGE_LENGTH = 100_000
MAX_TEXT_LENGTH = 50_000
MAX_ATTACHMENTS = 10
MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024
MAX_CONTEXT_LENGTH = 50_000
MAX_SESSION_ID_LENGTH = 200
MAX_USER_NAME_LENGTH = 100
MAX_FUNCTION_RESPONSES = 10
MAX_FILE_NAME_LENGTH = 500

M = TypeVar("M", bound=pydantic.BaseModel)

ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "audio/mpeg",
    "audio/wav",
    "audio/webm",
    "application/pdf",
    "text/plain",
    "text/markdown",
    "application/json",
})


def estimated_size(data: str) -> int:
    """Decoded size of a base64 payload, estimated from its length."""
    return len(data) * 3 // 4


def check_attachment(attachment: Attachment) -> Attachment:
    if attachment.mime_type not in ALLOWED_MIME_TYPES:
        msg = f"unsupported MIME type: {attachment.mime_type}"
        raise ValueError(msg)
    if not attachment.data:
        msg = "missing data"
        raise ValueError(msg)
    if estimated_size(attachment.data) > MAX_ATTACHMENT_BYTES:
        msg = f"attachment is too large (max {MAX_ATTACHMENT_BYTES // (1024 * 1024)}MB)"
        raise ValueError(msg)
    return attachment


InboundAttachment = Annotated[Attachment, AfterValidator(check_attachment)]
SessionId = Annotated[str, Field(min_length=1, max_length=MAX_SESSION_ID_LENGTH)]
NonEmptyText = Annotated[str, Field(min_length=1, max_length=MAX_TEXT_LENGTH)]


def _not_blank(value: str) -> str:
    if not value.strip():
        msg = "cannot be empty"
        raise ValueError(msg)
    return value


def format_errors(exc: pydantic.ValidationError) -> str:
    """Flatten pydantic errors into ``loc: msg; loc: msg``."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "body"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def parse_body(model: type[M], payload: Any) -> M:
    """Validate *payload* against *model*.

    Raises:
        ValidationError: the payload is malformed or exceeds a limit.
    """
    if not isinstance(payload, dict):
        msg = "Request body must be a JSON object"
        raise ValidationError(msg)
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError(format_errors(exc)) from exc


# -- Chat gateway ------------------------------------------------------------


class ExchangeRequest(WireModel):
    """One model exchange: either a new user message or tool results."""

    session_id: SessionId
    message: str = Field(default="", max_length=MAX_MESSAGE_LENGTH)
    attachments: list[InboundAttachment] = Field(
        default_factory=list, max_length=MAX_ATTACHMENTS
    )
    context_memories: str = Field(default="", max_length=MAX_CONTEXT_LENGTH)
    user_name: str | None = Field(default=None, max_length=MAX_USER_NAME_LENGTH)
    function_responses: list[ToolResponse] = Field(
        default_factory=list, max_length=MAX_FUNCTION_RESPONSES
    )

    @model_validator(mode="after")
    def _message_or_responses(self) -> ExchangeRequest:
        if not self.function_responses and not self.message.strip():
            msg = "message is required when functionResponses is not provided"
            raise ValueError(msg)
        return self

    @property
    def is_continuation(self) -> bool:
        return bool(self.function_responses)


class FunctionResponseRequest(WireModel):
    session_id: SessionId
    function_responses: list[ToolResponse] = Field(
        min_length=1, max_length=MAX_FUNCTION_RESPONSES
    )


class SessionRequest(WireModel):
    """Body for reset and cancel."""

    session_id: SessionId


class TurnRequest(WireModel):
    """A full server-side assistant turn."""

    session_id: SessionId
    message: Annotated[str, Field(max_length=MAX_MESSAGE_LENGTH), AfterValidator(_not_blank)]
    attachments: list[InboundAttachment] = Field(
        default_factory=list, max_length=MAX_ATTACHMENTS
    )
    user_name: str | None = Field(default=None, max_length=MAX_USER_NAME_LENGTH)


# -- Utility endpoints -------------------------------------------------------


class TextRequest(WireModel):
    """Body for embedding and speech synthesis."""

    text: Annotated[NonEmptyText, AfterValidator(_not_blank)]


class ChunkRequest(WireModel):
    chunk: Annotated[NonEmptyText, AfterValidator(_not_blank)]
    file_name: str = Field(default="document", max_length=MAX_FILE_NAME_LENGTH)
    chunk_index: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=1, ge=1)


# -- Memories, diary, files --------------------------------------------------


class MemoryCreateRequest(WireModel):
    content: Annotated[NonEmptyText, AfterValidator(_not_blank)]
    category: str = Field(default="general", min_length=1, max_length=100)
    tags: list[str] = Field(default_factory=list)
    type: MemoryType = MemoryType.TEXT
    media_data: str | None = None
    media_mime_type: str | None = None
    media_name: str | None = Field(default=None, max_length=MAX_FILE_NAME_LENGTH)
    embed: bool = True


class DiaryRequest(WireModel):
    text: Annotated[NonEmptyText, AfterValidator(_not_blank)]
    tags: list[str] = Field(default_factory=list)


class IngestRequest(WireModel):
    """An uploaded document, base64-encoded."""

    name: str = Field(min_length=1, max_length=MAX_FILE_NAME_LENGTH)
    mime_type: str
    data: str = Field(min_length=1)

    @model_validator(mode="after")
    def _check_payload(self) -> IngestRequest:
        check_attachment(Attachment(mime_type=self.mime_type, data=self.data, name=self.name))
        return self


class ConversationBody(WireModel):
    title: str | None = Field(default=None, max_length=MAX_FILE_NAME_LENGTH)
    messages: list[Message] = Field(default_factory=list)
