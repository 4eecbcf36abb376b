"""System instruction and user-prompt assembly."""

from __future__ import annotations

import base64
import binascii
import logging
import zoneinfo
from datetime import datetime
from typing import TYPE_CHECKING, Any

from src.config import settings

if TYPE_CHECKING:
    from collections.abc import Iterable

    from src.memory.models import Attachment

logger = logging.getLogger(__name__)

_TEXT_DOCUMENT_TYPES = {"text/plain", "text/markdown", "application/json"}

SYSTEM_TEMPLATE = """\
You are Jarvis, a highly intelligent personal AI assistant.

**CURRENT DATE AND TIME**:
Today is {date}. The current time is {time}.
Use this information to provide time-aware responses, such as:
- Greeting appropriately based on time of day
- Understanding relative time references (e.g., "today", "yesterday", "next week")
- Providing context-aware date-related information

**CORE OPERATING RULE**:
You have **NO** built-in knowledge of the user{user}. You **MUST** use the \
'search_memory' tool to retrieve ANY personal information (likes, work, history, \
preferences, profession, activities).

**WHEN TO USE 'search_memory' (MANDATORY)**:
- **Direct Personal Questions**: "What do I like?", "Where do I work?", "What is my name?", \
"Who am I?", "What do I do?" (profession/work)
- **Recall Requests**: "Do you remember...", "What did we talk about...", \
"Summarize our last chat."
- **Contextual Queries**: "Suggest a movie" (search for preferences), \
"Help me with my project" (search for project details).
- **Vague Personal Questions**: "What do I do?" ALWAYS means "What is my profession/work?" \
- you MUST search for "work job profession career occupation"

**WHEN TO SKIP 'search_memory'**:
- **Greetings**: "Hi", "Hello", "Good morning".
- **General Knowledge**: "What is the capital of France?", "How does a car work?"
- **Pure Logic/Math**: "Calculate 2+2", "Write a python script to sort a list".
- **Context Already Provided**: the message includes a [CONTEXT FROM MEMORY DATABASE] \
section that answers the question.

**STRICT RESPONSE PROTOCOL**:
1. **Analyze**: Does the user's message refer to "I", "me", "my", "we", or ask about the \
user's personal information?
2. **Action**: If YES, you **MUST** call 'search_memory' FIRST before responding. \
Use **specific keywords** (not full sentences).
   - Example: For "What do I like?", search for "likes preferences favorites".
   - Example: For "Where do I work?", search for "work job company office".
   - Example: For "What do I do?", search for "work job profession career occupation".
   - **DO NOT** output text like "I don't know" before searching.
   - **DO NOT** assume you know the answer without searching.
3. **Fallback**: Only if the search returns no results, THEN ask the user for information.

**MEMORY SAVING**:
- If the user provides new information (e.g., "I love sci-fi movies", "I work at C5i"), \
use 'save_memory' immediately.

Be professional, witty, and concise."""


def _now(now: datetime | None = None) -> datetime:
    if now is not None:
        return now
    return datetime.now(zoneinfo.ZoneInfo(settings.timezone))


def format_date(now: datetime) -> str:
    return now.strftime("%A, %B %d, %Y")


def format_time(now: datetime) -> str:
    return now.strftime("%I:%M %p")


def build_system_instruction(
    user_name: str | None = None, now: datetime | None = None
) -> str:
    """The Jarvis persona with the current date/time and memory-tool rules."""
    now = _now(now)
    return SYSTEM_TEMPLATE.format(
        date=format_date(now),
        time=format_time(now),
        user=f" ({user_name})" if user_name else "",
    )


def format_user_prompt(
    message: str, context: str = "", now: datetime | None = None
) -> str:
    """Prefix the user's message with the date/time and optional memory context."""
    now = _now(now)
    header = f"[CURRENT DATE/TIME]: {format_date(now)} at {format_time(now)}"
    if context:
        return (
            f"{header}\n\n[CONTEXT FROM MEMORY DATABASE]:\n{context}"
            f"\n\n[USER MESSAGE]:\n{message}"
        )
    return f"{header}\n\n[USER MESSAGE]:\n{message}"


def attachment_block(attachment: Attachment) -> dict[str, Any]:
    """Convert one attachment into an Anthropic content block.

    Images and PDFs go inline as base64. Text-like documents are decoded
    and sent as plain-text documents. Other media (audio) cannot be read
    by the model, so they are described by name instead.
    """
    mime = attachment.mime_type
    if mime.startswith("image/"):
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": mime, "data": attachment.data},
        }
    if mime == "application/pdf":
        return {
            "type": "document",
            "source": {"type": "base64", "media_type": mime, "data": attachment.data},
        }
    if mime in _TEXT_DOCUMENT_TYPES:
        try:
            text = base64.b64decode(attachment.data).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("Could not decode %s attachment %r", mime, attachment.name)
        else:
            block: dict[str, Any] = {
                "type": "document",
                "source": {"type": "text", "media_type": "text/plain", "data": text},
            }
            if attachment.name:
                block["title"] = attachment.name
            return block
    return {
        "type": "text",
        "text": f"[Attached {attachment.type} ({mime}): {attachment.name or 'unnamed'}]",
    }


def build_user_content(
    message: str,
    *,
    context: str = "",
    attachments: Iterable[Attachment] = (),
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Content blocks for a new user message: attachments first, then the prompt text."""
    blocks = [attachment_block(a) for a in attachments]
    prompt = format_user_prompt(message, context, now)
    if prompt.strip():
        blocks.append({"type": "text", "text": prompt})
    return blocks
