"""Tool-call orchestration for one assistant turn.

A turn sends the user's message to the model backend, runs any tools the
model asks for, sends their results back in a new exchange and repeats
until the model answers without tools::

    Idle -> AwaitingModel -> FinalAnswer
                          -> ExecutingTools -> AwaitingModel -> ...

Progress is exposed as an async iterator of ``TurnEvent``. Tools in one
batch run sequentially, in the order the model listed them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from src.assistant.events import (
    Chunk,
    ContextRetrieved,
    Done,
    Failed,
    ToolCallStarted,
    ToolResult,
)
from src.config import settings
from src.errors import StreamError, TooManyToolRounds, TurnCancelled
from src.llm.backend import FunctionCalls, TextChunk
from src.llm.session import session_key
from src.memory.models import MemoryType
from src.tools import registry as default_registry
from src.tools.base import ToolResponse, TurnContext
from src.validation import ExchangeRequest

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

    from src.assistant.context import ContextAssembler
    from src.assistant.events import TurnEvent
    from src.llm.backend import ModelBackend
    from src.memory.embeddings import EmbeddingClient
    from src.memory.models import Attachment, MemoryRecord
    from src.memory.store import MemoryStore
    from src.tools.base import ToolCall
    from src.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

UPLOAD_CATEGORY = "files"


class Orchestrator:
    """Drives turns against one model backend.

    Args:
        backend: Local-direct or remote-proxy model backend.
        memory_store: Store handed to memory tools.
        embeddings: Embedding client handed to memory tools.
        assembler: Optional pre-turn context assembler.
        tools: Tool registry (defaults to the global one).
        max_rounds: Tool rounds allowed per turn before ``TooManyToolRounds``.
    """

    def __init__(
        self,
        backend: ModelBackend,
        memory_store: MemoryStore,
        embeddings: EmbeddingClient,
        *,
        assembler: ContextAssembler | None = None,
        tools: ToolRegistry | None = None,
        max_rounds: int | None = None,
    ) -> None:
        self.backend = backend
        self.memory_store = memory_store
        self.embeddings = embeddings
        self.assembler = assembler
        self.tools = tools or default_registry
        self.max_rounds = max_rounds or settings.max_tool_rounds
        self._cancel_events: dict[str, asyncio.Event] = {}

    # -- Cancellation ----------------------------------------------------

    def cancel(self, session_id: str, user_id: str | None) -> bool:
        """Signal the in-flight turn for this session to stop.

        The turn notices between model rounds and before each tool call.
        Returns False when no turn is running.
        """
        event = self._cancel_events.get(session_key(session_id, user_id))
        if event is None:
            return False
        event.set()
        return True

    def is_running(self, session_id: str, user_id: str | None) -> bool:
        return session_key(session_id, user_id) in self._cancel_events

    # -- Turns -----------------------------------------------------------

    async def run_turn(
        self,
        *,
        session_id: str,
        user_id: str | None,
        message: str,
        attachments: Iterable[Attachment] = (),
        user_name: str | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Run one turn, yielding progress. The last event is Done or Failed."""
        key = session_key(session_id, user_id)
        cancel_event = asyncio.Event()
        self._cancel_events[key] = cancel_event
        try:
            async for event in self._run(
                session_id, user_id, message, list(attachments), user_name, cancel_event
            ):
                yield event
        finally:
            if self._cancel_events.get(key) is cancel_event:
                del self._cancel_events[key]

    async def send(
        self,
        *,
        session_id: str,
        user_id: str | None,
        message: str,
        attachments: Iterable[Attachment] = (),
        user_name: str | None = None,
    ) -> Done | Failed:
        """Run a turn to completion and return its terminal event."""
        final: Done | Failed = Failed(StreamError("Turn produced no result"))
        async for event in self.run_turn(
            session_id=session_id,
            user_id=user_id,
            message=message,
            attachments=attachments,
            user_name=user_name,
        ):
            if isinstance(event, Done | Failed):
                final = event
        return final

    async def _run(
        self,
        session_id: str,
        user_id: str | None,
        message: str,
        attachments: list[Attachment],
        user_name: str | None,
        cancel_event: asyncio.Event,
    ) -> AsyncIterator[TurnEvent]:
        t0 = time.monotonic()

        retrieved: list[MemoryRecord] = []
        context = ""
        if self.assembler is not None:
            context = await self.assembler.assemble(user_id, message, observer=retrieved.extend)
        if retrieved:
            yield ContextRetrieved(memories=retrieved)

        request = ExchangeRequest(
            session_id=session_id,
            message=message,
            attachments=attachments,
            context_memories=context,
            user_name=user_name,
        )
        turn = TurnContext(
            user_id=user_id,
            memory_store=self.memory_store,
            embeddings=self.embeddings,
            attachments=attachments,
        )

        text = ""
        rounds = 0
        while True:
            if cancel_event.is_set():
                logger.info("Turn for %s cancelled after %d round(s)", session_id, rounds)
                yield Failed(TurnCancelled("Turn cancelled"), text)
                return

            calls: list[ToolCall] = []
            try:
                async for event in self.backend.exchange(request, user_id):
                    if isinstance(event, TextChunk):
                        text += event.text
                        yield Chunk(event.text)
                    elif isinstance(event, FunctionCalls):
                        calls = event.calls
            except StreamError as exc:
                logger.warning("Turn for %s failed: %s", session_id, exc)
                yield Failed(exc, text)
                return
            except Exception as exc:
                logger.exception("Model exchange for %s crashed", session_id)
                yield Failed(StreamError(str(exc) or "Model exchange failed"), text)
                return

            if not calls:
                await self._remember_attachments(turn)
                logger.info(
                    "Turn for %s done in %.2fs (%d tool round(s))",
                    session_id,
                    time.monotonic() - t0,
                    rounds,
                )
                yield Done(text=text, rounds=rounds)
                return

            if rounds >= self.max_rounds:
                logger.warning("Hit max tool rounds (%d)", self.max_rounds)
                yield Failed(TooManyToolRounds(self.max_rounds), text)
                return
            rounds += 1

            responses: list[ToolResponse] = []
            for call in calls:
                if cancel_event.is_set():
                    logger.info("Turn for %s cancelled before tool '%s'", session_id, call.name)
                    yield Failed(TurnCancelled("Turn cancelled"), text)
                    return
                yield ToolCallStarted(call)
                result = await self.tools.execute(call.name, call.args, turn)
                yield ToolResult(call, result)
                responses.append(
                    ToolResponse(id=call.id, name=call.name, response=result.to_response())
                )

            # Internal continuation; a batch may exceed the HTTP body limit.
            request = ExchangeRequest.model_construct(
                session_id=session_id, function_responses=responses
            )

    async def _remember_attachments(self, turn: TurnContext) -> None:
        """Save one memory per uploaded attachment once the turn has an answer."""
        if not turn.user_id or not turn.attachments:
            return
        for attachment in turn.attachments:
            memory_type = MemoryType.from_mime(attachment.mime_type)
            content = f"User uploaded {memory_type}: {attachment.name or 'unnamed'}"
            try:
                embedding = await self.embeddings.try_embed(content)
                await self.memory_store.create(
                    turn.user_id,
                    content=content,
                    category=UPLOAD_CATEGORY,
                    tags=["upload", str(memory_type)],
                    type=memory_type,
                    media_data=attachment.data,
                    media_mime_type=attachment.mime_type,
                    media_name=attachment.name,
                    embedding=embedding,
                )
            except Exception:
                logger.exception("Failed to save upload memory for %r", attachment.name)
