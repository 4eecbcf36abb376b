"""Shared wiring for route handlers."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from aiohttp import web

from src.assistant.context import ContextAssembler
from src.assistant.orchestrator import Orchestrator
from src.config import settings
from src.conversations.store import ConversationStore
from src.errors import ValidationError
from src.llm.backend import build_backend
from src.llm.session import SessionStore
from src.memory.embeddings import EmbeddingClient
from src.memory.store import MemoryStore

if TYPE_CHECKING:
    from src.config import Settings
    from src.llm.backend import ModelBackend


@dataclass
class Services:
    """Everything the route handlers need, wired once per app."""

    sessions: SessionStore
    backend: ModelBackend
    memory_store: MemoryStore
    conversation_store: ConversationStore
    embeddings: EmbeddingClient
    orchestrator: Orchestrator

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> Services:
        config = config or settings
        sessions = SessionStore()
        backend = build_backend(config, sessions)
        memory_store = MemoryStore.get()
        embeddings = EmbeddingClient.get()
        orchestrator = Orchestrator(
            backend,
            memory_store,
            embeddings,
            assembler=ContextAssembler(memory_store, embeddings),
            max_rounds=config.max_tool_rounds,
        )
        return cls(
            sessions=sessions,
            backend=backend,
            memory_store=memory_store,
            conversation_store=ConversationStore.get(),
            embeddings=embeddings,
            orchestrator=orchestrator,
        )


SERVICES = web.AppKey("services", Services)


def services_for(request: web.Request) -> Services:
    return request.app[SERVICES]


async def read_json(request: web.Request) -> Any:
    """Parse the request body as JSON.

    Raises:
        ValidationError: the body is not UTF-8 JSON.
    """
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = "invalid JSON"
        raise ValidationError(msg) from exc
