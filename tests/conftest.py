"""Shared test fixtures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cache import TTLCache
from src.conversations.store import ConversationStore
from src.memory.embeddings import EmbeddingClient
from src.memory.store import MemoryStore


@pytest.fixture(autouse=True)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("src.config.settings.turso_database_url", "")


@pytest.fixture
def memory_store(tmp_path) -> MemoryStore:
    """A MemoryStore backed by a temporary SQLite file."""
    MemoryStore._reset()
    store = MemoryStore(db_path=tmp_path / "test.db", cache=TTLCache())
    yield store
    MemoryStore._reset()


@pytest.fixture
def conversation_store(tmp_path) -> ConversationStore:
    ConversationStore._reset()
    store = ConversationStore(db_path=tmp_path / "test.db", cache=TTLCache())
    yield store
    ConversationStore._reset()


# -- Fake embeddings ---------------------------------------------------------

# Words mapped onto a tiny fixed vocabulary so cosine similarity behaves
# predictably without a provider.
VOCABULARY = (
    ("work", "job", "profession", "career", "occupation", "engineer", "company", "data"),
    ("movie", "movies", "film", "sci-fi", "cinema", "love", "like", "favorite"),
    ("live", "home", "city", "location"),
    ("name", "called", "identity"),
)


def fake_vector(text: str) -> list[float]:
    lowered = text.lower()
    vector = [float(sum(word in lowered for word in group)) for group in VOCABULARY]
    vector.append(0.1)
    return vector


def make_openai_embeddings(vector_fn=fake_vector) -> MagicMock:
    """A fake AsyncOpenAI exposing ``embeddings.create``."""

    async def create(model: str, input: str):  # noqa: A002
        response = MagicMock()
        response.data = [MagicMock(embedding=vector_fn(input))]
        return response

    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=create)
    return client


@pytest.fixture
def embeddings() -> EmbeddingClient:
    """EmbeddingClient answering from the fake vocabulary."""
    return EmbeddingClient(client=make_openai_embeddings(), model="test-embedding")


@pytest.fixture
def broken_embeddings() -> EmbeddingClient:
    """EmbeddingClient whose provider always fails."""
    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=RuntimeError("provider down"))
    return EmbeddingClient(client=client, model="test-embedding")


# -- Scripted model backend --------------------------------------------------


@dataclass
class ScriptedBackend:
    """ModelBackend that replays canned exchanges.

    Each script entry is a list of events for one exchange, or an
    exception instance to raise.
    """

    script: list[Any]
    requests: list[Any] = field(default_factory=list)
    resets: list[tuple[str, str | None]] = field(default_factory=list)

    async def exchange(self, request, user_id):
        self.requests.append(request)
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        for event in step:
            yield event

    async def reset(self, session_id: str, user_id: str | None) -> None:
        self.resets.append((session_id, user_id))


@pytest.fixture
def scripted():
    """Factory for ScriptedBackend: ``scripted([[TextChunk("hi"), ExchangeDone("hi")]])``."""
    return ScriptedBackend


# -- HTTP app ----------------------------------------------------------------


@pytest.fixture
def services(memory_store, conversation_store, embeddings):
    """Services wired to temp stores, fake embeddings and an empty script."""
    from src.assistant.context import ContextAssembler
    from src.assistant.orchestrator import Orchestrator
    from src.llm.session import SessionStore
    from src.web.services import Services

    backend = ScriptedBackend(script=[])
    return Services(
        sessions=SessionStore(),
        backend=backend,
        memory_store=memory_store,
        conversation_store=conversation_store,
        embeddings=embeddings,
        orchestrator=Orchestrator(
            backend,
            memory_store,
            embeddings,
            assembler=ContextAssembler(memory_store, embeddings),
        ),
    )


@pytest.fixture
async def api(services):
    """TestClient for the full app (middlewares included)."""
    from aiohttp.test_utils import TestClient, TestServer

    from src.web.server import create_app

    client = TestClient(TestServer(create_app(services)))
    await client.start_server()
    yield client
    await client.close()
