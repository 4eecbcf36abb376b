"""Tests for the memory, conversation, diary and file routes."""

import base64
from unittest.mock import AsyncMock, patch

USER = "local-user"


# -- Memories ----------------------------------------------------------------


async def test_create_and_list_memories(api, services) -> None:
    resp = await api.post("/api/memories", json={
        "content": "Likes espresso",
        "category": "personal",
        "tags": ["coffee"],
    })
    assert resp.status == 201
    created = await resp.json()
    assert created["embedded"] is True

    resp = await api.get("/api/memories")
    [memory] = (await resp.json())["memories"]
    assert memory["id"] == created["id"]
    assert memory["content"] == "Likes espresso"
    assert "embedding" not in memory


async def test_create_memory_without_embedding(api, services) -> None:
    resp = await api.post("/api/memories", json={"content": "Plain note", "embed": False})
    memory = await services.memory_store.get_by_id(USER, (await resp.json())["id"])
    assert memory.embedding is None


async def test_list_memories_filters(api, services) -> None:
    await services.memory_store.create(USER, "entry", category="diary")
    await services.memory_store.create(USER, "photo", type="image", media_data="aGk=")

    by_category = await (await api.get("/api/memories?category=diary")).json()
    assert [m["content"] for m in by_category["memories"]] == ["entry"]

    heavy = await (await api.get("/api/memories?type=image&includeHeavy=true")).json()
    assert heavy["memories"][0]["mediaData"] == "aGk="


async def test_list_memories_unknown_type(api) -> None:
    resp = await api.get("/api/memories?type=video")
    assert resp.status == 400


async def test_get_and_delete_memory(api, services) -> None:
    memory_id = await services.memory_store.create(USER, "short-lived")

    resp = await api.get(f"/api/memories/{memory_id}")
    assert (await resp.json())["content"] == "short-lived"

    resp = await api.delete(f"/api/memories/{memory_id}")
    assert await resp.json() == {"success": True, "id": memory_id}

    assert (await api.get(f"/api/memories/{memory_id}")).status == 404
    assert (await api.delete(f"/api/memories/{memory_id}")).status == 404


async def test_search_memories_hybrid(api, services) -> None:
    for i in range(15):
        await services.memory_store.create(USER, f"coffee note {i}")

    resp = await api.get("/api/memories/search?q=coffee")
    data = await resp.json()
    assert data["query"] == "coffee"
    assert len(data["results"]) == 10

    resp = await api.get("/api/memories/search?q=coffee&limit=3")
    assert len((await resp.json())["results"]) == 3


async def test_search_memories_keyword_mode(api, services) -> None:
    for i in range(15):
        await services.memory_store.create(USER, f"coffee note {i}")
    services.embeddings.embed = AsyncMock(side_effect=AssertionError("not used"))

    resp = await api.get("/api/memories/search?q=coffee&mode=keyword")
    assert len((await resp.json())["results"]) == 15


async def test_search_requires_query(api) -> None:
    assert (await api.get("/api/memories/search")).status == 400
    assert (await api.get("/api/memories/search?q=x&limit=zero")).status == 400


async def test_memory_stats(api, services) -> None:
    await services.memory_store.create(USER, "a", category="work")
    resp = await api.get("/api/memories/stats")
    assert await resp.json() == {"total": 1, "byCategory": {"work": 1}, "byType": {"text": 1}}


# -- Conversations -----------------------------------------------------------


async def test_conversation_lifecycle(api) -> None:
    body = {
        "messages": [
            {"id": "m1", "role": "user", "text": "Plan a trip to Lisbon"},
            {"id": "m2", "role": "assistant", "text": "Gladly.", "latencyMs": 820},
        ]
    }
    resp = await api.put("/api/conversations/conv-1", json=body)
    assert await resp.json() == {"success": True, "id": "conv-1", "title": "Plan a trip to Lisbon"}

    listed = await (await api.get("/api/conversations")).json()
    assert [c["id"] for c in listed["conversations"]] == ["conv-1"]
    assert listed["conversations"][0]["messages"] == []

    full = await (await api.get("/api/conversations/conv-1")).json()
    assert [m["text"] for m in full["messages"]] == ["Plan a trip to Lisbon", "Gladly."]
    assert full["messages"][1]["latencyMs"] == 820

    assert (await api.delete("/api/conversations/conv-1")).status == 200
    assert (await api.get("/api/conversations/conv-1")).status == 404


async def test_conversation_explicit_title(api) -> None:
    resp = await api.put("/api/conversations/c2", json={"title": "Travel", "messages": []})
    assert (await resp.json())["title"] == "Travel"


# -- Diary and files ---------------------------------------------------------


async def test_diary(api, services) -> None:
    resp = await api.post("/api/diary", json={"text": "Shipped the release today."})
    assert resp.status == 201
    memory = await services.memory_store.get_by_id(USER, (await resp.json())["id"])
    assert memory.category == "diary"
    assert memory.tags == ["manual"]


async def test_ingest_text_file(api, services) -> None:
    reply = '{"summary": "Notes on Rust.", "category": "fact", "tags": ["rust-lang"]}'
    data = base64.b64encode(b"Rust has ownership and borrowing.").decode()

    with patch("src.ingest.complete_text", AsyncMock(return_value=reply)):
        resp = await api.post("/api/files/ingest", json={
            "name": "rust.md",
            "mimeType": "text/markdown",
            "data": data,
        })

    assert resp.status == 201
    result = await resp.json()
    assert result["chunks"] == 1
    chunk = await services.memory_store.get_by_id(USER, result["chunkMemoryIds"][0])
    assert chunk.category == "fact"
    assert "rust-lang" in chunk.tags


async def test_ingest_rejects_unsupported_type(api) -> None:
    resp = await api.post("/api/files/ingest", json={
        "name": "app.exe",
        "mimeType": "application/x-msdownload",
        "data": "aGk=",
    })
    assert resp.status == 400
