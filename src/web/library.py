"""Memories, saved conversations, diary entries and document ingestion.

Every route here is scoped to the authenticated user.
"""

from __future__ import annotations

import logging

from aiohttp import web

from src.conversations.store import derive_title
from src.errors import ValidationError
from src.ingest import ingest_document, save_diary_entry
from src.memory.models import ConversationRecord, MemoryType
from src.memory.retrieval import MAX_RAW_SEARCH, MAX_UI_SEARCH, hybrid_search
from src.validation import (
    ConversationBody,
    DiaryRequest,
    IngestRequest,
    MemoryCreateRequest,
    parse_body,
)
from src.web.auth import require_user
from src.web.services import read_json, services_for

logger = logging.getLogger(__name__)

_TRUE = frozenset({"1", "true", "yes"})


def _flag(request: web.Request, name: str) -> bool:
    return request.query.get(name, "").lower() in _TRUE


def _int_param(request: web.Request, name: str, default: int, maximum: int) -> int:
    raw = request.query.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        msg = f"{name} must be an integer"
        raise ValidationError(msg) from exc
    if value < 1:
        msg = f"{name} must be positive"
        raise ValidationError(msg)
    return min(value, maximum)


def _memory_id(request: web.Request) -> int:
    return int(request.match_info["memory_id"])


def _not_found(what: str) -> web.Response:
    return web.json_response({"error": f"{what} not found"}, status=404)


# -- Memories ----------------------------------------------------------------


async def _list_memories(request: web.Request) -> web.Response:
    """GET /api/memories?category=&type=&includeHeavy="""
    user_id = require_user(request)
    raw_type = request.query.get("type")
    try:
        memory_type = MemoryType(raw_type) if raw_type else None
    except ValueError as exc:
        msg = f"unknown memory type: {raw_type}"
        raise ValidationError(msg) from exc

    records = await services_for(request).memory_store.list(
        user_id,
        category=request.query.get("category") or None,
        type=memory_type,
        include_heavy=_flag(request, "includeHeavy"),
    )
    return web.json_response({"memories": [r.to_wire() for r in records]})


async def _create_memory(request: web.Request) -> web.Response:
    """POST /api/memories"""
    user_id = require_user(request)
    body = parse_body(MemoryCreateRequest, await read_json(request))
    services = services_for(request)

    embedding = await services.embeddings.try_embed(body.content) if body.embed else None
    memory_id = await services.memory_store.create(
        user_id,
        content=body.content,
        category=body.category,
        tags=body.tags,
        type=body.type,
        media_data=body.media_data,
        media_mime_type=body.media_mime_type,
        media_name=body.media_name,
        embedding=embedding,
    )
    return web.json_response(
        {"id": memory_id, "embedded": embedding is not None}, status=201
    )


async def _search_memories(request: web.Request) -> web.Response:
    """GET /api/memories/search?q=&limit=&mode=

    ``mode=keyword`` skips the embedding call and allows larger result sets.
    """
    user_id = require_user(request)
    query = request.query.get("q", "").strip()
    if not query:
        msg = "q is required"
        raise ValidationError(msg)

    services = services_for(request)
    if request.query.get("mode") == "keyword":
        limit = _int_param(request, "limit", MAX_RAW_SEARCH, MAX_RAW_SEARCH)
        records = await services.memory_store.search_by_keyword(user_id, query, limit)
    else:
        limit = _int_param(request, "limit", MAX_UI_SEARCH, MAX_RAW_SEARCH)
        records = await hybrid_search(
            services.memory_store, services.embeddings, user_id, query
        )
    return web.json_response({
        "query": query,
        "results": [r.to_wire() for r in records[:limit]],
    })


async def _memory_stats(request: web.Request) -> web.Response:
    """GET /api/memories/stats"""
    user_id = require_user(request)
    return web.json_response(await services_for(request).memory_store.stats(user_id))


async def _get_memory(request: web.Request) -> web.Response:
    user_id = require_user(request)
    record = await services_for(request).memory_store.get_by_id(user_id, _memory_id(request))
    if record is None:
        return _not_found("Memory")
    return web.json_response(record.to_wire())


async def _delete_memory(request: web.Request) -> web.Response:
    user_id = require_user(request)
    memory_id = _memory_id(request)
    if not await services_for(request).memory_store.delete(user_id, memory_id):
        return _not_found("Memory")
    return web.json_response({"success": True, "id": memory_id})


# -- Conversations -----------------------------------------------------------


async def _list_conversations(request: web.Request) -> web.Response:
    user_id = require_user(request)
    conversations = await services_for(request).conversation_store.list(user_id)
    return web.json_response({"conversations": [c.to_wire() for c in conversations]})


async def _get_conversation(request: web.Request) -> web.Response:
    user_id = require_user(request)
    conversation = await services_for(request).conversation_store.get_by_id(
        user_id, request.match_info["conversation_id"]
    )
    if conversation is None:
        return _not_found("Conversation")
    return web.json_response(conversation.to_wire())


async def _save_conversation(request: web.Request) -> web.Response:
    """PUT /api/conversations/{id} — replace the whole transcript."""
    user_id = require_user(request)
    body = parse_body(ConversationBody, await read_json(request))
    conversation = ConversationRecord(
        id=request.match_info["conversation_id"],
        title=body.title or derive_title(body.messages),
        messages=body.messages,
    )
    await services_for(request).conversation_store.upsert(user_id, conversation)
    return web.json_response({"success": True, "id": conversation.id, "title": conversation.title})


async def _delete_conversation(request: web.Request) -> web.Response:
    user_id = require_user(request)
    conversation_id = request.match_info["conversation_id"]
    if not await services_for(request).conversation_store.delete(user_id, conversation_id):
        return _not_found("Conversation")
    return web.json_response({"success": True, "id": conversation_id})


# -- Diary and files ---------------------------------------------------------


async def _diary(request: web.Request) -> web.Response:
    """POST /api/diary"""
    user_id = require_user(request)
    body = parse_body(DiaryRequest, await read_json(request))
    services = services_for(request)
    memory_id = await save_diary_entry(
        services.memory_store, services.embeddings, user_id, body.text, body.tags
    )
    return web.json_response({"id": memory_id}, status=201)


async def _ingest(request: web.Request) -> web.Response:
    """POST /api/files/ingest — store a document and its chunk memories."""
    user_id = require_user(request)
    body = parse_body(IngestRequest, await read_json(request))
    services = services_for(request)
    result = await ingest_document(
        services.memory_store,
        services.embeddings,
        user_id,
        body.name,
        body.mime_type,
        body.data,
    )
    logger.info("Ingested %s for %s (%d chunks)", body.name, user_id, result.chunks)
    return web.json_response(result.to_wire(), status=201)


def register(app: web.Application) -> None:
    app.router.add_get("/api/memories", _list_memories)
    app.router.add_post("/api/memories", _create_memory)
    app.router.add_get("/api/memories/search", _search_memories)
    app.router.add_get("/api/memories/stats", _memory_stats)
    app.router.add_get(r"/api/memories/{memory_id:\d+}", _get_memory)
    app.router.add_delete(r"/api/memories/{memory_id:\d+}", _delete_memory)
    app.router.add_get("/api/conversations", _list_conversations)
    app.router.add_get("/api/conversations/{conversation_id}", _get_conversation)
    app.router.add_put("/api/conversations/{conversation_id}", _save_conversation)
    app.router.add_delete("/api/conversations/{conversation_id}", _delete_conversation)
    app.router.add_post("/api/diary", _diary)
    app.router.add_post("/api/files/ingest", _ingest)
