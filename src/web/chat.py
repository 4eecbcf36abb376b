"""Model gateway, assistant turns, embeddings and speech.

``/api/chat/*`` exposes one model exchange at a time: the caller runs any
requested tools itself and posts the results back. ``/api/assistant/turn``
runs the whole tool loop server-side and streams its progress.
"""

from __future__ import annotations

import contextlib
import logging

from aiohttp import web

from src.errors import StreamError
from src.ingest import process_chunk
from src.llm.backend import collect
from src.llm.speech import CHANNELS, SAMPLE_RATE, synthesize_speech
from src.validation import (
    ChunkRequest,
    ExchangeRequest,
    FunctionResponseRequest,
    SessionRequest,
    TextRequest,
    TurnRequest,
    parse_body,
)
from src.web.auth import current_user
from src.web.services import read_json, services_for
from src.web.sse import open_stream, send_event

logger = logging.getLogger(__name__)


# -- Model gateway -----------------------------------------------------------


async def _message_stream(request: web.Request) -> web.StreamResponse:
    """POST /api/chat/message-stream — one exchange as server-sent events."""
    body = parse_body(ExchangeRequest, await read_json(request))
    user_id = current_user(request)
    backend = services_for(request).backend

    resp = await open_stream(request)
    try:
        await send_event(resp, {"type": "connected"})
        async with contextlib.aclosing(backend.exchange(body, user_id)) as events:
            async for event in events:
                await send_event(resp, event.to_sse())
    except ConnectionResetError:
        logger.info("Client disconnected from stream %s", body.session_id)
        return resp
    except StreamError as exc:
        logger.warning("Stream for %s failed: %s", body.session_id, exc)
        await send_event(resp, {"type": "error", "error": str(exc)})
    except Exception as exc:
        logger.exception("Stream for %s crashed", body.session_id)
        await send_event(resp, {"type": "error", "error": str(exc) or "Internal server error"})
    await resp.write_eof()
    return resp


async def _message(request: web.Request) -> web.Response:
    """POST /api/chat/message — one exchange, collected into a JSON reply."""
    body = parse_body(ExchangeRequest, await read_json(request))
    backend = services_for(request).backend
    result = await collect(backend.exchange(body, current_user(request)))
    return web.json_response(result)


async def _function_response(request: web.Request) -> web.Response:
    """POST /api/chat/function-response — continue an exchange with tool results."""
    body = parse_body(FunctionResponseRequest, await read_json(request))
    exchange = ExchangeRequest(
        session_id=body.session_id, function_responses=body.function_responses
    )
    backend = services_for(request).backend
    result = await collect(backend.exchange(exchange, current_user(request)))
    return web.json_response(result)


async def _reset(request: web.Request) -> web.Response:
    """POST /api/chat/reset — forget a session's history."""
    body = parse_body(SessionRequest, await read_json(request))
    await services_for(request).backend.reset(body.session_id, current_user(request))
    return web.json_response({"success": True})


async def _cancel(request: web.Request) -> web.Response:
    """POST /api/chat/cancel — stop a running assistant turn."""
    body = parse_body(SessionRequest, await read_json(request))
    cancelled = services_for(request).orchestrator.cancel(
        body.session_id, current_user(request)
    )
    return web.json_response({"success": True, "cancelled": cancelled})


# -- Assistant turns ---------------------------------------------------------


async def _turn(request: web.Request) -> web.StreamResponse:
    """POST /api/assistant/turn — a full turn with server-side tools."""
    body = parse_body(TurnRequest, await read_json(request))
    user_id = current_user(request)
    orchestrator = services_for(request).orchestrator

    resp = await open_stream(request)
    turn = orchestrator.run_turn(
        session_id=body.session_id,
        user_id=user_id,
        message=body.message,
        attachments=body.attachments,
        user_name=body.user_name,
    )
    try:
        await send_event(resp, {"type": "connected"})
        async with contextlib.aclosing(turn) as events:
            async for event in events:
                await send_event(resp, event.to_sse())
    except ConnectionResetError:
        logger.info("Client left turn %s; cancelling", body.session_id)
        orchestrator.cancel(body.session_id, user_id)
        return resp
    except Exception as exc:
        logger.exception("Turn %s crashed", body.session_id)
        await send_event(resp, {
            "type": "error",
            "error": str(exc) or "Internal server error",
            "kind": type(exc).__name__,
            "text": "",
        })
    await resp.write_eof()
    return resp


# -- Utilities ---------------------------------------------------------------


async def _embedding(request: web.Request) -> web.Response:
    """POST /api/embedding — embed a piece of text."""
    body = parse_body(TextRequest, await read_json(request))
    vector = await services_for(request).embeddings.embed(body.text)
    return web.json_response({"embedding": vector})


async def _tts(request: web.Request) -> web.Response:
    """POST /api/tts — synthesize speech as base64 PCM."""
    body = parse_body(TextRequest, await read_json(request))
    audio = await synthesize_speech(body.text)
    return web.json_response({
        "audioData": audio,
        "sampleRate": SAMPLE_RATE,
        "channels": CHANNELS,
        "encoding": "pcm_s16le",
    })


async def _process_chunk(request: web.Request) -> web.Response:
    """POST /api/chat/process-chunk — summarize and tag one document chunk."""
    body = parse_body(ChunkRequest, await read_json(request))
    processed = await process_chunk(
        body.chunk, body.file_name, body.chunk_index, body.total_chunks
    )
    return web.json_response({
        "summary": processed.summary,
        "category": processed.category,
        "tags": processed.tags,
    })


def register(app: web.Application) -> None:
    app.router.add_post("/api/chat/message-stream", _message_stream)
    app.router.add_post("/api/chat/message", _message)
    app.router.add_post("/api/chat/function-response", _function_response)
    app.router.add_post("/api/chat/reset", _reset)
    app.router.add_post("/api/chat/cancel", _cancel)
    app.router.add_post("/api/chat/process-chunk", _process_chunk)
    app.router.add_post("/api/assistant/turn", _turn)
    app.router.add_post("/api/embedding", _embedding)
    app.router.add_post("/api/tts", _tts)
