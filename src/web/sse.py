"""Server-sent events over an aiohttp StreamResponse.

Each event is one ``data: <json>\\n\\n`` frame.
"""

from __future__ import annotations

import json
from typing import Any

from aiohttp import web

from src.web.cors import cors_headers


async def open_stream(request: web.Request) -> web.StreamResponse:
    """Prepare an event-stream response. CORS headers must be set before this."""
    resp = web.StreamResponse(
        status=200,
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            **cors_headers(request),
        },
    )
    await resp.prepare(request)
    return resp


def encode_event(data: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(data)}\n\n".encode()


async def send_event(resp: web.StreamResponse, data: dict[str, Any]) -> None:
    """Write one event.

    Raises:
        ConnectionResetError: the client went away.
    """
    await resp.write(encode_event(data))
