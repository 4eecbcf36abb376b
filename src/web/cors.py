"""CORS for the browser client."""

from __future__ import annotations

from typing import TYPE_CHECKING

from aiohttp import web

from src.config import settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

ALLOWED_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOWED_HEADERS = "Authorization, Content-Type"


def cors_headers(request: web.Request) -> dict[str, str]:
    """Headers granting the request's origin access, or {} if it is not allowed."""
    origin = request.headers.get("Origin")
    if not origin:
        return {}
    allowed = settings.get_cors_origins()
    if origin not in allowed and "*" not in allowed:
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


@web.middleware
async def cors_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    headers = cors_headers(request)
    if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
        return web.Response(
            status=204,
            headers={
                **headers,
                "Access-Control-Allow-Methods": ALLOWED_METHODS,
                "Access-Control-Allow-Headers": ALLOWED_HEADERS,
                "Access-Control-Max-Age": "600",
            },
        )
    resp = await handler(request)
    if not resp.prepared:
        resp.headers.update(headers)
    return resp
