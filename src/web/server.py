"""Async HTTP API for the Jarvis assistant.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop. Routes live
in ``src.web.chat`` (model gateway, turns, embeddings, speech) and
``src.web.library`` (memories, conversations, diary, files).
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from aiohttp import web

from src.config import settings
from src.errors import AuthenticationRequired, JarvisError, ValidationError
from src.web import chat, library
from src.web.auth import auth_middleware
from src.web.cors import cors_middleware
from src.web.ratelimit import RateLimiter, rate_limit_middleware
from src.web.services import SERVICES, Services

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 50 * 1024 * 1024


# -- Middleware --------------------------------------------------------------


@web.middleware
async def logging_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    t0 = time.monotonic()
    try:
        resp = await handler(request)
    except web.HTTPException as exc:
        logger.info(
            "%s %s -> %d (%.0fms)",
            request.method, request.path, exc.status, (time.monotonic() - t0) * 1000,
        )
        raise
    logger.info(
        "%s %s -> %d (%.0fms)",
        request.method, request.path, resp.status, (time.monotonic() - t0) * 1000,
    )
    return resp


@web.middleware
async def error_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """Translate the error taxonomy into JSON error responses."""
    try:
        return await handler(request)
    except ValidationError as exc:
        logger.warning("Bad request on %s: %s", request.path, exc)
        return web.json_response({"error": str(exc)}, status=400)
    except AuthenticationRequired as exc:
        logger.warning("Unauthorized request on %s: %s", request.path, exc)
        return web.json_response({"error": str(exc)}, status=401)
    except JarvisError as exc:
        logger.warning("Request on %s failed: %s", request.path, exc)
        return web.json_response({"error": str(exc)}, status=500)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return web.json_response({"error": "Internal server error"}, status=500)


# -- Routes ------------------------------------------------------------------


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    return web.json_response({
        "status": "ok",
        "message": "Jarvis API server is running",
        "timestamp": datetime.now(UTC).isoformat(),
        "backend": settings.model_backend,
    })


def create_app(
    services: Services | None = None,
    limiter: RateLimiter | None = None,
) -> web.Application:
    """Build the aiohttp Application with middleware and routes."""
    limiter = limiter or RateLimiter.from_settings(settings)
    app = web.Application(
        client_max_size=MAX_BODY_BYTES,
        middlewares=[
            logging_middleware,
            cors_middleware,
            rate_limit_middleware(limiter),
            error_middleware,
            auth_middleware,
        ],
    )
    app[SERVICES] = services or Services.from_settings()
    app.router.add_get("/health", _health)
    chat.register(app)
    library.register(app)
    return app


class WebServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, host: str | None = None, port: int | None = None) -> None:
        self.host = host or settings.server_host
        self.port = port or settings.server_port
        self._runner: web.AppRunner | None = None

    async def start(self, app: web.Application | None = None) -> None:
        app = app or create_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(
            "Jarvis API listening on %s:%d (backend=%s, database=%s, auth=%s)",
            self.host,
            self.port,
            settings.model_backend,
            "turso" if settings.is_remote_database() else "local",
            "jwt" if settings.auth_enabled() else "development",
        )

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Jarvis API stopped")
