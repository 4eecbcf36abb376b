"""Fixed-window request limits per client address and path prefix."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Limit:
    prefixes: tuple[str, ...]
    max_requests: int
    window_seconds: float

    def applies_to(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.prefixes)


class RateLimiter:
    """Counts requests per (limit, client) in fixed windows."""

    def __init__(
        self,
        limits: list[Limit],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limits = [lim for lim in limits if lim.max_requests > 0]
        self._clock = clock
        self._windows: dict[tuple[int, str], tuple[float, int]] = {}
        self._next_prune = 0.0

    @classmethod
    def from_settings(cls, config: Settings) -> RateLimiter:
        return cls([
            Limit(("/api",), config.rate_limit_general, config.rate_limit_general_window_seconds),
            Limit(
                ("/api/chat", "/api/assistant"),
                config.rate_limit_chat,
                config.rate_limit_chat_window_seconds,
            ),
            Limit(
                ("/api/embedding",),
                config.rate_limit_embedding,
                config.rate_limit_embedding_window_seconds,
            ),
        ])

    def check(self, client: str, path: str) -> float | None:
        """Record a request. Returns seconds to wait if it is over a limit."""
        now = self._clock()
        if now >= self._next_prune:
            self._prune(now)
        retry_after: float | None = None
        for index, limit in enumerate(self.limits):
            if not limit.applies_to(path):
                continue
            key = (index, client)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= limit.window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            if count > limit.max_requests:
                wait = limit.window_seconds - (now - started)
                retry_after = max(retry_after or 0.0, wait)
        return retry_after

    def _prune(self, now: float) -> None:
        """Forget windows that have ended. Runs at most once per shortest window."""
        expired = [
            key
            for key, (started, _) in self._windows.items()
            if now - started >= self.limits[key[0]].window_seconds
        ]
        for key in expired:
            del self._windows[key]
        if self.limits:
            self._next_prune = now + min(lim.window_seconds for lim in self.limits)

    @property
    def active_windows(self) -> int:
        """Number of tracked (limit, client) windows."""
        return len(self._windows)


def rate_limit_middleware(limiter: RateLimiter):  # noqa: ANN201
    @web.middleware
    async def middleware(
        request: web.Request,
        handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
    ) -> web.StreamResponse:
        if request.method == "OPTIONS":
            return await handler(request)
        retry_after = limiter.check(request.remote or "unknown", request.path)
        if retry_after is not None:
            logger.warning("Rate limited %s on %s", request.remote, request.path)
            return web.json_response(
                {"error": "Too many requests, please try again later."},
                status=429,
                headers={"Retry-After": str(max(1, int(retry_after)))},
            )
        return await handler(request)

    return middleware
