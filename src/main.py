"""Jarvis API server entry point."""

import asyncio
import logging

from src.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


async def serve() -> None:
    """Run the HTTP server until cancelled."""
    from src.web.server import WebServer

    if not settings.auth_enabled():
        logger.warning("AUTH_JWT_SECRET is empty — every request runs as local-user")
    if settings.model_backend == "local" and not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty — model requests will fail")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is empty — memories will be keyword-search only")

    server = WebServer()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    logger.info("Starting Jarvis with %s backend...", settings.model_backend)
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
