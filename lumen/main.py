"""Lumen server entry point."""

import asyncio
import contextlib
import logging

from lumen.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    from lumen.web.server import ChatServer

    server = ChatServer()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    """Start the chat server and run until interrupted."""
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty; model calls will fail")
    if not settings.get_embedding_provider_order():
        logger.info("No embedding providers configured; long-term memory is off")

    logger.info("Starting Lumen on %s:%d...", settings.server_host, settings.server_port)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_serve())


if __name__ == "__main__":
    main()
