"""Async HTTP surface: streams turn output as newline-delimited JSON.

``POST /api/chat`` opens a chunked ``application/x-ndjson`` response,
acquires a session for the message, starts the turn pipeline in the
background and forwards every session event as one JSON line until
``messageEnd``. Uses aiohttp's AppRunner/TCPSite for non-blocking
start/stop.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from lumen.config import settings
from lumen.orchestrator.models import TurnRequest
from lumen.orchestrator.turn import TurnOrchestrator
from lumen.session.broadcaster import MESSAGE_END
from lumen.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

ORCHESTRATOR = web.AppKey("orchestrator", TurnOrchestrator)


def _ndjson(event: dict[str, Any]) -> bytes:
    return (json.dumps(event, default=str) + "\n").encode("utf-8")


async def _handle_chat(request: web.Request) -> web.StreamResponse:
    """POST /api/chat - run one turn and stream its events."""
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        logger.warning("Chat rejected: missing X-User-Id")
        return web.json_response({"error": "unauthorized"}, status=401)

    try:
        payload = await request.json()
    except ValueError:
        return web.json_response({"error": "invalid JSON"}, status=400)
    if not isinstance(payload, dict):
        return web.json_response({"error": "request body must be an object"}, status=400)

    try:
        turn = TurnRequest.model_validate({**payload, "userId": user_id})
    except ValidationError as exc:
        return web.json_response(
            {"error": "invalid request", "details": exc.errors(include_url=False, include_context=False)},
            status=400,
        )

    registry = SessionRegistry.get()
    message_id = turn.message.message_id
    if message_id in registry:
        return web.json_response({"error": "message already streaming"}, status=409)

    response = web.StreamResponse(
        headers={"Content-Type": "application/x-ndjson", "Cache-Control": "no-cache"}
    )
    await response.prepare(request)

    queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

    def _forward(event: dict[str, Any]) -> None:
        queue.put_nowait(event)
        if event["type"] == MESSAGE_END:
            queue.put_nowait(None)

    logger.info("Turn %s started for user %s (chat %s)", message_id, user_id, turn.message.chat_id)
    with registry.acquire(message_id) as session:
        unsubscribe = session.subscribe(_forward)
        request.app[ORCHESTRATOR].handle_turn(session, turn)
        try:
            while (event := await queue.get()) is not None:
                await response.write(_ndjson(event))
        except ConnectionResetError:
            logger.info("Client disconnected from turn %s; work continues in background", message_id)
            return response
        finally:
            unsubscribe()

    await response.write_eof()
    return response


async def _health(request: web.Request) -> web.Response:
    """GET /health - liveness check with in-flight session count."""
    return web.json_response({"status": "ok", "sessions": len(SessionRegistry.get())})


def _create_web_app(orchestrator: TurnOrchestrator | None = None) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[ORCHESTRATOR] = orchestrator or TurnOrchestrator()
    app.router.add_get("/health", _health)
    app.router.add_post("/api/chat", _handle_chat)
    return app


class ChatServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, host: str | None = None, port: int | None = None) -> None:
        self.host = host or settings.server_host
        self.port = port if port is not None else settings.server_port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        app = _create_web_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Chat server listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Chat server stopped")
