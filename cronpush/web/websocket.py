"""WebSocket endpoint: attaches each socket to the ConnectionRegistry."""

from __future__ import annotations

import logging

from aiohttp import WSMsgType, web

from cronpush.config import settings
from cronpush.delivery.channel import connection_frame
from cronpush.web.keys import REGISTRY_KEY

logger = logging.getLogger(__name__)


async def handle_websocket(request: web.Request) -> web.WebSocketResponse:
    """GET /ws (or /) — upgrade, greet, then dispatch client commands until close."""
    registry = request.app[REGISTRY_KEY]
    ws = web.WebSocketResponse(heartbeat=settings.ws_heartbeat_seconds)
    await ws.prepare(request)

    registry.attach(ws)
    logger.info("WebSocket connected from %s", request.remote)
    try:
        await registry.send(ws, connection_frame("Connected to notification server"))
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                await registry.handle_command(ws, msg.data)
            elif msg.type == WSMsgType.ERROR:
                logger.warning("WebSocket error: %s", ws.exception())
    finally:
        registry.detach(ws)
    return ws


def add_websocket_routes(app: web.Application) -> None:
    app.router.add_get("/ws", handle_websocket)
    # The admin console connects to the bare server URL.
    app.router.add_get("/", handle_websocket)
