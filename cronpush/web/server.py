"""aiohttp server for the REST API and WebSocket channel.

Uses aiohttp's AppRunner/TCPSite so the server shares the event loop with
the scheduler and can be started and stopped without blocking.
"""

from __future__ import annotations

import logging

from aiohttp import web

from cronpush.config import settings
from cronpush.delivery.channel import ConnectionRegistry
from cronpush.notifications.service import NotificationService
from cronpush.scheduler.engine import SchedulerEngine
from cronpush.web.cronjobs import add_cronjob_routes
from cronpush.web.keys import ENGINE_KEY, NOTIFICATIONS_KEY, REGISTRY_KEY
from cronpush.web.middleware import cors_middleware, error_middleware
from cronpush.web.notifications import add_notification_routes
from cronpush.web.websocket import add_websocket_routes

logger = logging.getLogger(__name__)


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    registry = request.app[REGISTRY_KEY]
    return web.json_response({
        "status": "ok",
        "scheduler": request.app[ENGINE_KEY].running,
        "connections": len(registry),
    })


def create_web_app(
    engine: SchedulerEngine,
    notifications: NotificationService,
    registry: ConnectionRegistry,
) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[ENGINE_KEY] = engine
    app[NOTIFICATIONS_KEY] = notifications
    app[REGISTRY_KEY] = registry

    app.router.add_get("/health", _health)
    add_cronjob_routes(app)
    # The per-user dashboard reaches the same routes under /api/config.
    add_cronjob_routes(app, "/api/config/cronjobs")
    add_notification_routes(app)
    add_websocket_routes(app)
    return app


class ApiServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        app: web.Application,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        self.app = app
        self.host = host or settings.host
        self.port = port if port is not None else settings.port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for HTTP and WebSocket clients."""
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("API server listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("API server stopped")
