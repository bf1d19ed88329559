"""Application wiring: stores, delivery channel, scheduler and HTTP server."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cronpush.delivery.channel import ConnectionRegistry
from cronpush.notifications.service import NotificationService
from cronpush.notifications.store import NotificationStore
from cronpush.scheduler.engine import SchedulerEngine
from cronpush.scheduler.executor import JobExecutor
from cronpush.scheduler.store import JobStore
from cronpush.web.server import ApiServer, create_web_app

if TYPE_CHECKING:
    from pathlib import Path

    from aiohttp import web

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """The long-lived components of one running server."""

    jobs: JobStore
    notification_store: NotificationStore
    registry: ConnectionRegistry
    notifications: NotificationService
    engine: SchedulerEngine


def build_services(db_path: Path | None = None) -> Services:
    """Construct every component. Passing *db_path* bypasses the shared stores."""
    if db_path is None:
        jobs, notification_store = JobStore.get(), NotificationStore.get()
    else:
        jobs, notification_store = JobStore(db_path), NotificationStore(db_path)

    registry = ConnectionRegistry(notification_store)
    notifications = NotificationService(notification_store, registry)
    executor = JobExecutor(notifications)
    engine = SchedulerEngine(
        store=jobs,
        executor=executor,
        registry=registry,
        notifications=notifications,
    )
    return Services(jobs, notification_store, registry, notifications, engine)


def create_app(services: Services | None = None) -> web.Application:
    """Build the aiohttp application with scheduler lifecycle hooks."""
    services = services or build_services()
    app = create_web_app(services.engine, services.notifications, services.registry)

    async def _start_scheduler(app: web.Application) -> None:
        await services.engine.start()

    async def _close_connections(app: web.Application) -> None:
        await services.registry.close_all()

    async def _stop_scheduler(app: web.Application) -> None:
        await services.engine.stop()

    app.on_startup.append(_start_scheduler)
    app.on_shutdown.append(_close_connections)
    app.on_cleanup.append(_stop_scheduler)
    return app


async def serve() -> None:
    """Run the server until SIGINT or SIGTERM."""
    server = ApiServer(create_app())
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await server.start()
    try:
        await stop.wait()
        logger.info("Shutdown requested")
    finally:
        await server.stop()
