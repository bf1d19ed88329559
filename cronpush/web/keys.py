"""Typed keys for the services stored on the aiohttp Application."""

from __future__ import annotations

from aiohttp import web

from cronpush.delivery.channel import ConnectionRegistry
from cronpush.notifications.service import NotificationService
from cronpush.scheduler.engine import SchedulerEngine

ENGINE_KEY = web.AppKey("engine", SchedulerEngine)
NOTIFICATIONS_KEY = web.AppKey("notifications", NotificationService)
REGISTRY_KEY = web.AppKey("registry", ConnectionRegistry)
