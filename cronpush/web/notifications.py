"""REST routes for notifications (``/api/notifications``)."""

from __future__ import annotations

import logging

from aiohttp import web

from cronpush.web.keys import NOTIFICATIONS_KEY
from cronpush.web.middleware import read_json

logger = logging.getLogger(__name__)


async def create_notification(request: web.Request) -> web.Response:
    """POST /api/notifications"""
    payload = await read_json(request)
    notification = await request.app[NOTIFICATIONS_KEY].create(payload)
    return web.json_response(notification.to_api(), status=201)


async def list_for_user(request: web.Request) -> web.Response:
    """GET /api/notifications/{userId}[?unread=true]"""
    user_id = request.match_info["userId"]
    unread_only = request.query.get("unread", "").lower() in {"1", "true", "yes"}
    service = request.app[NOTIFICATIONS_KEY]
    pairs = await service.list_for_user(user_id, unread_only=unread_only)
    return web.json_response({
        "notifications": [n.to_api(is_read=is_read) for n, is_read in pairs],
        "unreadCount": await service.count_unread(user_id),
    })


async def mark_read(request: web.Request) -> web.Response:
    """POST /api/notifications/{notificationId}/read/{userId}"""
    user_id = request.match_info["userId"]
    notification_id = request.match_info["notificationId"]
    updated = await request.app[NOTIFICATIONS_KEY].mark_read(user_id, notification_id)
    return web.json_response({"updated": updated})


async def mark_all_read(request: web.Request) -> web.Response:
    """POST /api/notifications/mark-all-read/{userId}"""
    user_id = request.match_info["userId"]
    count = await request.app[NOTIFICATIONS_KEY].mark_all_read(user_id)
    return web.json_response({
        "message": f"Marked {count} notification(s) as read",
        "count": count,
    })


def add_notification_routes(app: web.Application) -> None:
    app.router.add_post("/api/notifications", create_notification)
    app.router.add_post("/api/notifications/mark-all-read/{userId}", mark_all_read)
    app.router.add_post("/api/notifications/{notificationId}/read/{userId}", mark_read)
    app.router.add_get("/api/notifications/{userId}", list_for_user)
