"""Delivery channel — maps live WebSocket connections to users and fans out events."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from cronpush.errors import DeliveryError

if TYPE_CHECKING:
    from cronpush.notifications.store import NotificationStore

logger = logging.getLogger(__name__)


@runtime_checkable
class Connection(Protocol):
    """The slice of ``aiohttp.web.WebSocketResponse`` the registry relies on."""

    @property
    def closed(self) -> bool: ...

    async def send_str(self, data: str) -> None: ...

    async def close(self) -> Any: ...


def make_frame(event_type: str, data: Any) -> dict[str, Any]:
    """Build a server frame: ``{type, data, timestamp}``."""
    return {
        "type": event_type,
        "data": data,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def notification_frame(notification: dict[str, Any]) -> dict[str, Any]:
    return make_frame("notification", notification)


def cronjob_status_frame(status: dict[str, Any]) -> dict[str, Any]:
    return make_frame("cronjob_status", status)


def connection_frame(message: str) -> dict[str, Any]:
    return make_frame("connection", {"message": message})


def error_frame(message: str) -> dict[str, Any]:
    return make_frame("error", {"message": message})


class ConnectionRegistry:
    """Process-wide registry of live connections and their bound user ids.

    Constructed once at startup and handed to whoever needs to push; tests
    build an isolated instance each.

    Args:
        notifications: Store used to record ``markAsRead`` commands.
    """

    def __init__(self, notifications: NotificationStore | None = None) -> None:
        self._notifications = notifications
        self._bindings: dict[Connection, str | None] = {}

    # -- Bookkeeping -----------------------------------------------------------

    def attach(self, conn: Connection) -> None:
        """Track a newly opened connection that has not registered yet."""
        self._bindings.setdefault(conn, None)

    def register(self, conn: Connection, user_id: str) -> None:
        """Bind *conn* to *user_id*, replacing any previous binding."""
        previous = self._bindings.get(conn)
        self._bindings[conn] = user_id
        if previous and previous != user_id:
            logger.info("Connection re-registered: %s -> %s", previous, user_id)
        else:
            logger.info("Connection registered for user %s", user_id)

    def detach(self, conn: Connection) -> None:
        """Forget *conn*. Stored notification state is untouched."""
        user_id = self._bindings.pop(conn, None)
        if user_id:
            logger.info("Connection closed for user %s", user_id)

    def user_for(self, conn: Connection) -> str | None:
        return self._bindings.get(conn)

    def connections_for(self, user_id: str) -> list[Connection]:
        return [c for c, uid in self._bindings.items() if uid == user_id]

    @property
    def registered_users(self) -> set[str]:
        return {uid for uid in self._bindings.values() if uid}

    def __len__(self) -> int:
        return len(self._bindings)

    def clear(self) -> None:
        self._bindings.clear()

    async def close_all(self) -> None:
        """Close every tracked connection and empty the registry (shutdown)."""
        for conn in list(self._bindings):
            try:
                await conn.close()
            except Exception:
                logger.debug("Error closing connection during shutdown", exc_info=True)
        self.clear()

    # -- Sending ---------------------------------------------------------------

    async def _write(self, conn: Connection, payload: str) -> None:
        if conn.closed:
            msg = "connection is closed"
            raise DeliveryError(msg)
        try:
            await conn.send_str(payload)
        except Exception as exc:
            raise DeliveryError(str(exc)) from exc

    async def send(self, conn: Connection, event: dict[str, Any]) -> bool:
        """Write one frame to one connection. Returns False if it could not be written."""
        try:
            await self._write(conn, json.dumps(event))
            return True
        except DeliveryError as exc:
            logger.debug("Dropped %s frame: %s", event.get("type"), exc)
            return False

    async def push(self, event: dict[str, Any], user_id: str | None = None) -> int:
        """Send *event* to every registered connection of *user_id* (None = all users).

        Unregistered connections never receive pushes. Returns how many
        connections accepted the frame; failures are dropped silently.
        """
        if user_id is None:
            targets = [c for c, uid in self._bindings.items() if uid]
        else:
            targets = self.connections_for(user_id)

        payload = json.dumps(event)
        delivered = 0
        for conn in targets:
            try:
                await self._write(conn, payload)
                delivered += 1
            except DeliveryError as exc:
                logger.debug(
                    "Dropped %s push to %s: %s",
                    event.get("type"),
                    self._bindings.get(conn),
                    exc,
                )
        logger.debug(
            "Pushed %s to %d/%d connection(s) (target=%s)",
            event.get("type"),
            delivered,
            len(targets),
            user_id or "all",
        )
        return delivered

    # -- Client commands -------------------------------------------------------

    async def handle_command(self, conn: Connection, raw: str) -> None:
        """Dispatch one inbound client frame (``register`` or ``markAsRead``)."""
        try:
            command = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed client frame")
            await self.send(conn, error_frame("Invalid JSON"))
            return
        if not isinstance(command, dict):
            await self.send(conn, error_frame("Command must be a JSON object"))
            return

        command_type = command.get("type")
        if command_type == "register":
            await self._handle_register(conn, command)
        elif command_type == "markAsRead":
            await self._handle_mark_as_read(conn, command)
        else:
            logger.warning("Unknown client command: %s", command_type)
            await self.send(conn, error_frame(f"Unknown command type: {command_type}"))

    async def _handle_register(self, conn: Connection, command: dict[str, Any]) -> None:
        # The per-user dashboard sends user_id, the admin console userId.
        user_id = command.get("userId", command.get("user_id"))
        if isinstance(user_id, int) and not isinstance(user_id, bool):
            user_id = str(user_id)
        if not isinstance(user_id, str) or not user_id:
            await self.send(conn, error_frame("register requires a userId"))
            return
        self.register(conn, user_id)
        await self.send(conn, connection_frame(f"Registered as user {user_id}"))

    async def _handle_mark_as_read(self, conn: Connection, command: dict[str, Any]) -> None:
        user_id = self.user_for(conn)
        if user_id is None:
            logger.warning("markAsRead from unregistered connection rejected")
            await self.send(conn, error_frame("Connection is not registered"))
            return
        notification_id = command.get("notificationId")
        if not isinstance(notification_id, str) or not notification_id:
            await self.send(conn, error_frame("markAsRead requires a notificationId"))
            return
        if self._notifications is None:
            logger.warning("markAsRead received but no notification store is configured")
            return
        await self._notifications.mark_read(user_id, notification_id)
