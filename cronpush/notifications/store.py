"""NotificationStore — aiosqlite persistence for notifications and read flags."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cronpush.config import settings
from cronpush.db import open_database
from cronpush.notifications.models import Notification

if TYPE_CHECKING:
    from pathlib import Path

    import aiosqlite

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        severity TEXT NOT NULL,
        category TEXT NOT NULL,
        from_user_id TEXT,
        to_user_id TEXT,
        scheduled_at TEXT,
        created_at TEXT NOT NULL,
        delivered_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_reads (
        notification_id TEXT NOT NULL REFERENCES notifications(id),
        user_id TEXT NOT NULL,
        read_at TEXT NOT NULL,
        PRIMARY KEY (notification_id, user_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notifications_to_user ON notifications(to_user_id)",
)

_COLUMNS = (
    "id, title, message, severity, category, from_user_id, to_user_id, "
    "scheduled_at, created_at, delivered_at"
)

_N_COLUMNS = ", ".join(f"n.{column}" for column in _COLUMNS.split(", "))

# Delivered notifications visible to a user: addressed directly or broadcast.
_ADDRESSED_TO = "n.delivered_at IS NOT NULL AND (n.to_user_id = ? OR n.to_user_id IS NULL)"


class NotificationStore:
    """Persists notifications and per-recipient read state in SQLite.

    Singleton accessed via ``NotificationStore.get()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: NotificationStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> NotificationStore:
        """Return the shared NotificationStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    async def _connect(self) -> aiosqlite.Connection:
        schema = () if self._initialised else _SCHEMA
        db = await open_database(self._db_path, schema)
        self._initialised = True
        return db

    # -- Notifications ---------------------------------------------------------

    async def add(self, notification: Notification) -> Notification:
        """Insert a new notification. Returns the same object."""
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO notifications ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                notification.to_row(),
            )
            await db.commit()
            logger.info(
                "Stored notification %s (category=%s, to=%s)",
                notification.id,
                notification.category,
                notification.to_user_id or "all",
            )
            return notification
        finally:
            await db.close()

    async def get_notification(self, notification_id: str) -> Notification | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM notifications WHERE id = ?", (notification_id,)
            )
            row = await cursor.fetchone()
            return Notification.from_row(row) if row else None
        finally:
            await db.close()

    async def mark_delivered(self, notification_id: str, timestamp: str | None = None) -> bool:
        """Stamp delivered_at once. Returns False if already delivered or unknown."""
        ts = timestamp or datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE notifications SET delivered_at = ? "
                "WHERE id = ? AND delivered_at IS NULL",
                (ts, notification_id),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def list_pending(self) -> list[Notification]:
        """Return undelivered notifications ordered by schedule."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM notifications WHERE delivered_at IS NULL "
                "ORDER BY scheduled_at, created_at"
            )
            rows = await cursor.fetchall()
            return [Notification.from_row(row) for row in rows]
        finally:
            await db.close()

    async def list_for_user(
        self, user_id: str, *, unread_only: bool = False
    ) -> list[tuple[Notification, bool]]:
        """Return ``(notification, is_read)`` pairs delivered to *user_id*, newest first."""
        query = (
            f"SELECT {_N_COLUMNS}, "
            "r.read_at IS NOT NULL "
            "FROM notifications n "
            "LEFT JOIN notification_reads r "
            "ON r.notification_id = n.id AND r.user_id = ? "
            f"WHERE {_ADDRESSED_TO}"
        )
        if unread_only:
            query += " AND r.read_at IS NULL"
        query += " ORDER BY n.created_at DESC"

        db = await self._connect()
        try:
            cursor = await db.execute(query, (user_id, user_id))
            rows = await cursor.fetchall()
            return [(Notification.from_row(row[:10]), bool(row[10])) for row in rows]
        finally:
            await db.close()

    async def count_unread(self, user_id: str) -> int:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM notifications n "
                f"WHERE {_ADDRESSED_TO} AND NOT EXISTS ("
                "  SELECT 1 FROM notification_reads r "
                "  WHERE r.notification_id = n.id AND r.user_id = ?"
                ")",
                (user_id, user_id),
            )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        finally:
            await db.close()

    async def count_since(self, since: str) -> int:
        """Count notifications delivered at or after the *since* ISO timestamp."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM notifications WHERE delivered_at >= ?", (since,)
            )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        finally:
            await db.close()

    # -- Read state ------------------------------------------------------------

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        """Record that *user_id* read *notification_id*.

        Returns True if a flag was newly set. Unknown pairs and repeats are
        no-ops.
        """
        db = await self._connect()
        try:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO notification_reads (notification_id, user_id, read_at) "
                "SELECT n.id, ?, ? FROM notifications n "
                f"WHERE n.id = ? AND {_ADDRESSED_TO}",
                (user_id, datetime.now(UTC).isoformat(), notification_id, user_id),
            )
            await db.commit()
            updated = cursor.rowcount > 0
            if updated:
                logger.debug("Notification %s read by %s", notification_id, user_id)
            return updated
        finally:
            await db.close()

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification addressed to *user_id* as read. Returns the count."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO notification_reads (notification_id, user_id, read_at) "
                "SELECT n.id, ?, ? FROM notifications n "
                f"WHERE {_ADDRESSED_TO}",
                (user_id, datetime.now(UTC).isoformat(), user_id),
            )
            await db.commit()
            count = max(cursor.rowcount, 0)
            logger.info("Marked %d notification(s) read for user %s", count, user_id)
            return count
        finally:
            await db.close()
