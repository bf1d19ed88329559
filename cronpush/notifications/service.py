"""NotificationService — creates notifications and delivers them over the channel."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from cronpush.delivery.channel import notification_frame
from cronpush.errors import NotFoundError, ValidationError
from cronpush.notifications.models import Notification, NotificationSpec

if TYPE_CHECKING:
    from cronpush.delivery.channel import ConnectionRegistry
    from cronpush.notifications.store import NotificationStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def parse_notification_spec(payload: Any) -> NotificationSpec:
    """Validate a request body into a NotificationSpec (raises ValidationError)."""
    if not isinstance(payload, dict):
        msg = "Request body must be a JSON object"
        raise ValidationError(msg)
    try:
        return NotificationSpec.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


class NotificationService:
    """Creates notifications and pushes them to their recipients.

    Args:
        store: NotificationStore for persistence.
        registry: ConnectionRegistry used for real-time pushes.
        clock: Returns the current UTC time (overridable in tests).
    """

    def __init__(
        self,
        store: NotificationStore,
        registry: ConnectionRegistry,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._clock = clock

    @property
    def store(self) -> NotificationStore:
        return self._store

    async def create(self, spec: NotificationSpec | dict[str, Any]) -> Notification:
        """Persist a notification; deliver now unless it is scheduled for later."""
        if not isinstance(spec, NotificationSpec):
            spec = parse_notification_spec(spec)

        notification = Notification.from_spec(spec)
        notification.created_at = self._clock().isoformat()
        await self._store.add(notification)

        if notification.is_due(self._clock()):
            await self.deliver(notification)
        else:
            logger.info(
                "Notification %s held until %s", notification.id, notification.scheduled_at
            )
        return notification

    async def deliver(self, notification: Notification) -> int:
        """Stamp *notification* delivered and push it. Returns connections reached."""
        notification.delivered_at = self._clock().isoformat()
        if not await self._store.mark_delivered(notification.id, notification.delivered_at):
            logger.debug("Notification %s was already delivered", notification.id)
            return 0
        reached = await self._registry.push(
            notification_frame(notification.to_api()),
            user_id=notification.to_user_id,
        )
        logger.info(
            "Delivered notification %s to %s (%d connection(s))",
            notification.id,
            notification.to_user_id or "all users",
            reached,
        )
        return reached

    async def deliver_due(self) -> int:
        """Deliver every pending notification whose scheduled time has passed."""
        now = self._clock()
        delivered = 0
        for notification in await self._store.list_pending():
            if notification.is_due(now):
                await self.deliver(notification)
                delivered += 1
        if delivered:
            logger.info("Delivered %d scheduled notification(s)", delivered)
        return delivered

    async def get(self, notification_id: str) -> Notification:
        notification = await self._store.get_notification(notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        return notification

    async def list_for_user(
        self, user_id: str, *, unread_only: bool = False
    ) -> list[tuple[Notification, bool]]:
        return await self._store.list_for_user(user_id, unread_only=unread_only)

    async def count_unread(self, user_id: str) -> int:
        return await self._store.count_unread(user_id)

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        return await self._store.mark_read(user_id, notification_id)

    async def mark_all_read(self, user_id: str) -> int:
        return await self._store.mark_all_read(user_id)
