"""Notification data model and the create request shape."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


def not_blank(value: str) -> str:
    """Field validator body shared by every model with required free text."""
    if not value.strip():
        msg = "must not be blank"
        raise ValueError(msg)
    return value


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"


class Category(StrEnum):
    SYSTEM = "system"
    SCHEDULED = "scheduled"
    USER_TO_USER = "user-to-user"


class NotificationSpec(BaseModel):
    """Fields accepted when creating a notification.

    Both the snake_case ids the dashboards send (``to_user_id``) and camelCase
    (``toUserId``) are accepted.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    severity: Severity = Field(default=Severity.INFO, alias="type")
    category: Category = Category.SYSTEM
    from_user_id: str | None = Field(
        default=None, validation_alias=AliasChoices("from_user_id", "fromUserId")
    )
    to_user_id: str | None = Field(
        default=None, validation_alias=AliasChoices("to_user_id", "toUserId")
    )
    scheduled_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("scheduledAt", "scheduled_at")
    )

    @field_validator("title", "message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        return not_blank(value)

    @field_validator("from_user_id", "to_user_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("scheduled_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _check_user_to_user(self) -> NotificationSpec:
        if self.category is Category.USER_TO_USER and not (
            self.from_user_id and self.to_user_id
        ):
            msg = "user-to-user notifications need both from_user_id and to_user_id"
            raise ValueError(msg)
        return self


@dataclass
class Notification:
    """A persisted message with per-recipient read state.

    ``to_user_id`` None means a broadcast to every user. ``delivered_at`` stays
    None while a scheduled notification is pending.
    """

    id: str
    title: str
    message: str
    severity: str = Severity.INFO.value
    category: str = Category.SYSTEM.value
    from_user_id: str | None = None
    to_user_id: str | None = None
    scheduled_at: str | None = None
    created_at: str = ""
    delivered_at: str | None = None

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = datetime.now(UTC).isoformat()

    @property
    def is_broadcast(self) -> bool:
        return self.to_user_id is None

    @property
    def is_delivered(self) -> bool:
        return self.delivered_at is not None

    def addressed_to(self, user_id: str) -> bool:
        return self.is_broadcast or self.to_user_id == user_id

    def is_due(self, now: datetime) -> bool:
        """True when there is no schedule or the scheduled instant has passed."""
        if self.scheduled_at is None:
            return True
        return datetime.fromisoformat(self.scheduled_at) <= now

    @classmethod
    def from_spec(cls, spec: NotificationSpec) -> Notification:
        return cls(
            id=make_notification_id(),
            title=spec.title,
            message=spec.message,
            severity=spec.severity.value,
            category=spec.category.value,
            from_user_id=spec.from_user_id,
            to_user_id=spec.to_user_id,
            scheduled_at=spec.scheduled_at.astimezone(UTC).isoformat()
            if spec.scheduled_at
            else None,
        )

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``notifications`` column order."""
        return (
            self.id,
            self.title,
            self.message,
            self.severity,
            self.category,
            self.from_user_id,
            self.to_user_id,
            self.scheduled_at,
            self.created_at,
            self.delivered_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Notification:
        return cls(
            id=row[0],
            title=row[1],
            message=row[2],
            severity=row[3],
            category=row[4],
            from_user_id=row[5],
            to_user_id=row[6],
            scheduled_at=row[7],
            created_at=row[8],
            delivered_at=row[9],
        )

    def to_api(self, *, is_read: bool | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.severity,
            "category": self.category,
            "fromUserId": self.from_user_id,
            "toUserId": self.to_user_id,
            "scheduledAt": self.scheduled_at,
            "createdAt": self.created_at,
            "deliveredAt": self.delivered_at,
        }
        if is_read is not None:
            data["isRead"] = is_read
        return data


def make_notification_id() -> str:
    """Generate a new notification ID."""
    return uuid.uuid4().hex
