"""Job data model, job payload variants and the create/update request shape."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from cronpush.errors import ValidationError
from cronpush.notifications.models import Severity, not_blank
from cronpush.scheduler.expression import describe, parse


class JobType(StrEnum):
    NOTIFICATION_CHECK = "notification_check"
    DAILY_SUMMARY = "daily_summary"
    CUSTOM = "custom"


# -- Payload variants ----------------------------------------------------------


class NotificationCheckPayload(BaseModel):
    """Notification created every time a ``notification_check`` job fires."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: Severity = Severity.INFO
    to_user_id: str | None = Field(default=None, alias="toUserId")

    @field_validator("title", "message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        return not_blank(value)


class DailySummaryPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = "Daily summary"
    window_hours: int = Field(default=24, ge=1, alias="windowHours")


class CustomPayload(BaseModel):
    model_config = ConfigDict(extra="allow")


_PAYLOAD_MODELS: dict[JobType, type[BaseModel]] = {
    JobType.NOTIFICATION_CHECK: NotificationCheckPayload,
    JobType.DAILY_SUMMARY: DailySummaryPayload,
    JobType.CUSTOM: CustomPayload,
}


def parse_payload(job_type: JobType, data: dict[str, Any] | None) -> BaseModel:
    """Validate *data* against the payload shape for *job_type*."""
    model = _PAYLOAD_MODELS[job_type]
    try:
        return model.model_validate(data or {})
    except PydanticValidationError as exc:
        reason = ValidationError.from_pydantic(exc).reason
        msg = f"Invalid jobData for {job_type.value} job ({reason})"
        raise ValidationError(msg) from exc


# -- Request shape -------------------------------------------------------------


class JobSpec(BaseModel):
    """Fields accepted when creating or updating a job."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    cron_expression: str = Field(alias="cronExpression")
    job_type: JobType = Field(default=JobType.NOTIFICATION_CHECK, alias="jobType")
    job_data: dict[str, Any] | None = Field(default=None, alias="jobData")
    is_active: bool = Field(default=True, alias="isActive")
    is_one_time: bool = Field(default=False, alias="isOneTime")

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "Name is required"
            raise ValueError(msg)
        return value

    @field_validator("cron_expression")
    @classmethod
    def _normalise_expression(cls, value: str) -> str:
        return " ".join(value.split())

    @field_validator("job_data", mode="before")
    @classmethod
    def _decode_job_data(cls, value: Any) -> Any:
        # The dashboard sends jobData as a JSON-encoded string.
        if isinstance(value, str):
            if not value.strip():
                return None
            try:
                return json.loads(value)
            except json.JSONDecodeError as exc:
                msg = "jobData is not valid JSON"
                raise ValueError(msg) from exc
        return value

    @classmethod
    def from_payload(cls, payload: Any) -> JobSpec:
        """Validate a request body into a JobSpec, checking expression and payload shape."""
        if not isinstance(payload, dict):
            msg = "Request body must be a JSON object"
            raise ValidationError(msg)
        try:
            spec = cls.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc) from exc
        parse(spec.cron_expression)
        parse_payload(spec.job_type, spec.job_data)
        return spec


# -- Persisted record ----------------------------------------------------------


@dataclass
class Job:
    """A persisted unit of scheduled work.

    Attributes:
        id: Unique identifier (UUID hex).
        name: Human-readable name.
        cron_expression: Five-field schedule expression.
        job_type: One of :class:`JobType`.
        job_data: Payload for the job type, or None.
        description: Optional human-readable description.
        active: Whether the job is armed in the scheduler.
        one_time: Deactivate after the first scheduled firing.
        completed: A one-time job that has already fired.
        created_at: ISO 8601 timestamp.
        updated_at: ISO 8601 timestamp of the last edit.
        last_run_at: ISO 8601 timestamp of the last execution.
        next_run_at: ISO 8601 timestamp of the next planned execution.
    """

    id: str
    name: str
    cron_expression: str
    job_type: str
    job_data: dict[str, Any] | None = None
    description: str = ""
    active: bool = False
    one_time: bool = False
    completed: bool = False
    created_at: str = ""
    updated_at: str = ""
    last_run_at: str | None = None
    next_run_at: str | None = None

    def __post_init__(self) -> None:
        now = datetime.now(UTC).isoformat()
        if not self.created_at:
            self.created_at = now
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def type(self) -> JobType:
        return JobType(self.job_type)

    def payload(self) -> BaseModel:
        """Return the typed payload for this job."""
        return parse_payload(self.type, self.job_data)

    @classmethod
    def from_spec(cls, spec: JobSpec, job_id: str | None = None) -> Job:
        return cls(
            id=job_id or make_job_id(),
            name=spec.name,
            cron_expression=spec.cron_expression,
            job_type=spec.job_type.value,
            job_data=spec.job_data,
            description=spec.description,
            active=spec.is_active,
            one_time=spec.is_one_time,
        )

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``jobs`` column order."""
        return (
            self.id,
            self.name,
            self.description,
            self.cron_expression,
            self.job_type,
            json.dumps(self.job_data) if self.job_data is not None else None,
            int(self.active),
            int(self.one_time),
            int(self.completed),
            self.created_at,
            self.updated_at,
            self.last_run_at,
            self.next_run_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Job:
        return cls(
            id=row[0],
            name=row[1],
            description=row[2] or "",
            cron_expression=row[3],
            job_type=row[4],
            job_data=json.loads(row[5]) if row[5] else None,
            active=bool(row[6]),
            one_time=bool(row[7]),
            completed=bool(row[8]),
            created_at=row[9],
            updated_at=row[10],
            last_run_at=row[11],
            next_run_at=row[12],
        )

    def to_api(self) -> dict[str, Any]:
        """Serialize for the REST API (camelCase, jobData as a JSON string)."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "cronExpression": self.cron_expression,
            "scheduleDescription": describe(self.cron_expression),
            "jobType": self.job_type,
            "jobData": json.dumps(self.job_data) if self.job_data is not None else None,
            "isActive": self.active,
            "isOneTime": self.one_time,
            "lastRun": self.last_run_at,
            "nextRun": self.next_run_at,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def make_job_id() -> str:
    """Generate a new job ID."""
    return uuid.uuid4().hex
