"""Error taxonomy shared by the stores, the scheduler and the HTTP layer."""

from __future__ import annotations

from typing import Any


class CronpushError(Exception):
    """Base class for all cronpush errors."""


class ValidationError(CronpushError):
    """Malformed input: bad schedule expression, missing fields, bad payload.

    ``reason`` is a human-readable explanation suitable for API responses.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    @classmethod
    def from_pydantic(cls, exc: Any) -> ValidationError:
        """Build from a pydantic ValidationError, using its first error as the reason."""
        err = exc.errors()[0]
        location = ".".join(str(part) for part in err.get("loc", ()))
        return cls(f"{location}: {err['msg']}" if location else err["msg"])


class ScheduleError(ValidationError):
    """A syntactically valid expression that never produces an occurrence."""


class NotFoundError(CronpushError):
    """Unknown job or notification id."""

    def __init__(self, kind: str, item_id: str) -> None:
        super().__init__(f"{kind} not found: {item_id}")
        self.kind = kind
        self.item_id = item_id


class TransientHandlerError(CronpushError):
    """A job's payload execution failed. The next occurrence still fires."""

    def __init__(self, job_id: str, cause: BaseException | str) -> None:
        super().__init__(f"Job {job_id} failed: {cause}")
        self.job_id = job_id
        self.cause = cause


class DeliveryError(CronpushError):
    """A push to a connection that is no longer writable."""
