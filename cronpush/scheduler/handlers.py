"""Job handler registry — pluggable handlers for non-core job types."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, cast

from cronpush.notifications.models import Category, NotificationSpec, Severity
from cronpush.scheduler.models import DailySummaryPayload, Job, JobType

if TYPE_CHECKING:
    from cronpush.notifications.service import NotificationService

logger = logging.getLogger(__name__)

# Handler signature: async (job, notifications) -> None
JobHandler = Callable[[Job, "NotificationService"], Awaitable[None]]


class JobHandlerRegistry:
    """Registry of handlers keyed by job type.

    Usage::

        registry = JobHandlerRegistry()

        @registry.handler(JobType.CUSTOM)
        async def handle_custom(job: Job, notifications: NotificationService) -> None:
            ...
    """

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def handler(self, job_type: str) -> Callable[[JobHandler], JobHandler]:
        """Decorator to register an async function as the handler for *job_type*."""

        def decorator(fn: JobHandler) -> JobHandler:
            self._handlers[str(job_type)] = fn
            logger.info("Registered job handler: %s", job_type)
            return fn

        return decorator

    def get(self, job_type: str) -> JobHandler | None:
        """Look up a handler by job type."""
        return self._handlers.get(str(job_type))

    @property
    def job_types(self) -> list[str]:
        """All job types with a registered handler."""
        return list(self._handlers)


job_handlers = JobHandlerRegistry()


@job_handlers.handler(JobType.DAILY_SUMMARY)
async def send_daily_summary(job: Job, notifications: NotificationService) -> None:
    """Broadcast how many notifications went out during the payload's window."""
    payload = cast(DailySummaryPayload, job.payload())

    since = datetime.now(UTC) - timedelta(hours=payload.window_hours)
    count = await notifications.store.count_since(since.isoformat())
    await notifications.create(
        NotificationSpec(
            title=payload.title,
            message=f"{count} notification(s) sent in the last {payload.window_hours} hours.",
            severity=Severity.INFO,
            category=Category.SCHEDULED,
        )
    )
    logger.info("Daily summary for job '%s': %d notification(s)", job.name, count)
