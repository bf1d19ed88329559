"""JobExecutor — dispatches a job's payload by job type."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from cronpush.errors import TransientHandlerError
from cronpush.notifications.models import Category, NotificationSpec
from cronpush.scheduler.handlers import job_handlers
from cronpush.scheduler.models import JobType, NotificationCheckPayload

if TYPE_CHECKING:
    from cronpush.notifications.service import NotificationService
    from cronpush.scheduler.handlers import JobHandlerRegistry
    from cronpush.scheduler.models import Job

logger = logging.getLogger(__name__)


class JobExecutor:
    """Executes jobs by dispatching to the appropriate handler.

    Args:
        notifications: NotificationService used by ``notification_check`` jobs
            and handed to registered handlers.
        handlers: Registry for the other job types (default: the shared one).
    """

    def __init__(
        self,
        notifications: NotificationService,
        handlers: JobHandlerRegistry | None = None,
    ) -> None:
        self._notifications = notifications
        self._handlers = handlers or job_handlers

    async def execute(self, job: Job) -> None:
        """Run *job*'s payload. Raises TransientHandlerError if it fails."""
        logger.info("Executing job: '%s' (%s) type=%s", job.name, job.id, job.job_type)
        try:
            await self._dispatch(job)
        except Exception as exc:
            logger.exception(
                "Job failed, will retry at next occurrence: '%s' (%s)", job.name, job.id
            )
            raise TransientHandlerError(job.id, exc) from exc
        logger.info("Job executed successfully: '%s' (%s)", job.name, job.id)

    async def _dispatch(self, job: Job) -> None:
        """Route to the correct handler based on job type."""
        if job.type is JobType.NOTIFICATION_CHECK:
            await self._handle_notification_check(job)
            return
        handler = self._handlers.get(job.job_type)
        if handler is None:
            msg = f"No handler registered for job type '{job.job_type}'"
            raise LookupError(msg)
        await handler(job, self._notifications)

    async def _handle_notification_check(self, job: Job) -> None:
        """Create a scheduled notification from the job's payload."""
        payload = cast(NotificationCheckPayload, job.payload())
        notification = await self._notifications.create(
            NotificationSpec(
                title=payload.title,
                message=payload.message,
                severity=payload.type,
                category=Category.SCHEDULED,
                to_user_id=payload.to_user_id,
            )
        )
        logger.info("Job '%s' created notification %s", job.name, notification.id)
