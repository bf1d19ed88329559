"""SchedulerEngine — job lifecycle, APScheduler timers and post-fire bookkeeping."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from cronpush.config import settings
from cronpush.delivery.channel import cronjob_status_frame
from cronpush.errors import NotFoundError, ScheduleError, TransientHandlerError
from cronpush.scheduler.expression import next_occurrence, validate
from cronpush.scheduler.models import Job, JobSpec, parse_payload

if TYPE_CHECKING:
    from cronpush.delivery.channel import ConnectionRegistry
    from cronpush.notifications.service import NotificationService
    from cronpush.scheduler.executor import JobExecutor
    from cronpush.scheduler.store import JobStore

logger = logging.getLogger(__name__)

# APScheduler id of the interval job that delivers due scheduled notifications.
NOTIFICATION_SWEEP_ID = "__notification_sweep__"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SchedulerEngine:
    """Owns the job lifecycle and maps active jobs to APScheduler timers.

    Each active job has exactly one ``DateTrigger`` timer keyed by its id;
    after every firing the next occurrence is computed from the expression
    and the timer is re-armed. The job record itself always lives in the
    store.

    Args:
        store: JobStore for persistence.
        executor: JobExecutor that runs payloads.
        registry: ConnectionRegistry that receives ``cronjob_status`` events.
        notifications: NotificationService whose due notifications are swept
            on a fixed interval.
        timezone: IANA timezone for evaluating expressions (default from settings).
        clock: Returns the current UTC time (overridable in tests).
    """

    def __init__(
        self,
        store: JobStore,
        executor: JobExecutor,
        registry: ConnectionRegistry | None = None,
        notifications: NotificationService | None = None,
        timezone: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._executor = executor
        self._registry = registry
        self._notifications = notifications
        self._timezone = timezone or settings.scheduler_timezone
        self._clock = clock
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False
        # Serializes executions of the same job.
        self._run_locks: dict[str, asyncio.Lock] = {}
        # Serializes state transitions of the same job (start/stop/update/delete
        # and post-fire bookkeeping).
        self._state_locks: dict[str, asyncio.Lock] = {}

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Re-arm every active job from the current time and start the scheduler.

        Persisted next_run values are ignored; they may be stale after a restart.
        """
        jobs = await self._store.list_active_jobs()
        now = self._clock()
        armed = 0
        for job in jobs:
            next_run = self._compute_next_run(job, now)
            if next_run is None:
                job.active = False
            job.next_run_at = next_run
            await self._store.save_job(job)
            if job.active:
                self._arm(job)
                armed += 1

        if self._notifications is not None:
            self._scheduler.add_job(
                self._notifications.deliver_due,
                trigger=IntervalTrigger(seconds=settings.notification_poll_seconds),
                id=NOTIFICATION_SWEEP_ID,
                name="Deliver scheduled notifications",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

        self._scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started with %d active job(s) (tz=%s)", armed, self._timezone
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    def armed_job_ids(self) -> list[str]:
        """Ids of jobs that currently have a pending timer."""
        return [j.id for j in self._scheduler.get_jobs() if j.id != NOTIFICATION_SWEEP_ID]

    # -- Queries ---------------------------------------------------------------

    async def list_jobs(self) -> list[Job]:
        return await self._store.list_jobs()

    async def get_job(self, job_id: str) -> Job:
        """Return the job or raise NotFoundError."""
        job = await self._store.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    # -- Job management --------------------------------------------------------

    async def create_job(self, spec: JobSpec | dict[str, Any]) -> Job:
        """Validate, persist and (if active) arm a new job."""
        spec = self._check(spec)
        job = Job.from_spec(spec)
        now = self._clock()
        job.created_at = job.updated_at = now.isoformat()
        if job.active:
            job.next_run_at = self._next_run(job, now)

        await self._store.add_job(job)
        if job.active:
            self._arm(job)
        logger.info("Created job '%s' (%s) active=%s", job.name, job.id, job.active)
        await self._emit(job, "created")
        return job

    async def update_job(self, job_id: str, spec: JobSpec | dict[str, Any]) -> Job:
        """Replace a job's definition, recomputing and re-arming its timer."""
        spec = self._check(spec)
        async with self._lock(self._state_locks, job_id):
            job = await self.get_job(job_id)
            # Flags left out of the body keep their stored values.
            one_time = spec.is_one_time if "is_one_time" in spec.model_fields_set else job.one_time
            active = spec.is_active if "is_active" in spec.model_fields_set else job.active
            if spec.cron_expression != job.cron_expression or one_time != job.one_time:
                job.completed = False

            job.name = spec.name
            job.description = spec.description
            job.cron_expression = spec.cron_expression
            job.job_type = spec.job_type.value
            job.job_data = spec.job_data
            job.one_time = one_time
            job.active = active and not (job.one_time and job.completed)

            now = self._clock()
            job.updated_at = now.isoformat()
            job.next_run_at = self._next_run(job, now) if job.active else None
            if not await self._store.save_job(job):
                raise NotFoundError("Job", job_id)

            if job.active:
                self._arm(job)
            else:
                self._disarm(job_id)
        logger.info("Updated job '%s' (%s) active=%s", job.name, job.id, job.active)
        await self._emit(job, "updated")
        return job

    async def start_job(self, job_id: str) -> Job:
        """Activate a job and arm its timer from now.

        A one-time job that has already fired stays inactive until its
        expression is updated.
        """
        async with self._lock(self._state_locks, job_id):
            job = await self.get_job(job_id)
            if job.one_time and job.completed:
                logger.info(
                    "One-time job '%s' (%s) already fired; not restarting", job.name, job_id
                )
                return job

            now = self._clock()
            job.active = True
            job.next_run_at = self._next_run(job, now)
            job.updated_at = now.isoformat()
            await self._store.save_job(job)
            self._arm(job)
        logger.info("Started job '%s' (%s), next run %s", job.name, job_id, job.next_run_at)
        await self._emit(job, "started")
        return job

    async def stop_job(self, job_id: str) -> Job:
        """Deactivate a job and cancel its timer. Stopping an inactive job is fine."""
        async with self._lock(self._state_locks, job_id):
            job = await self.get_job(job_id)
            self._disarm(job_id)
            job.active = False
            job.next_run_at = None
            job.updated_at = self._clock().isoformat()
            await self._store.save_job(job)
        logger.info("Stopped job '%s' (%s)", job.name, job_id)
        await self._emit(job, "stopped")
        return job

    async def delete_job(self, job_id: str) -> Job:
        """Cancel any pending timer and remove the job."""
        async with self._lock(self._state_locks, job_id):
            job = await self.get_job(job_id)
            self._disarm(job_id)
            if not await self._store.delete_job(job_id):
                raise NotFoundError("Job", job_id)
            job.active = False
            job.next_run_at = None
        self._state_locks.pop(job_id, None)
        self._run_locks.pop(job_id, None)
        await self._emit(job, "deleted")
        return job

    async def execute_now(self, job_id: str) -> Job:
        """Run a job's payload immediately, regardless of its active state.

        Records last_run but leaves next_run alone, and does not consume a
        one-time job. Raises TransientHandlerError if the payload fails.
        """
        job = await self.get_job(job_id)
        error: TransientHandlerError | None = None
        async with self._lock(self._run_locks, job_id):
            try:
                await self._executor.execute(job)
            except TransientHandlerError as exc:
                error = exc

        async with self._lock(self._state_locks, job_id):
            current = await self._store.get_job(job_id)
            if current is not None:
                current.last_run_at = self._clock().isoformat()
                await self._store.update_last_run(job_id, current.last_run_at)
                job = current

        await self._emit(
            job,
            "failed" if error else "executed",
            error=str(error.cause) if error else None,
            manual=True,
        )
        if error is not None:
            raise error
        return job

    # -- Internal --------------------------------------------------------------

    def _check(self, spec: JobSpec | dict[str, Any]) -> JobSpec:
        """Validate a spec (expression and payload shape) up front."""
        if not isinstance(spec, JobSpec):
            return JobSpec.from_payload(spec)
        validate(spec.cron_expression)
        parse_payload(spec.job_type, spec.job_data)
        return spec

    @staticmethod
    def _lock(locks: dict[str, asyncio.Lock], job_id: str) -> asyncio.Lock:
        return locks.setdefault(job_id, asyncio.Lock())

    def _next_run(self, job: Job, after: datetime) -> str:
        return next_occurrence(job.cron_expression, after, self._timezone).isoformat()

    def _compute_next_run(self, job: Job, after: datetime) -> str | None:
        """Like _next_run, but logs and returns None for a schedule with no future run."""
        try:
            return self._next_run(job, after)
        except ScheduleError:
            logger.exception("Job '%s' (%s) has no future occurrence", job.name, job.id)
            return None

    def _arm(self, job: Job) -> None:
        """Create (or replace) the single pending timer for *job*."""
        if job.next_run_at is None:
            msg = f"Job '{job.name}' ({job.id}) has no next run to arm"
            raise ScheduleError(msg)
        run_at = datetime.fromisoformat(job.next_run_at)
        self._scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=run_at, timezone=self._timezone),
            id=job.id,
            name=job.name,
            args=[job.id, job.next_run_at],
            misfire_grace_time=None,
            replace_existing=True,
        )

    def _disarm(self, job_id: str) -> None:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            logger.debug("Job %s has no pending timer", job_id)

    async def _fire(self, job_id: str, scheduled_for: str) -> None:
        """Timer callback: run the payload, then record the run and re-arm."""
        job = await self._store.get_job(job_id)
        if job is None:
            logger.warning("Timer fired for unknown job: %s", job_id)
            return
        if not job.active:
            logger.info("Skipping inactive job: '%s' (%s)", job.name, job_id)
            return

        error: str | None = None
        async with self._lock(self._run_locks, job_id):
            try:
                await self._executor.execute(job)
            except TransientHandlerError as exc:
                error = str(exc.cause)

        async with self._lock(self._state_locks, job_id):
            current = await self._store.get_job(job_id)
            if current is None:
                logger.info("Job %s was deleted while running; not rescheduling", job_id)
                return

            now = self._clock()
            current.last_run_at = now.isoformat()
            if current.one_time:
                current.active = False
                current.completed = True
                current.next_run_at = None
                logger.info("One-time job '%s' (%s) completed", current.name, job_id)
            elif current.active:
                after = max(now, datetime.fromisoformat(scheduled_for))
                current.next_run_at = self._compute_next_run(current, after)
                if current.next_run_at is None:
                    current.active = False
            await self._store.save_job(current)
            if current.active:
                self._arm(current)

        await self._emit(current, "failed" if error else "executed", error=error)

    async def _emit(self, job: Job, status: str, **extra: Any) -> None:
        """Push a ``cronjob_status`` event to every registered connection."""
        if self._registry is None:
            return
        data: dict[str, Any] = {
            "jobId": job.id,
            "name": job.name,
            "status": status,
            "isActive": job.active,
            "lastRun": job.last_run_at,
            "nextRun": job.next_run_at,
        }
        data.update({k: v for k, v in extra.items() if v is not None})
        await self._registry.push(cronjob_status_frame(data))
