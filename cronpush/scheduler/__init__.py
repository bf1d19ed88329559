"""Scheduled job system — expressions, models, persistence, execution and scheduling."""

from cronpush.scheduler.engine import SchedulerEngine
from cronpush.scheduler.executor import JobExecutor
from cronpush.scheduler.expression import ScheduleExpression, next_occurrence, parse, validate
from cronpush.scheduler.handlers import JobHandlerRegistry, job_handlers
from cronpush.scheduler.models import Job, JobSpec, JobType
from cronpush.scheduler.store import JobStore

__all__ = [
    "Job",
    "JobExecutor",
    "JobHandlerRegistry",
    "JobSpec",
    "JobStore",
    "JobType",
    "ScheduleExpression",
    "SchedulerEngine",
    "job_handlers",
    "next_occurrence",
    "parse",
    "validate",
]
