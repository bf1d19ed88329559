"""JobStore — aiosqlite CRUD for scheduled jobs."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cronpush.config import settings
from cronpush.db import open_database
from cronpush.scheduler.models import Job

if TYPE_CHECKING:
    from pathlib import Path

    import aiosqlite

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS jobs (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        cron_expression TEXT NOT NULL,
        job_type TEXT NOT NULL,
        job_data TEXT,
        active INTEGER NOT NULL DEFAULT 0,
        one_time INTEGER NOT NULL DEFAULT 0,
        completed INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        last_run_at TEXT,
        next_run_at TEXT
    )
    """,
)

_COLUMNS = (
    "id, name, description, cron_expression, job_type, job_data, active, "
    "one_time, completed, created_at, updated_at, last_run_at, next_run_at"
)


class JobStore:
    """Persists jobs in SQLite.

    Singleton accessed via ``JobStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: JobStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> JobStore:
        """Return the shared JobStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        schema = () if self._initialised else _SCHEMA
        db = await open_database(self._db_path, schema)
        self._initialised = True
        return db

    # -- CRUD ------------------------------------------------------------------

    async def add_job(self, job: Job) -> Job:
        """Insert a new job. Returns the same job object."""
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO jobs ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                job.to_row(),
            )
            await db.commit()
            logger.info("Added job: %s (%s)", job.name, job.id)
            return job
        finally:
            await db.close()

    async def get_job(self, job_id: str) -> Job | None:
        """Fetch a job by ID, or None if not found."""
        db = await self._connect()
        try:
            cursor = await db.execute(f"SELECT {_COLUMNS} FROM jobs WHERE id = ?", (job_id,))
            row = await cursor.fetchone()
            return Job.from_row(row) if row else None
        finally:
            await db.close()

    async def list_jobs(self) -> list[Job]:
        """Return every job, oldest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(f"SELECT {_COLUMNS} FROM jobs ORDER BY created_at")
            rows = await cursor.fetchall()
            return [Job.from_row(row) for row in rows]
        finally:
            await db.close()

    async def list_active_jobs(self) -> list[Job]:
        """Return all active jobs."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM jobs WHERE active = 1 ORDER BY created_at"
            )
            rows = await cursor.fetchall()
            return [Job.from_row(row) for row in rows]
        finally:
            await db.close()

    async def save_job(self, job: Job) -> bool:
        """Overwrite every mutable column of *job* in one statement.

        Returns False if the job no longer exists.
        """
        row = job.to_row()
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                UPDATE jobs SET
                    name = ?, description = ?, cron_expression = ?, job_type = ?,
                    job_data = ?, active = ?, one_time = ?, completed = ?,
                    updated_at = ?, last_run_at = ?, next_run_at = ?
                WHERE id = ?
                """,
                (*row[1:9], *row[10:], job.id),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def delete_job(self, job_id: str) -> bool:
        """Remove a job. Returns True if a row was deleted."""
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
            if deleted:
                logger.info("Deleted job: %s", job_id)
            return deleted
        finally:
            await db.close()

    async def update_last_run(self, job_id: str, timestamp: str | None = None) -> None:
        """Set the last_run_at timestamp (defaults to now UTC)."""
        ts = timestamp or datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            await db.execute("UPDATE jobs SET last_run_at = ? WHERE id = ?", (ts, job_id))
            await db.commit()
        finally:
            await db.close()

    async def update_next_run(self, job_id: str, timestamp: str | None) -> None:
        """Set or clear the next_run_at timestamp."""
        db = await self._connect()
        try:
            await db.execute("UPDATE jobs SET next_run_at = ? WHERE id = ?", (timestamp, job_id))
            await db.commit()
        finally:
            await db.close()
