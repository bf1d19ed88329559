"""Shared aiosqlite connection helper for the job and notification stores."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite

if TYPE_CHECKING:
    from pathlib import Path


async def open_database(path: Path, schema: tuple[str, ...] = ()) -> aiosqlite.Connection:
    """Open a local SQLite database with WAL mode and busy timeout.

    Every statement in *schema* is executed (they are expected to be
    ``CREATE ... IF NOT EXISTS``) before the connection is returned.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(path))
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA busy_timeout=5000")
    for statement in schema:
        await db.execute(statement)
    if schema:
        await db.commit()
    return db
