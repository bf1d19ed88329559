"""Shared test fixtures."""

import json
from pathlib import Path
from typing import Any

import pytest

from cronpush.delivery.channel import ConnectionRegistry
from cronpush.notifications.service import NotificationService
from cronpush.notifications.store import NotificationStore
from cronpush.scheduler.store import JobStore


class FakeConnection:
    """In-memory stand-in for a WebSocketResponse."""

    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._fail = fail

    async def send_str(self, data: str) -> None:
        if self._fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True

    def frames(self, frame_type: str) -> list[dict[str, Any]]:
        return [f for f in self.sent if f["type"] == frame_type]


@pytest.fixture
def make_connection():
    """Factory for fake WebSocket connections."""
    return FakeConnection


@pytest.fixture
async def job_store(tmp_path: Path) -> JobStore:
    """Create a JobStore backed by a temp database."""
    return JobStore(db_path=tmp_path / "test.db")


@pytest.fixture
async def notification_store(tmp_path: Path) -> NotificationStore:
    """Create a NotificationStore backed by a temp database."""
    return NotificationStore(db_path=tmp_path / "test.db")


@pytest.fixture
def registry(notification_store: NotificationStore) -> ConnectionRegistry:
    return ConnectionRegistry(notification_store)


@pytest.fixture
def notifications(
    notification_store: NotificationStore, registry: ConnectionRegistry
) -> NotificationService:
    return NotificationService(notification_store, registry)
