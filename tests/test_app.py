"""Tests for application wiring."""

from pathlib import Path

from cronpush.app import build_services, create_app
from cronpush.notifications.store import NotificationStore
from cronpush.scheduler.store import JobStore
from cronpush.web.keys import ENGINE_KEY, NOTIFICATIONS_KEY, REGISTRY_KEY


def test_build_services_shares_one_registry(tmp_path: Path) -> None:
    services = build_services(db_path=tmp_path / "test.db")

    assert services.engine._registry is services.registry
    assert services.engine._notifications is services.notifications
    assert services.registry._notifications is services.notification_store
    assert services.notifications.store is services.notification_store


def test_build_services_defaults_to_shared_stores() -> None:
    JobStore._reset()
    NotificationStore._reset()
    try:
        services = build_services()
        assert services.jobs is JobStore.get()
        assert services.notification_store is NotificationStore.get()
    finally:
        JobStore._reset()
        NotificationStore._reset()


def test_create_app_exposes_services(tmp_path: Path) -> None:
    services = build_services(db_path=tmp_path / "test.db")
    app = create_app(services)

    assert app[ENGINE_KEY] is services.engine
    assert app[NOTIFICATIONS_KEY] is services.notifications
    assert app[REGISTRY_KEY] is services.registry
    assert len(app.on_startup) == 1
    assert len(app.on_cleanup) == 1


async def test_lifecycle_hooks_start_and_stop_scheduler(tmp_path: Path) -> None:
    services = build_services(db_path=tmp_path / "test.db")
    app = create_app(services)

    for hook in app.on_startup:
        await hook(app)
    assert services.engine.running is True

    for hook in app.on_shutdown:
        await hook(app)
    for hook in app.on_cleanup:
        await hook(app)
    assert services.engine.running is False
