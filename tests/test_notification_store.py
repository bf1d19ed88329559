"""Tests for NotificationStore — persistence and per-recipient read state."""

from cronpush.notifications.models import Notification
from cronpush.notifications.store import NotificationStore

DELIVERED = "2026-10-19T10:00:00+00:00"


def _make(
    notification_id: str,
    to_user_id: str | None = None,
    delivered_at: str | None = DELIVERED,
    **kwargs,
) -> Notification:
    return Notification(
        id=notification_id,
        title=kwargs.pop("title", "Title"),
        message=kwargs.pop("message", "Body"),
        to_user_id=to_user_id,
        delivered_at=delivered_at,
        **kwargs,
    )


async def test_add_and_get(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("n1", to_user_id="alice"))

    fetched = await notification_store.get_notification("n1")
    assert fetched is not None
    assert fetched.to_user_id == "alice"
    assert fetched.is_delivered


async def test_get_not_found(notification_store: NotificationStore) -> None:
    assert await notification_store.get_notification("missing") is None


async def test_list_for_user_includes_broadcasts(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("direct", to_user_id="alice"))
    await notification_store.add(_make("everyone"))
    await notification_store.add(_make("other", to_user_id="bob"))

    ids = {n.id for n, _ in await notification_store.list_for_user("alice")}
    assert ids == {"direct", "everyone"}


async def test_list_for_user_skips_pending(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("later", to_user_id="alice", delivered_at=None))
    assert await notification_store.list_for_user("alice") == []


async def test_list_pending(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("sent"))
    await notification_store.add(
        _make("held", delivered_at=None, scheduled_at="2026-10-20T09:00:00+00:00")
    )

    pending = await notification_store.list_pending()
    assert [n.id for n in pending] == ["held"]


async def test_mark_delivered_once(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("n1", delivered_at=None))

    assert await notification_store.mark_delivered("n1", DELIVERED) is True
    assert await notification_store.mark_delivered("n1", DELIVERED) is False


async def test_mark_read(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("n1", to_user_id="alice"))

    assert await notification_store.mark_read("alice", "n1") is True
    # Repeats are no-ops.
    assert await notification_store.mark_read("alice", "n1") is False

    pairs = await notification_store.list_for_user("alice")
    assert pairs[0][1] is True
    assert await notification_store.count_unread("alice") == 0


async def test_mark_read_not_addressed(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("n1", to_user_id="alice"))
    assert await notification_store.mark_read("bob", "n1") is False
    assert await notification_store.mark_read("alice", "unknown") is False


async def test_broadcast_read_state_is_per_user(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("all"))

    await notification_store.mark_read("alice", "all")
    assert await notification_store.count_unread("alice") == 0
    assert await notification_store.count_unread("bob") == 1


async def test_list_unread_only(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("n1", to_user_id="alice"))
    await notification_store.add(_make("n2", to_user_id="alice"))
    await notification_store.mark_read("alice", "n1")

    unread = await notification_store.list_for_user("alice", unread_only=True)
    assert [n.id for n, _ in unread] == ["n2"]


async def test_mark_all_read_counts_then_zero(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("n1", to_user_id="alice"))
    await notification_store.add(_make("n2", to_user_id="alice"))
    await notification_store.add(_make("n3"))
    await notification_store.add(_make("n4", to_user_id="bob"))

    assert await notification_store.mark_all_read("alice") == 3
    assert await notification_store.mark_all_read("alice") == 0
    assert await notification_store.count_unread("bob") == 2


async def test_count_since(notification_store: NotificationStore) -> None:
    await notification_store.add(_make("old", delivered_at="2026-10-17T10:00:00+00:00"))
    await notification_store.add(_make("new", delivered_at="2026-10-19T10:00:00+00:00"))
    await notification_store.add(_make("held", delivered_at=None))

    assert await notification_store.count_since("2026-10-18T10:00:00+00:00") == 1
