"""Notification records, read state and delivery."""

from cronpush.notifications.models import Category, Notification, NotificationSpec, Severity
from cronpush.notifications.service import NotificationService
from cronpush.notifications.store import NotificationStore

__all__ = [
    "Category",
    "Notification",
    "NotificationService",
    "NotificationSpec",
    "NotificationStore",
    "Severity",
]
