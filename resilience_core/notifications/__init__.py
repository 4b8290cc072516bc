"""Throttled, batched user notifications."""

from .throttle import NotificationQueue
from .widget import Notification, NotificationAction, NotificationWidget

__all__ = ["Notification", "NotificationAction", "NotificationQueue", "NotificationWidget"]
