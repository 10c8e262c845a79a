"""Operator notification package."""

from hms_finance.notifications.tracker import NotificationTracker

__all__ = ["NotificationTracker"]
