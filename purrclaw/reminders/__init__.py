"""Persisted reminder scheduling."""

from purrclaw.reminders.service import Reminder, ReminderService

__all__ = ["Reminder", "ReminderService"]
