"""
Event reminder service.

Calendar events go in, reminders come out: per-user email and browser push,
plus one public social post per event, each sent at most once per
(event, recipient, channel, lead time).
"""

from .database import get_connection, get_transaction, get_engine, close_engine, is_configured
from .enums import Channel, ReminderStatus, SkipReason

__all__ = [
    "get_connection",
    "get_transaction",
    "get_engine",
    "close_engine",
    "is_configured",
    "Channel",
    "ReminderStatus",
    "SkipReason",
]
