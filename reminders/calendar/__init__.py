"""Google Calendar ingestion: feeds events into the event store."""

from .client import get_calendar_service, is_calendar_configured, list_upcoming_events
from .sync import sync_calendar_events

__all__ = [
    "get_calendar_service",
    "is_calendar_configured",
    "list_upcoming_events",
    "sync_calendar_events",
]
