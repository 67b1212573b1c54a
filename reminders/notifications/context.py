"""
Context building for event reminders.

Reminder jobs only store the event id and lead time; the context is built
from the event row re-read at fire time, so edits made after arming show up.
"""

from typing import Any

from reminders.config import get_frontend_url


def lead_phrase(lead_minutes: int) -> str:
    """Human wording for a lead time, e.g. "in 1 hour", "in 10 minutes"."""
    if lead_minutes % 60 == 0:
        hours = lead_minutes // 60
        return "in 1 hour" if hours == 1 else f"in {hours} hours"
    return "in 1 minute" if lead_minutes == 1 else f"in {lead_minutes} minutes"


def build_event_url(event: dict[str, Any]) -> str:
    """Calendar link when the feed gave one, else the event page on the site."""
    return event.get("html_link") or f"{get_frontend_url()}/events/{event['event_id']}"


def build_reminder_context(event: dict[str, Any], lead_minutes: int) -> dict:
    """
    Build template context for one event and lead time.

    Pure function of the event dict; times are rendered in UTC since a
    batched or broadcast message has no single recipient timezone.
    """
    start = event["start_time"]
    return {
        "event_id": event["event_id"],
        "title": event.get("title") or "Untitled event",
        "description": (event.get("description") or "").strip(),
        "start_time": start.strftime("%A, %B %d at %H:%M UTC"),
        "start_clock": start.strftime("%H:%M UTC"),
        "start_time_utc": start.isoformat(),
        "lead_minutes": lead_minutes,
        "lead_phrase": lead_phrase(lead_minutes),
        "event_url": build_event_url(event),
        "preferences_url": f"{get_frontend_url()}/preferences",
    }
