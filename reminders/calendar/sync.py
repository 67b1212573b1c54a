"""
Calendar sync - mirror the upstream calendar into the events table.

Events the feed stops listing are soft-deleted (the reminder ledger still
references them) and their armed reminders cancelled.
"""

import asyncio
import logging
from datetime import datetime, timezone

from reminders.calendar.client import list_upcoming_events
from reminders.config import get_calendar_sync_horizon
from reminders.database import get_transaction
from reminders.queries import (
    enable_event_type_for_auto_users,
    get_known_event_types,
    mark_missing_events_deleted,
    upsert_event,
)

logger = logging.getLogger(__name__)


async def sync_calendar_events(now: datetime | None = None) -> dict:
    """
    Fetch events from now to the sync horizon and store them.

    Returns:
        Dict with added/updated/deleted counts, the newly seen event types and
        how many preference rows were auto-created for them.
    """
    from reminders.notifications.scheduler import cancel_event_reminders

    window_start = now or datetime.now(timezone.utc)
    window_end = window_start + get_calendar_sync_horizon()

    items = await asyncio.to_thread(list_upcoming_events, window_start, window_end)
    if items is None:
        logger.info("Calendar not configured, skipping sync")
        return {"added": 0, "updated": 0, "deleted": 0, "new_types": [], "auto_enabled": 0}

    added = 0
    updated = 0
    auto_enabled = 0
    async with get_transaction() as conn:
        known_types = await get_known_event_types(conn)

        for event in items:
            if await upsert_event(conn, event):
                added += 1
            else:
                updated += 1

        deleted_ids = await mark_missing_events_deleted(
            conn,
            [event["event_id"] for event in items],
            window_start,
            window_end,
        )

        new_types = sorted({event["event_type"] for event in items} - known_types)
        for event_type in new_types:
            auto_enabled += await enable_event_type_for_auto_users(conn, event_type)

    for event_id in deleted_ids:
        await cancel_event_reminders(event_id)

    if new_types:
        logger.info(
            f"New event types {new_types}: auto-enabled {auto_enabled} preferences"
        )

    return {
        "added": added,
        "updated": updated,
        "deleted": len(deleted_ids),
        "new_types": new_types,
        "auto_enabled": auto_enabled,
    }
