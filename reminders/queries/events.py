"""Event queries."""

from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import and_, literal_column, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from ..enums import DEFAULT_EVENT_TYPE
from ..tables import events


async def get_event(conn: AsyncConnection, event_id: str) -> dict[str, Any] | None:
    """Get an event by external id, including soft-deleted ones."""
    result = await conn.execute(select(events).where(events.c.event_id == event_id))
    row = result.mappings().first()
    return dict(row) if row else None


async def get_upcoming_events(
    conn: AsyncConnection,
    after: datetime,
    until: datetime,
    exclude: Iterable[str] = (),
    limit: int = 100,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """
    Get live events starting in (after, until], nearest first.

    Args:
        exclude: Event ids to leave out
        limit: Page size
        offset: Rows to skip, for paging past the first page
    """
    conditions = [
        events.c.is_deleted.is_(False),
        events.c.start_time > after,
        events.c.start_time <= until,
    ]
    exclude = list(exclude)
    if exclude:
        conditions.append(events.c.event_id.notin_(exclude))

    result = await conn.execute(
        select(events)
        .where(and_(*conditions))
        .order_by(events.c.start_time, events.c.event_id)
        .limit(limit)
        .offset(offset)
    )
    return [dict(row) for row in result.mappings()]


async def get_known_event_types(conn: AsyncConnection) -> set[str]:
    """All event types ever stored, including those of deleted events."""
    result = await conn.execute(select(events.c.event_type).distinct())
    return {row[0] for row in result}


async def upsert_event(conn: AsyncConnection, event: dict[str, Any]) -> bool:
    """
    Insert or update an event by external id.

    Un-deletes the event if the feed lists it again.

    Returns:
        True if the event was newly inserted, False if it was updated.
    """
    now = datetime.now(timezone.utc)
    values = {
        "event_id": event["event_id"],
        "title": event.get("title") or "No Title",
        "description": event.get("description") or "",
        "start_time": event["start_time"],
        "end_time": event["end_time"],
        "event_type": event.get("event_type") or DEFAULT_EVENT_TYPE,
        "html_link": event.get("html_link"),
        "is_deleted": False,
        "updated_at": now,
    }
    stmt = insert(events).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[events.c.event_id],
        set_={k: stmt.excluded[k] for k in values if k != "event_id"},
    ).returning(literal_column("(xmax = 0)").label("inserted"))

    result = await conn.execute(stmt)
    row = result.first()
    return bool(row and row[0])


async def mark_missing_events_deleted(
    conn: AsyncConnection,
    seen_ids: list[str],
    window_start: datetime,
    window_end: datetime,
) -> list[str]:
    """
    Soft-delete events in the synced window the feed no longer lists.

    Events are never hard-deleted because the reminder ledger references them.

    Returns:
        External ids of the events that were marked deleted.
    """
    conditions = [
        events.c.is_deleted.is_(False),
        events.c.start_time >= window_start,
        events.c.start_time <= window_end,
    ]
    if seen_ids:
        conditions.append(events.c.event_id.notin_(seen_ids))

    result = await conn.execute(
        update(events)
        .where(and_(*conditions))
        .values(is_deleted=True, updated_at=datetime.now(timezone.utc))
        .returning(events.c.event_id)
    )
    return [row[0] for row in result]
