"""User and notification-preference queries using SQLAlchemy Core."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from ..tables import event_type_preferences, notification_preferences, users


def normalize_email(email: str) -> str:
    """Emails are unique case-insensitively; store them lower-cased."""
    return email.strip().lower()


async def get_user_by_email(
    conn: AsyncConnection,
    email: str,
) -> dict[str, Any] | None:
    """Get a user by email (case-insensitive)."""
    result = await conn.execute(
        select(users).where(users.c.email == normalize_email(email))
    )
    row = result.mappings().first()
    return dict(row) if row else None


async def get_or_create_user(
    conn: AsyncConnection,
    email: str,
    name: str | None = None,
) -> dict[str, Any]:
    """
    Get or create a user by email.

    Users are created lazily on first contact. Concurrent first contacts
    for the same address resolve to the same row via the unique email.
    """
    existing = await get_user_by_email(conn, email)
    if existing:
        if name and name != existing.get("name"):
            result = await conn.execute(
                update(users)
                .where(users.c.user_id == existing["user_id"])
                .values(name=name, updated_at=datetime.now(timezone.utc))
                .returning(users)
            )
            return dict(result.mappings().first())
        return existing

    stmt = (
        insert(users)
        .values(email=normalize_email(email), name=name)
        .on_conflict_do_nothing(index_elements=[users.c.email])
        .returning(users)
    )
    result = await conn.execute(stmt)
    row = result.mappings().first()
    if row:
        return dict(row)

    # Lost the race to another writer; read what they inserted
    return await get_user_by_email(conn, email)


async def ensure_preferences(conn: AsyncConnection, user_id: int) -> None:
    """Create the default preference row for a user if missing."""
    await conn.execute(
        insert(notification_preferences)
        .values(user_id=user_id)
        .on_conflict_do_nothing(index_elements=[notification_preferences.c.user_id])
    )


async def get_active_users_with_preferences(
    conn: AsyncConnection,
) -> list[dict[str, Any]]:
    """
    Get every active user joined with their preference row.

    Users without a preference row are left out: they never opted into anything.
    """
    query = (
        select(
            users.c.email,
            users.c.name,
            notification_preferences,
        )
        .select_from(
            users.join(
                notification_preferences,
                users.c.user_id == notification_preferences.c.user_id,
            )
        )
        .where(users.c.is_active.is_(True))
        .order_by(users.c.user_id)
    )
    result = await conn.execute(query)
    return [dict(row) for row in result.mappings()]


async def get_event_type_overrides(
    conn: AsyncConnection,
    event_type: str,
) -> dict[int, bool]:
    """Map user_id -> is_enabled for explicit per-type preferences."""
    result = await conn.execute(
        select(
            event_type_preferences.c.user_id,
            event_type_preferences.c.is_enabled,
        ).where(event_type_preferences.c.event_type == event_type)
    )
    return {row["user_id"]: row["is_enabled"] for row in result.mappings()}


async def set_event_type_preference(
    conn: AsyncConnection,
    user_id: int,
    event_type: str,
    is_enabled: bool,
) -> None:
    """Create or update a user's explicit preference for one event type."""
    stmt = insert(event_type_preferences).values(
        user_id=user_id,
        event_type=event_type,
        is_enabled=is_enabled,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[
            event_type_preferences.c.user_id,
            event_type_preferences.c.event_type,
        ],
        set_={
            "is_enabled": stmt.excluded.is_enabled,
            "updated_at": datetime.now(timezone.utc),
        },
    )
    await conn.execute(stmt)


async def enable_event_type_for_auto_users(
    conn: AsyncConnection,
    event_type: str,
) -> int:
    """
    Opt users with auto_enable_new_types into a newly seen event type.

    Existing explicit choices for the type are left untouched.

    Returns:
        Number of preference rows created.
    """
    auto_users = await conn.execute(
        select(notification_preferences.c.user_id)
        .select_from(
            notification_preferences.join(
                users, users.c.user_id == notification_preferences.c.user_id
            )
        )
        .where(
            and_(
                notification_preferences.c.auto_enable_new_types.is_(True),
                users.c.is_active.is_(True),
            )
        )
    )
    user_ids = [row[0] for row in auto_users]
    if not user_ids:
        return 0

    result = await conn.execute(
        insert(event_type_preferences)
        .values(
            [
                {"user_id": user_id, "event_type": event_type, "is_enabled": True}
                for user_id in user_ids
            ]
        )
        .on_conflict_do_nothing(
            index_elements=[
                event_type_preferences.c.user_id,
                event_type_preferences.c.event_type,
            ]
        )
    )
    return result.rowcount or 0
