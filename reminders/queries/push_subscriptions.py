"""Browser push subscription queries."""

from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from ..tables import push_subscriptions


def _not_expired(now: datetime):
    return or_(
        push_subscriptions.c.expires_at.is_(None),
        push_subscriptions.c.expires_at > now,
    )


async def register_push_subscription(
    conn: AsyncConnection,
    user_id: int,
    endpoint: str,
    keys: dict[str, str],
    expires_at: datetime | None = None,
) -> dict[str, Any]:
    """
    Register a browser push endpoint for a user.

    The endpoint is globally unique: re-registering an existing endpoint
    moves it to the given user and refreshes its keys.
    """
    stmt = insert(push_subscriptions).values(
        user_id=user_id,
        endpoint=endpoint,
        keys=keys,
        expires_at=expires_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[push_subscriptions.c.endpoint],
        set_={
            "user_id": stmt.excluded.user_id,
            "keys": stmt.excluded["keys"],
            "expires_at": stmt.excluded.expires_at,
        },
    ).returning(push_subscriptions)
    result = await conn.execute(stmt)
    return dict(result.mappings().first())


async def get_active_subscriptions(
    conn: AsyncConnection,
    user_id: int,
    now: datetime,
) -> list[dict[str, Any]]:
    """Get a user's non-expired push subscriptions."""
    result = await conn.execute(
        select(push_subscriptions)
        .where(and_(push_subscriptions.c.user_id == user_id, _not_expired(now)))
        .order_by(push_subscriptions.c.subscription_id)
    )
    return [dict(row) for row in result.mappings()]


async def get_user_ids_with_active_subscriptions(
    conn: AsyncConnection,
    now: datetime,
) -> set[int]:
    """Users that have at least one non-expired push subscription."""
    result = await conn.execute(
        select(push_subscriptions.c.user_id).distinct().where(_not_expired(now))
    )
    return {row[0] for row in result}


async def delete_subscription(conn: AsyncConnection, endpoint: str) -> bool:
    """Delete one subscription by endpoint. Returns True if a row was removed."""
    result = await conn.execute(
        delete(push_subscriptions).where(push_subscriptions.c.endpoint == endpoint)
    )
    return (result.rowcount or 0) > 0
