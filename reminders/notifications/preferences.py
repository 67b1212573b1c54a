"""
Preference resolver - who gets which reminder for an event.

compute_recipient_slots() is pure: it takes already-loaded rows and returns
(user, channel, lead minutes) slots. resolve_recipients() loads those rows.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from reminders.database import get_connection
from reminders.enums import DEFAULT_EVENT_TYPE, Channel
from reminders.queries import (
    get_active_users_with_preferences,
    get_event_type_overrides,
    get_user_ids_with_active_subscriptions,
)


# Channel on/off toggle per preference row
CHANNEL_TOGGLES = {
    Channel.email: "notify_email",
    Channel.browser: "notify_browser",
}

# Lead minutes -> preference column, per per-user channel.
# Adding a lead time means adding a column and an entry here.
LEAD_TIME_COLUMNS = {
    Channel.email: {60: "email_1h_before", 10: "email_10m_before"},
    Channel.browser: {60: "browser_1h_before", 10: "browser_10m_before"},
}


@dataclass(frozen=True)
class RecipientSlot:
    user_id: int
    email: str
    channel: Channel
    lead_minutes: int


def known_lead_minutes() -> frozenset[int]:
    """Every lead time any user can enable."""
    return frozenset(
        lead for columns in LEAD_TIME_COLUMNS.values() for lead in columns
    )


def effective_event_type(event: dict[str, Any]) -> str:
    return event.get("event_type") or DEFAULT_EVENT_TYPE


def enabled_lead_minutes(prefs: dict[str, Any], channel: Channel) -> frozenset[int]:
    """Lead times switched on for one channel, or empty if the channel is off."""
    if not prefs.get(CHANNEL_TOGGLES[channel]):
        return frozenset()
    return frozenset(
        lead
        for lead, column in LEAD_TIME_COLUMNS[channel].items()
        if prefs.get(column)
    )


def is_eligible(prefs: dict[str, Any], type_overrides: dict[int, bool]) -> bool:
    """
    Catch-all users are always eligible. Everyone else needs an enabled
    override row for the event's type.
    """
    if prefs.get("notify_all_events"):
        return True
    return type_overrides.get(prefs["user_id"]) is True


def compute_recipient_slots(
    users_with_prefs: Iterable[dict[str, Any]],
    type_overrides: dict[int, bool],
    push_user_ids: set[int],
) -> list[RecipientSlot]:
    """
    Cross product of eligible channels and enabled lead times per user.

    Args:
        users_with_prefs: Active users joined with their preference row
        type_overrides: user_id -> is_enabled for this event type
        push_user_ids: Users with at least one non-expired push subscription

    Returns:
        Deduplicated slots, in input user order.
    """
    slots: list[RecipientSlot] = []
    seen: set[tuple[int, Channel, int]] = set()

    for prefs in users_with_prefs:
        if not is_eligible(prefs, type_overrides):
            continue

        user_id = prefs["user_id"]
        for channel in CHANNEL_TOGGLES:
            if channel == Channel.browser and user_id not in push_user_ids:
                continue
            for lead in sorted(enabled_lead_minutes(prefs, channel), reverse=True):
                identity = (user_id, channel, lead)
                if identity in seen:
                    continue
                seen.add(identity)
                slots.append(
                    RecipientSlot(
                        user_id=user_id,
                        email=prefs["email"],
                        channel=channel,
                        lead_minutes=lead,
                    )
                )

    return slots


async def resolve_recipients(
    event: dict[str, Any],
    now: datetime | None = None,
) -> list[RecipientSlot]:
    """Load current users, overrides and push subscriptions, then resolve."""
    now = now or datetime.now(timezone.utc)
    event_type = effective_event_type(event)

    async with get_connection() as conn:
        users_with_prefs = await get_active_users_with_preferences(conn)
        overrides = await get_event_type_overrides(conn, event_type)
        push_user_ids = await get_user_ids_with_active_subscriptions(conn, now)

    return compute_recipient_slots(users_with_prefs, overrides, push_user_ids)
