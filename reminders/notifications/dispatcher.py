"""
Channel dispatchers - turn (event, recipient, lead time) into a transport call.

Every function here returns a DeliveryOutcome and never raises for transport
problems. Every transport call is bounded by the dispatch timeout. The
SendGrid and pywebpush clients are blocking and run in a worker thread so
they can't stall the event loop that fires timers.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from reminders.config import get_dispatch_timeout
from reminders.database import get_connection, get_transaction
from reminders.enums import SkipReason
from reminders.notifications.channels.email import send_email
from reminders.notifications.channels.push import send_push
from reminders.notifications.channels.social import post_status
from reminders.notifications.context import build_reminder_context
from reminders.notifications.outcomes import (
    Delivered,
    DeliveryOutcome,
    EndpointGone,
    PermanentFailure,
    TransientFailure,
)
from reminders.notifications.templates import get_message, reminder_message_type
from reminders.queries import delete_subscription, get_active_subscriptions

logger = logging.getLogger(__name__)


async def with_timeout(call: Awaitable[DeliveryOutcome], what: str) -> DeliveryOutcome:
    """Await a transport call, bounded by the dispatch timeout."""
    timeout = get_dispatch_timeout()
    try:
        return await asyncio.wait_for(call, timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{what} timed out after {timeout}s")
        return TransientFailure(SkipReason.timeout.value)


async def run_blocking(func: Callable[..., DeliveryOutcome], *args) -> DeliveryOutcome:
    """Run a blocking transport call in a worker thread under the dispatch timeout."""
    return await with_timeout(
        asyncio.to_thread(func, *args), getattr(func, "__name__", "transport call")
    )


def render_reminder(event: dict[str, Any], lead_minutes: int, channel: str) -> str:
    context = build_reminder_context(event, lead_minutes)
    return get_message(reminder_message_type(lead_minutes), channel, context)


async def deliver_email_batch(
    event: dict[str, Any],
    emails: list[str],
    lead_minutes: int,
) -> DeliveryOutcome:
    """One outbound email for many recipients of the same event and lead time."""
    subject = render_reminder(event, lead_minutes, "email_subject")
    body = render_reminder(event, lead_minutes, "email_body")
    outcome = await run_blocking(send_email, emails, subject, body)
    logger.info(
        f"Email reminder for event {event['event_id']} ({lead_minutes}m) "
        f"to {len(emails)} recipients: {type(outcome).__name__}"
    )
    return outcome


async def deliver_push(
    event: dict[str, Any],
    user_id: int,
    lead_minutes: int,
    now: datetime | None = None,
) -> DeliveryOutcome:
    """
    Push to every active subscription of a user.

    A gone endpoint deletes just that subscription. One successful push is
    enough for the user's reminder to count as delivered.
    """
    now = now or datetime.now(timezone.utc)
    async with get_connection() as conn:
        subscriptions = await get_active_subscriptions(conn, user_id, now)

    if not subscriptions:
        return PermanentFailure(SkipReason.no_subscription.value)

    payload = {
        "title": render_reminder(event, lead_minutes, "push_title"),
        "body": render_reminder(event, lead_minutes, "push_body"),
        "event_id": event["event_id"],
        "url": build_reminder_context(event, lead_minutes)["event_url"],
    }

    delivered = 0
    failures: list[DeliveryOutcome] = []
    for subscription in subscriptions:
        outcome = await run_blocking(
            send_push,
            subscription["endpoint"],
            subscription["keys"],
            payload,
            get_dispatch_timeout(),
        )
        if isinstance(outcome, Delivered):
            delivered += 1
            continue

        failures.append(outcome)
        if isinstance(outcome, EndpointGone):
            async with get_transaction() as conn:
                await delete_subscription(conn, subscription["endpoint"])
            logger.info(
                f"Deleted expired push subscription {subscription['subscription_id']} "
                f"for user {user_id}"
            )

    if delivered:
        return Delivered(detail=f"{delivered}/{len(subscriptions)} subscriptions")

    # Prefer reporting a transient cause; all-gone is permanent
    for failure in failures:
        if isinstance(failure, TransientFailure):
            return failure
    return failures[0]


async def deliver_broadcast(event: dict[str, Any], lead_minutes: int) -> DeliveryOutcome:
    """One public post for an event and lead time."""
    text = render_reminder(event, lead_minutes, "social")
    outcome = await with_timeout(
        post_status(text, get_dispatch_timeout()), "post_status"
    )
    logger.info(
        f"Social reminder for event {event['event_id']} ({lead_minutes}m): "
        f"{type(outcome).__name__}"
    )
    return outcome

