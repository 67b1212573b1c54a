"""
Reminder ledger - durable record of every reminder slot.

One row per (event, recipient, channel, lead time). The composite primary key
is what guarantees at-most-once delivery: every path that wants to deliver
must first win try_claim(), which is a single atomic upsert.

Row lifecycle:
    pending (armed) -> pending + claimed_at (delivery in flight) -> sent
    pending (armed) -> skipped(reason)
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import INTERVAL, insert

from reminders.database import get_connection, get_transaction
from reminders.enums import BROADCAST_RECIPIENT, Channel, ReminderStatus, SkipReason
from reminders.tables import events, reminder_records

logger = logging.getLogger(__name__)

_KEY_COLUMNS = [
    reminder_records.c.event_id,
    reminder_records.c.recipient,
    reminder_records.c.channel,
    reminder_records.c.lead_minutes,
]


@dataclass(frozen=True)
class ReminderKey:
    """Composite identity of one reminder slot."""

    event_id: str
    recipient: str
    channel: Channel
    lead_minutes: int

    @classmethod
    def for_user(
        cls, event_id: str, user_id: int, channel: Channel, lead_minutes: int
    ) -> "ReminderKey":
        return cls(event_id, str(user_id), channel, lead_minutes)

    @classmethod
    def broadcast(cls, event_id: str, lead_minutes: int) -> "ReminderKey":
        return cls(event_id, BROADCAST_RECIPIENT, Channel.social, lead_minutes)

    def values(self) -> dict:
        return {
            "event_id": self.event_id,
            "recipient": self.recipient,
            "channel": self.channel,
            "lead_minutes": self.lead_minutes,
        }

    def where(self):
        return and_(
            reminder_records.c.event_id == self.event_id,
            reminder_records.c.recipient == self.recipient,
            reminder_records.c.channel == self.channel,
            reminder_records.c.lead_minutes == self.lead_minutes,
        )


@dataclass(frozen=True)
class LedgerEntry:
    status: ReminderStatus
    claimed: bool

    @property
    def is_resolved(self) -> bool:
        """Terminal, or currently owned by a delivering path."""
        return self.status != ReminderStatus.pending or self.claimed


class ClaimResult(str, enum.Enum):
    claimed = "claimed"
    already_claimed = "already_claimed"


async def record_pending(keys: Iterable[ReminderKey], scheduled_for: datetime) -> int:
    """
    Record armed slots as pending. Existing rows are left untouched.

    Returns:
        Number of new rows.
    """
    rows = [{**key.values(), "scheduled_for": scheduled_for} for key in keys]
    if not rows:
        return 0

    stmt = insert(reminder_records).values(rows).on_conflict_do_nothing(
        index_elements=_KEY_COLUMNS
    )
    async with get_transaction() as conn:
        result = await conn.execute(stmt)
    return result.rowcount or 0


async def try_claim(key: ReminderKey, scheduled_for: datetime) -> ClaimResult:
    """
    Atomically take ownership of a slot for delivery.

    Inserts the row if it doesn't exist yet, otherwise sets claimed_at only if
    the row is still pending and unclaimed. Two racing callers serialize on
    the row lock; the loser sees claimed_at already set and gets no row back.
    """
    now = datetime.now(timezone.utc)
    stmt = insert(reminder_records).values(
        **key.values(),
        scheduled_for=scheduled_for,
        status=ReminderStatus.pending,
        claimed_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=_KEY_COLUMNS,
        set_={"claimed_at": now, "updated_at": now},
        where=and_(
            reminder_records.c.status == ReminderStatus.pending,
            reminder_records.c.claimed_at.is_(None),
        ),
    ).returning(reminder_records.c.event_id)

    async with get_transaction() as conn:
        result = await conn.execute(stmt)
        row = result.first()

    return ClaimResult.claimed if row else ClaimResult.already_claimed


async def mark_sent(key: ReminderKey) -> bool:
    """Mark a claimed slot as delivered."""
    now = datetime.now(timezone.utc)
    async with get_transaction() as conn:
        result = await conn.execute(
            update(reminder_records)
            .where(and_(key.where(), reminder_records.c.status == ReminderStatus.pending))
            .values(status=ReminderStatus.sent, sent_at=now, updated_at=now)
        )
    updated = (result.rowcount or 0) > 0
    if not updated:
        logger.warning(f"Ledger row {key} was not pending when marking sent")
    return updated


async def mark_skipped(
    key: ReminderKey,
    reason: SkipReason,
    scheduled_for: datetime,
    only_unclaimed: bool = False,
) -> bool:
    """
    Mark a slot as skipped, creating the row if needed.

    Args:
        only_unclaimed: Leave the row alone if another path has claimed it.
            Used by discovery, which never owns a delivery.

    Returns:
        True if the row is now skipped because of this call.
    """
    now = datetime.now(timezone.utc)
    condition = reminder_records.c.status == ReminderStatus.pending
    if only_unclaimed:
        condition = and_(condition, reminder_records.c.claimed_at.is_(None))

    stmt = insert(reminder_records).values(
        **key.values(),
        scheduled_for=scheduled_for,
        status=ReminderStatus.skipped,
        skip_reason=reason.value,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=_KEY_COLUMNS,
        set_={
            "status": ReminderStatus.skipped,
            "skip_reason": reason.value,
            "updated_at": now,
        },
        where=condition,
    ).returning(reminder_records.c.event_id)

    async with get_transaction() as conn:
        result = await conn.execute(stmt)
        return result.first() is not None


async def get_event_ledger(event_id: str) -> dict[ReminderKey, LedgerEntry]:
    """All ledger rows for one event."""
    async with get_connection() as conn:
        result = await conn.execute(
            select(
                *_KEY_COLUMNS,
                reminder_records.c.status,
                reminder_records.c.claimed_at,
            ).where(reminder_records.c.event_id == event_id)
        )
        rows = result.mappings().all()

    return {
        ReminderKey(
            row["event_id"],
            row["recipient"],
            Channel(row["channel"]),
            row["lead_minutes"],
        ): LedgerEntry(
            status=ReminderStatus(row["status"]),
            claimed=row["claimed_at"] is not None,
        )
        for row in rows
    }


async def skip_pending_for_event(
    event_id: str,
    reason: SkipReason,
    lead_minutes: int | None = None,
    keep: Iterable[ReminderKey] = (),
) -> int:
    """
    Skip every unclaimed pending slot of an event.

    Args:
        lead_minutes: Restrict to one lead time.
        keep: Keys to leave pending.

    Returns:
        Number of rows skipped.
    """
    conditions = [
        reminder_records.c.event_id == event_id,
        reminder_records.c.status == ReminderStatus.pending,
        reminder_records.c.claimed_at.is_(None),
    ]
    if lead_minutes is not None:
        conditions.append(reminder_records.c.lead_minutes == lead_minutes)

    keep = set(keep)
    now = datetime.now(timezone.utc)

    async with get_transaction() as conn:
        if not keep:
            result = await conn.execute(
                update(reminder_records)
                .where(and_(*conditions))
                .values(
                    status=ReminderStatus.skipped,
                    skip_reason=reason.value,
                    updated_at=now,
                )
            )
            return result.rowcount or 0

        pending = await conn.execute(select(*_KEY_COLUMNS).where(and_(*conditions)))
        skipped = 0
        for row in pending.mappings().all():
            key = ReminderKey(
                row["event_id"], row["recipient"], Channel(row["channel"]), row["lead_minutes"]
            )
            if key in keep:
                continue
            result = await conn.execute(
                update(reminder_records)
                .where(and_(key.where(), *conditions))
                .values(
                    status=ReminderStatus.skipped,
                    skip_reason=reason.value,
                    updated_at=now,
                )
            )
            skipped += result.rowcount or 0
        return skipped


async def skip_stale_claims(claimed_before: datetime) -> int:
    """
    Skip slots whose delivering path never finished (process died mid-send).

    Returns:
        Number of rows skipped.
    """
    async with get_transaction() as conn:
        result = await conn.execute(
            update(reminder_records)
            .where(
                and_(
                    reminder_records.c.status == ReminderStatus.pending,
                    reminder_records.c.claimed_at < claimed_before,
                )
            )
            .values(
                status=ReminderStatus.skipped,
                skip_reason=SkipReason.interrupted.value,
                updated_at=datetime.now(timezone.utc),
            )
        )
    return result.rowcount or 0


async def skip_overdue_pending(due_before: datetime) -> int:
    """
    Skip unclaimed slots whose fire time passed without anyone delivering them.

    Covers timers lost to a restart for events that have since left the
    discovery window. The fire time comes from the event's current start, so
    a slot whose event moved later stays pending for re-arming.

    Returns:
        Number of rows skipped.
    """
    fire_time = events.c.start_time - func.make_interval(
        0, 0, 0, 0, 0, reminder_records.c.lead_minutes, type_=INTERVAL
    )
    async with get_transaction() as conn:
        result = await conn.execute(
            update(reminder_records)
            .where(
                and_(
                    reminder_records.c.event_id == events.c.event_id,
                    reminder_records.c.status == ReminderStatus.pending,
                    reminder_records.c.claimed_at.is_(None),
                    fire_time < due_before,
                )
            )
            .values(
                status=ReminderStatus.skipped,
                skip_reason=SkipReason.window_missed.value,
                updated_at=datetime.now(timezone.utc),
            )
        )
    return result.rowcount or 0
