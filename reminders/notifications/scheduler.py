"""
APScheduler-based reminder engine.

Discovery walks upcoming events nearest first, resolves who should hear about
each one, and arms one date job per (event, lead time). Jobs store only the
event id and lead time; everything else is re-read when the job fires.

Discovery runs at startup, on a fixed-interval safety sweep, and again right
after every firing. Those paths can overlap freely: the ledger's atomic claim
is what stops a slot from being delivered twice, not any in-process lock.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Iterable

import sentry_sdk
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from reminders.config import (
    get_email_batch_size,
    get_late_grace,
    get_lookahead,
    get_safety_margin,
    get_social_lead_minutes,
    get_sweep_interval,
)
from reminders.database import get_connection, get_sync_database_url, is_configured
from reminders.enums import Channel, SkipReason
from reminders.notifications import dispatcher, ledger
from reminders.notifications.channels.social import is_social_configured
from reminders.notifications.ledger import ClaimResult, ReminderKey
from reminders.notifications.outcomes import (
    Delivered,
    DeliveryOutcome,
    RateLimited,
    TransientFailure,
)
from reminders.notifications.preferences import (
    RecipientSlot,
    known_lead_minutes,
    resolve_recipients,
)
from reminders.queries import get_event, get_upcoming_events

logger = logging.getLogger(__name__)


_scheduler: AsyncIOScheduler | None = None

SWEEP_JOB_ID = "safety_sweep"
CALENDAR_SYNC_JOB_ID = "calendar_sync"
CALENDAR_SYNC_STARTUP_JOB_ID = "calendar_sync_startup"

# Upper bound on events armed by one discovery cycle
MAX_EVENTS_PER_CYCLE = 200

# Events read per query while looking for the next candidate
UPCOMING_PAGE_SIZE = 100

# A timer that fires this early is treated as on time
FIRE_EARLY_TOLERANCE = timedelta(seconds=1)

# Claims older than this belong to a delivery that never finished
STALE_CLAIM_AFTER = timedelta(hours=2)

_SKIP_REASON_VALUES = {reason.value for reason in SkipReason}


# =============================================================================
# Armed slots - in-process view of what has a timer
# =============================================================================


class ArmedSlots:
    """
    Reminder slots that have a pending timer in this process.

    Keyed by the same ReminderKey as the ledger, so lookups by event or by
    (event, lead time) are plain comparisons.
    """

    def __init__(self) -> None:
        self._slots: dict[ReminderKey, datetime] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def arm(self, keys: Iterable[ReminderKey], fire_at: datetime) -> None:
        for key in keys:
            self._slots[key] = fire_at

    def is_armed(self, key: ReminderKey) -> bool:
        return key in self._slots

    def for_event(self, event_id: str) -> set[ReminderKey]:
        return {key for key in self._slots if key.event_id == event_id}

    def for_timer(self, event_id: str, lead_minutes: int) -> set[ReminderKey]:
        return {
            key
            for key in self._slots
            if key.event_id == event_id and key.lead_minutes == lead_minutes
        }

    def release(self, keys: Iterable[ReminderKey]) -> None:
        for key in keys:
            self._slots.pop(key, None)

    def release_event(self, event_id: str) -> set[ReminderKey]:
        keys = self.for_event(event_id)
        self.release(keys)
        return keys

    def release_overdue(self, before: datetime) -> set[ReminderKey]:
        """Forget slots whose timer should have fired before `before`."""
        keys = {key for key, fire_at in self._slots.items() if fire_at < before}
        self.release(keys)
        return keys

    def clear(self) -> None:
        self._slots.clear()


_armed_slots = ArmedSlots()


@dataclass
class Candidate:
    """An event with at least one slot that is neither resolved nor armed."""

    event: dict[str, Any]
    keys: list[ReminderKey]


# =============================================================================
# Scheduler initialization and shutdown
# =============================================================================


def _get_database_url() -> str:
    """Sync job store URL, or "" when no database is configured."""
    if not is_configured():
        return ""
    database_url = get_sync_database_url()

    # Add connection timeout to prevent hanging when DB is unavailable
    separator = "&" if "?" in database_url else "?"
    if "connect_timeout" not in database_url:
        database_url += f"{separator}connect_timeout=5"

    return database_url


def _job_defaults() -> dict:
    return {
        "coalesce": True,  # Combine missed runs into one
        "max_instances": 1,
        # A reminder later than this is worse than none
        "misfire_grace_time": int(get_late_grace().total_seconds()),
    }


def init_scheduler(
    skip_if_db_unavailable: bool = True,
    persist_jobs: bool = True,
    calendar_sync: bool = True,
) -> AsyncIOScheduler | None:
    """
    Initialize and start the scheduler.

    Call this during app startup (in FastAPI lifespan). Registers the safety
    sweep (first run immediately, which is the startup discovery) and the
    daily calendar sync when a calendar is configured.

    Args:
        skip_if_db_unavailable: Fall back to memory-only jobs when the job
            store database is unreachable instead of failing startup.
        persist_jobs: Keep jobs in the apscheduler_jobs table.
        calendar_sync: Register calendar sync jobs (if configured).
    """
    global _scheduler

    if _scheduler is not None:
        return _scheduler

    database_url = _get_database_url() if persist_jobs else ""

    jobstores = {}
    if database_url:
        jobstores["default"] = SQLAlchemyJobStore(
            url=database_url,
            tablename="apscheduler_jobs",
        )

    _scheduler = AsyncIOScheduler(jobstores=jobstores, job_defaults=_job_defaults())

    try:
        _scheduler.start()
        logger.info("Reminder scheduler started")
    except Exception as e:
        if skip_if_db_unavailable and "timeout" in str(e).lower():
            logger.warning(
                "Could not connect to database for scheduler, "
                "running in memory-only mode (jobs won't persist)"
            )
            _scheduler = AsyncIOScheduler(jobstores={}, job_defaults=_job_defaults())
            _scheduler.start()
            logger.info("Reminder scheduler started (memory-only)")
        else:
            _scheduler = None
            raise

    _scheduler.add_job(
        _run_safety_sweep,
        trigger="interval",
        seconds=int(get_sweep_interval().total_seconds()),
        id=SWEEP_JOB_ID,
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),
    )

    if calendar_sync:
        _register_calendar_sync()

    return _scheduler


def _register_calendar_sync() -> None:
    from reminders.calendar.client import is_calendar_configured

    if not is_calendar_configured():
        logger.info("Calendar not configured, skipping calendar sync jobs")
        return

    _scheduler.add_job(
        _execute_calendar_sync,
        trigger="cron",
        hour=0,
        minute=0,
        timezone="UTC",
        id=CALENDAR_SYNC_JOB_ID,
        replace_existing=True,
    )
    _scheduler.add_job(
        _execute_calendar_sync,
        trigger="date",
        run_date=datetime.now(timezone.utc),
        id=CALENDAR_SYNC_STARTUP_JOB_ID,
        replace_existing=True,
    )


def shutdown_scheduler() -> None:
    """
    Shutdown the scheduler gracefully.

    Call this during app shutdown.
    """
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=True)
        _scheduler = None
        _armed_slots.clear()
        logger.info("Reminder scheduler stopped")


def get_scheduler_status() -> dict:
    """Snapshot for the status endpoint."""
    if not _scheduler:
        return {"running": False, "armed_slots": 0, "reminder_jobs": 0, "next_sweep": None}

    sweep = _scheduler.get_job(SWEEP_JOB_ID)
    reminder_jobs = [
        job for job in _scheduler.get_jobs() if job.id.startswith("reminder_")
    ]
    return {
        "running": _scheduler.running,
        "armed_slots": len(_armed_slots),
        "reminder_jobs": len(reminder_jobs),
        "next_sweep": (
            sweep.next_run_time.isoformat() if sweep and sweep.next_run_time else None
        ),
    }


# =============================================================================
# Pure helpers
# =============================================================================


def reminder_job_id(event_id: str, lead_minutes: int) -> str:
    return f"reminder_{event_id}_{lead_minutes}m"


def social_retry_job_id(event_id: str, lead_minutes: int) -> str:
    return f"social_retry_{event_id}_{lead_minutes}m"


def compute_fire_at(start_time: datetime, lead_minutes: int) -> datetime:
    return start_time - timedelta(minutes=lead_minutes)


def social_lead_minutes() -> frozenset[int]:
    """Lead times that get a broadcast post; empty when posting isn't configured."""
    if not is_social_configured():
        return frozenset()
    return get_social_lead_minutes()


def max_lead_minutes() -> int:
    return max(known_lead_minutes() | social_lead_minutes())


def expected_keys(
    event_id: str,
    recipients: Iterable[RecipientSlot],
    social_leads: Iterable[int],
) -> dict[ReminderKey, RecipientSlot | None]:
    """
    Every slot an event should have: one per resolved recipient triple plus
    one broadcast slot per social lead time (mapped to None).
    """
    keys: dict[ReminderKey, RecipientSlot | None] = {}
    for slot in recipients:
        key = ReminderKey.for_user(event_id, slot.user_id, slot.channel, slot.lead_minutes)
        keys[key] = slot
    for lead in social_leads:
        keys[ReminderKey.broadcast(event_id, lead)] = None
    return keys


def group_by_lead(keys: Iterable[ReminderKey]) -> dict[int, list[ReminderKey]]:
    """
    Group slots into timers. Within one event, equal fire times mean equal
    lead times, so the lead is the timer identity.
    """
    groups: dict[int, list[ReminderKey]] = {}
    for key in keys:
        groups.setdefault(key.lead_minutes, []).append(key)
    return groups


def skip_reason_for(outcome: DeliveryOutcome) -> SkipReason:
    """Ledger reason for an undelivered outcome."""
    if isinstance(outcome, RateLimited):
        return SkipReason.rate_limited
    if outcome.reason in _SKIP_REASON_VALUES:
        return SkipReason(outcome.reason)
    if isinstance(outcome, TransientFailure):
        return SkipReason.transient_failure
    return SkipReason.permanent_failure


# =============================================================================
# Data access
# =============================================================================


async def _load_event(event_id: str) -> dict[str, Any] | None:
    async with get_connection() as conn:
        return await get_event(conn, event_id)


async def _load_upcoming_events(
    after: datetime,
    until: datetime,
    exclude: Iterable[str] = (),
    offset: int = 0,
) -> list[dict[str, Any]]:
    async with get_connection() as conn:
        return await get_upcoming_events(
            conn, after, until, exclude=exclude, limit=UPCOMING_PAGE_SIZE, offset=offset
        )


# =============================================================================
# Discovery and arming
# =============================================================================


async def find_next_candidate(
    now: datetime,
    exclude: Iterable[str] = (),
) -> Candidate | None:
    """
    Nearest upcoming event that still has unresolved, unarmed slots.

    Only events starting after now + safety margin and within the lookahead
    are considered. Pending ledger rows that nobody has armed (e.g. after a
    restart) count as unresolved even if preferences no longer produce them,
    so they get armed and cleaned up at fire time.

    Args:
        now: Reference instant
        exclude: Event ids already handled in this cycle
    """
    exclude = set(exclude)
    after = now + get_safety_margin()
    until = now + get_lookahead(max_lead_minutes())
    social_leads = social_lead_minutes()

    offset = 0
    while True:
        page = await _load_upcoming_events(after, until, exclude=exclude, offset=offset)
        for event in page:
            candidate = await _candidate_for(event, now, social_leads)
            if candidate:
                return candidate

        if len(page) < UPCOMING_PAGE_SIZE:
            return None
        offset += len(page)


async def _candidate_for(
    event: dict[str, Any],
    now: datetime,
    social_leads: frozenset[int],
) -> Candidate | None:
    event_id = event["event_id"]
    recipients = await resolve_recipients(event, now)
    keys = list(expected_keys(event_id, recipients, social_leads))
    entries = await ledger.get_event_ledger(event_id)
    keys.extend(
        key
        for key, entry in entries.items()
        if not entry.is_resolved and key not in keys
    )

    unresolved = [
        key
        for key in keys
        if not (key in entries and entries[key].is_resolved)
        and not _armed_slots.is_armed(key)
    ]
    return Candidate(event=event, keys=unresolved) if unresolved else None


async def arm_event(
    event: dict[str, Any],
    keys: Iterable[ReminderKey],
    now: datetime,
) -> dict:
    """
    Arm one timer per lead time. Slots whose fire time already passed are
    skipped as window-missed instead of being sent late.

    Returns:
        Dict with armed/missed slot counts
    """
    event_id = event["event_id"]
    armed = 0
    missed = 0

    for lead, lead_keys in sorted(group_by_lead(keys).items(), reverse=True):
        fire_at = compute_fire_at(event["start_time"], lead)

        if fire_at <= now:
            for key in lead_keys:
                if await ledger.mark_skipped(
                    key, SkipReason.window_missed, fire_at, only_unclaimed=True
                ):
                    missed += 1
            logger.warning(
                f"Missed {lead}m reminder window for event {event_id} "
                f"({len(lead_keys)} slots, fire time {fire_at.isoformat()})"
            )
            continue

        if not _scheduler:
            logger.warning("Scheduler not initialized, cannot arm reminder")
            continue

        await ledger.record_pending(lead_keys, fire_at)
        _armed_slots.arm(lead_keys, fire_at)
        _scheduler.add_job(
            _execute_reminder,
            trigger="date",
            run_date=fire_at,
            id=reminder_job_id(event_id, lead),
            replace_existing=True,
            kwargs={"event_id": event_id, "lead_minutes": lead},
        )
        armed += len(lead_keys)
        logger.info(
            f"Armed {lead}m reminder for event {event_id} at {fire_at.isoformat()} "
            f"({len(lead_keys)} slots)"
        )

    return {"armed": armed, "missed": missed}


async def run_discovery_cycle() -> dict:
    """
    Arm every event that needs it, nearest first.

    Never raises: a failure on one event is logged and the cycle moves on.
    """
    summary = {"events": 0, "armed": 0, "missed": 0, "errors": 0}
    attempted: set[str] = set()

    while len(attempted) < MAX_EVENTS_PER_CYCLE:
        now = datetime.now(timezone.utc)
        try:
            candidate = await find_next_candidate(now, exclude=attempted)
        except Exception as e:
            logger.error(f"Reminder discovery failed: {e}")
            sentry_sdk.capture_exception(e)
            summary["errors"] += 1
            break

        if candidate is None:
            break

        event_id = candidate.event["event_id"]
        attempted.add(event_id)
        try:
            result = await arm_event(candidate.event, candidate.keys, now)
        except Exception as e:
            logger.error(f"Failed to arm reminders for event {event_id}: {e}")
            sentry_sdk.capture_exception(e)
            summary["errors"] += 1
            continue

        summary["events"] += 1
        summary["armed"] += result["armed"]
        summary["missed"] += result["missed"]

    if summary["events"] or summary["errors"]:
        logger.info(f"Discovery cycle: {summary}")
    return summary


async def _run_safety_sweep() -> dict:
    """Periodic backstop. Called by APScheduler."""
    now = datetime.now(timezone.utc)
    try:
        reaped = await ledger.skip_stale_claims(now - STALE_CLAIM_AFTER)
        if reaped:
            logger.warning(f"Skipped {reaped} reminder slots with abandoned claims")
    except Exception as e:
        logger.error(f"Failed to clean up stale claims: {e}")
        sentry_sdk.capture_exception(e)

    overdue_before = now - get_late_grace()
    try:
        released = _armed_slots.release_overdue(overdue_before)
        missed = await ledger.skip_overdue_pending(overdue_before)
        if missed:
            logger.warning(
                f"Skipped {missed} reminder slots whose fire time passed unsent "
                f"({len(released)} were armed here)"
            )
    except Exception as e:
        logger.error(f"Failed to clean up overdue reminders: {e}")
        sentry_sdk.capture_exception(e)

    return await run_discovery_cycle()


# =============================================================================
# Firing
# =============================================================================


async def _execute_reminder(event_id: str, lead_minutes: int) -> None:
    """
    Fire one (event, lead time) timer, then chain into the next discovery.

    This is the job function called by APScheduler.
    """
    try:
        await fire_reminders(event_id, lead_minutes)
    except Exception as e:
        logger.error(f"Reminder {lead_minutes}m for event {event_id} failed: {e}")
        sentry_sdk.capture_exception(e)
    finally:
        _armed_slots.release(_armed_slots.for_timer(event_id, lead_minutes))

    await run_discovery_cycle()


async def fire_reminders(
    event_id: str,
    lead_minutes: int,
    now: datetime | None = None,
) -> dict:
    """
    Re-validate the event and deliver every slot of this timer.

    Returns:
        Dict describing what happened (for logs and tests)
    """
    now = now or datetime.now(timezone.utc)

    event = await _load_event(event_id)
    if not event or event["is_deleted"]:
        cancelled = await ledger.skip_pending_for_event(
            event_id, SkipReason.event_cancelled
        )
        _armed_slots.release_event(event_id)
        logger.info(
            f"Event {event_id} is gone, skipped {cancelled} pending reminders"
        )
        return {"status": "cancelled", "skipped": cancelled}

    fire_at = compute_fire_at(event["start_time"], lead_minutes)

    if fire_at > now + FIRE_EARLY_TOLERANCE:
        # Start moved later; discovery re-arms at the new time
        logger.info(
            f"Event {event_id} moved, {lead_minutes}m reminder now due at "
            f"{fire_at.isoformat()}"
        )
        return {"status": "rescheduled", "fire_at": fire_at}

    if now - fire_at > get_late_grace():
        missed = await ledger.skip_pending_for_event(
            event_id, SkipReason.window_missed, lead_minutes=lead_minutes
        )
        logger.warning(
            f"{lead_minutes}m reminder for event {event_id} fired too late, "
            f"skipped {missed} slots"
        )
        return {"status": "missed", "skipped": missed}

    recipients = [
        slot
        for slot in await resolve_recipients(event, now)
        if slot.lead_minutes == lead_minutes
    ]
    social_leads = social_lead_minutes() & {lead_minutes}
    keys = expected_keys(event_id, recipients, social_leads)

    dropped = await ledger.skip_pending_for_event(
        event_id,
        SkipReason.preference_changed,
        lead_minutes=lead_minutes,
        keep=keys,
    )
    if dropped:
        logger.info(
            f"Skipped {dropped} {lead_minutes}m slots for event {event_id} "
            f"after preference changes"
        )

    email_slots = [s for s in recipients if s.channel == Channel.email]
    push_slots = [s for s in recipients if s.channel == Channel.browser]

    deliveries = [
        _deliver_email_slots(event, email_slots, fire_at),
        _deliver_push_slots(event, push_slots, fire_at),
    ]
    if social_leads:
        deliveries.append(_deliver_broadcast_slot(event, lead_minutes, fire_at))

    # Channels run side by side; one failing never blocks another
    results = await asyncio.gather(*deliveries, return_exceptions=True)

    summary = {"status": "fired", "sent": 0, "skipped": 0, "deferred": 0}
    for result in results:
        if isinstance(result, Exception):
            logger.error(f"Channel delivery for event {event_id} failed: {result}")
            sentry_sdk.capture_exception(result)
            continue
        for key in ("sent", "skipped", "deferred"):
            summary[key] += result.get(key, 0)

    logger.info(f"Fired {lead_minutes}m reminder for event {event_id}: {summary}")
    return summary


async def record_outcome(
    key: ReminderKey,
    outcome: DeliveryOutcome,
    scheduled_for: datetime,
) -> str:
    """Write a claimed slot's outcome to the ledger. Returns "sent" or "skipped"."""
    if isinstance(outcome, Delivered):
        await ledger.mark_sent(key)
        return "sent"

    reason = skip_reason_for(outcome)
    await ledger.mark_skipped(key, reason, scheduled_for)
    logger.warning(f"Skipped reminder {key}: {reason.value} ({outcome})")
    return "skipped"


async def _claim(key: ReminderKey, scheduled_for: datetime) -> bool:
    result = await ledger.try_claim(key, scheduled_for)
    if result == ClaimResult.already_claimed:
        logger.debug(f"Reminder {key} already claimed, not sending")
        return False
    return True


async def _attempt(what: str, call: Awaitable[DeliveryOutcome]) -> DeliveryOutcome:
    """
    Await a dispatcher call for a claimed slot.

    A claimed slot must end with an outcome, so an unexpected error becomes a
    transient failure instead of propagating past the claim.
    """
    try:
        return await call
    except Exception as e:
        logger.error(f"{what} failed: {e}")
        sentry_sdk.capture_exception(e)
        return TransientFailure(str(e) or type(e).__name__)


async def _deliver_email_slots(
    event: dict[str, Any],
    slots: list[RecipientSlot],
    fire_at: datetime,
) -> dict:
    """Claim each recipient, then send claimed ones in BCC batches."""
    counts = {"sent": 0, "skipped": 0}
    if not slots:
        return counts

    event_id = event["event_id"]
    claimed: list[tuple[ReminderKey, RecipientSlot]] = []
    for slot in slots:
        key = ReminderKey.for_user(event_id, slot.user_id, slot.channel, slot.lead_minutes)
        try:
            if await _claim(key, fire_at):
                claimed.append((key, slot))
        except Exception as e:
            logger.error(f"Failed to claim {key}: {e}")
            sentry_sdk.capture_exception(e)

    batch_size = get_email_batch_size()
    lead_minutes = slots[0].lead_minutes
    for start in range(0, len(claimed), batch_size):
        batch = claimed[start : start + batch_size]
        outcome = await _attempt(
            f"Email batch for event {event_id}",
            dispatcher.deliver_email_batch(
                event, [slot.email for _, slot in batch], lead_minutes
            ),
        )

        for key, _ in batch:
            try:
                counts[await record_outcome(key, outcome, fire_at)] += 1
            except Exception as e:
                logger.error(f"Failed to record outcome for {key}: {e}")
                sentry_sdk.capture_exception(e)

    return counts


async def _deliver_push_slots(
    event: dict[str, Any],
    slots: list[RecipientSlot],
    fire_at: datetime,
) -> dict:
    counts = {"sent": 0, "skipped": 0}
    event_id = event["event_id"]

    for slot in slots:
        key = ReminderKey.for_user(event_id, slot.user_id, slot.channel, slot.lead_minutes)
        try:
            if not await _claim(key, fire_at):
                continue
        except Exception as e:
            logger.error(f"Failed to claim {key}: {e}")
            sentry_sdk.capture_exception(e)
            continue

        outcome = await _attempt(
            f"Push reminder {key}",
            dispatcher.deliver_push(event, slot.user_id, slot.lead_minutes),
        )
        try:
            counts[await record_outcome(key, outcome, fire_at)] += 1
        except Exception as e:
            logger.error(f"Failed to record outcome for {key}: {e}")
            sentry_sdk.capture_exception(e)

    return counts


async def _deliver_broadcast_slot(
    event: dict[str, Any],
    lead_minutes: int,
    fire_at: datetime,
) -> dict:
    key = ReminderKey.broadcast(event["event_id"], lead_minutes)
    if not await _claim(key, fire_at):
        return {}

    outcome = await _attempt(
        f"Social post for event {key.event_id}",
        dispatcher.deliver_broadcast(event, lead_minutes),
    )
    result = await _handle_broadcast_outcome(event, key, outcome, fire_at, allow_retry=True)
    return {result: 1}


async def _handle_broadcast_outcome(
    event: dict[str, Any],
    key: ReminderKey,
    outcome: DeliveryOutcome,
    scheduled_for: datetime,
    allow_retry: bool,
) -> str:
    """
    Rate limits with a reset before the event starts get one deferred retry;
    the slot stays claimed meanwhile.
    """
    if isinstance(outcome, RateLimited):
        if allow_retry and outcome.reset_at < event["start_time"] and _scheduler:
            schedule_social_retry(key.event_id, key.lead_minutes, outcome.reset_at, scheduled_for)
            return "deferred"
        logger.warning(
            f"Social post for event {key.event_id} rate limited until "
            f"{outcome.reset_at.isoformat()}, giving up"
        )
    return await record_outcome(key, outcome, scheduled_for)


# =============================================================================
# Social rate-limit retry
# =============================================================================


def schedule_social_retry(
    event_id: str,
    lead_minutes: int,
    run_at: datetime,
    scheduled_for: datetime,
) -> None:
    """Schedule the single retry of a rate-limited broadcast at the reset time."""
    if not _scheduler:
        logger.warning(f"Scheduler not available, cannot retry social post for {event_id}")
        return

    _scheduler.add_job(
        _execute_social_retry,
        trigger="date",
        run_date=run_at,
        id=social_retry_job_id(event_id, lead_minutes),
        replace_existing=True,  # Don't stack retries
        misfire_grace_time=None,
        kwargs={
            "event_id": event_id,
            "lead_minutes": lead_minutes,
            "scheduled_for": scheduled_for,
        },
    )
    logger.info(
        f"Scheduled social retry for event {event_id} ({lead_minutes}m) at "
        f"{run_at.isoformat()}"
    )


async def _execute_social_retry(
    event_id: str,
    lead_minutes: int,
    scheduled_for: datetime,
) -> None:
    """Retry a rate-limited broadcast once. Called by APScheduler."""
    key = ReminderKey.broadcast(event_id, lead_minutes)
    try:
        event = await _load_event(event_id)
        if not event or event["is_deleted"]:
            await ledger.mark_skipped(key, SkipReason.event_cancelled, scheduled_for)
            return
        if event["start_time"] <= datetime.now(timezone.utc):
            await ledger.mark_skipped(key, SkipReason.window_missed, scheduled_for)
            return

        outcome = await _attempt(
            f"Social retry for event {event_id}",
            dispatcher.deliver_broadcast(event, lead_minutes),
        )
        await _handle_broadcast_outcome(
            event, key, outcome, scheduled_for, allow_retry=False
        )
    except Exception as e:
        logger.error(f"Social retry for event {event_id} failed: {e}")
        sentry_sdk.capture_exception(e)


# =============================================================================
# Cancellation
# =============================================================================


async def cancel_event_reminders(event_id: str) -> dict:
    """
    Drop timers for an event and skip its pending slots.

    Firing re-validates the event anyway; this just avoids waking up for it.

    Returns:
        Dict with removed job and skipped slot counts
    """
    released = _armed_slots.release_event(event_id)
    leads = (
        {key.lead_minutes for key in released}
        | known_lead_minutes()
        | get_social_lead_minutes()
    )

    removed = 0
    if _scheduler:
        for lead in leads:
            for job_id in (
                reminder_job_id(event_id, lead),
                social_retry_job_id(event_id, lead),
            ):
                try:
                    _scheduler.remove_job(job_id)
                    removed += 1
                except JobLookupError:
                    pass  # Already gone

    skipped = await ledger.skip_pending_for_event(event_id, SkipReason.event_cancelled)
    logger.info(
        f"Cancelled reminders for event {event_id}: {removed} jobs, {skipped} slots"
    )
    return {"jobs_removed": removed, "skipped": skipped}


# =============================================================================
# Calendar sync
# =============================================================================


async def _execute_calendar_sync() -> None:
    """Pull the calendar, then arm whatever it changed. Called by APScheduler."""
    # Import here to avoid circular imports
    from reminders.calendar.sync import sync_calendar_events

    try:
        result = await sync_calendar_events()
        logger.info(f"Calendar sync finished: {result}")
    except Exception as e:
        logger.error(f"Calendar sync failed: {e}")
        sentry_sdk.capture_exception(e)
        return

    await run_discovery_cycle()
