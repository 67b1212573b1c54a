#!/usr/bin/env python3
"""
Dry run of reminder discovery against the local database.

Lists upcoming events inside the lookahead window, the reminder slots each
one would get, and what the ledger already says about them. Sends nothing
and arms nothing unless --arm is given, in which case one discovery cycle
runs on a memory-only scheduler and the armed jobs are printed.

Usage:
    python scripts/check_upcoming_reminders.py [--arm]

Requirements:
    - Local database running with DATABASE_URL set
"""

import argparse
import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

# Load environment variables from .env files
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent
load_dotenv(env_path / ".env")
load_dotenv(env_path / ".env.local", override=True)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("reminders").setLevel(logging.DEBUG)


async def main(arm: bool):
    from reminders.config import get_lookahead, get_safety_margin
    from reminders.database import close_engine, get_connection
    from reminders.notifications import ledger
    from reminders.notifications.preferences import resolve_recipients
    from reminders.notifications.scheduler import (
        compute_fire_at,
        expected_keys,
        init_scheduler,
        max_lead_minutes,
        run_discovery_cycle,
        shutdown_scheduler,
        social_lead_minutes,
    )
    from reminders.queries import get_upcoming_events

    now = datetime.now(timezone.utc)
    after = now + get_safety_margin()
    until = now + get_lookahead(max_lead_minutes())

    print(f"\n{'='*60}")
    print("Upcoming reminders")
    print(f"{'='*60}")
    print(f"Window: {after.isoformat()} .. {until.isoformat()}\n")

    async with get_connection() as conn:
        upcoming = await get_upcoming_events(conn, after, until)

    if not upcoming:
        print("No events in the lookahead window.")

    for event in upcoming:
        print(f"- {event['event_id']}: {event['title']} ({event['start_time'].isoformat()})")
        recipients = await resolve_recipients(event, now)
        keys = expected_keys(event["event_id"], recipients, social_lead_minutes())
        entries = await ledger.get_event_ledger(event["event_id"])

        for key in sorted(keys, key=lambda k: (-k.lead_minutes, k.channel.value, k.recipient)):
            fire_at = compute_fire_at(event["start_time"], key.lead_minutes)
            entry = entries.get(key)
            state = "unrecorded"
            if entry:
                state = entry.status.value + (" (claimed)" if entry.claimed else "")
            print(
                f"    {key.lead_minutes:>5}m  {key.channel.value:<8} {key.recipient:<12} "
                f"fires {fire_at.strftime('%H:%M:%S')}  {state}"
            )

    if arm:
        print("\nRunning one discovery cycle (memory-only scheduler)...")
        sched = init_scheduler(persist_jobs=False, calendar_sync=False)
        summary = await run_discovery_cycle()
        print(f"   {summary}")
        for job in sched.get_jobs():
            print(f"   - {job.id}: runs at {job.next_run_time}")
        shutdown_scheduler()

    await close_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Show upcoming reminder slots")
    parser.add_argument("--arm", action="store_true", help="Also run one discovery cycle")
    args = parser.parse_args()

    asyncio.run(main(args.arm))
