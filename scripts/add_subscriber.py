#!/usr/bin/env python3
"""
Add or update a reminder subscriber in the local database.

Creates the user (and default preferences) on first use, optionally mutes
event types and registers a browser push subscription.

Usage:
    python scripts/add_subscriber.py --email you@example.com
    python scripts/add_subscriber.py --email you@example.com --mute-type focusTime
    python scripts/add_subscriber.py --email you@example.com \\
        --push-endpoint https://fcm.googleapis.com/... --p256dh KEY --auth SECRET

Requirements:
    - Local database running with DATABASE_URL set
"""

import argparse
import asyncio
from pathlib import Path

from dotenv import load_dotenv
env_path = Path(__file__).parent.parent
load_dotenv(env_path / ".env")
load_dotenv(env_path / ".env.local", override=True)


async def main(args: argparse.Namespace):
    from reminders.database import close_engine, get_transaction
    from reminders.queries import (
        ensure_preferences,
        get_or_create_user,
        register_push_subscription,
        set_event_type_preference,
    )

    async with get_transaction() as conn:
        user = await get_or_create_user(conn, args.email, name=args.name)
        await ensure_preferences(conn, user["user_id"])
        print(f"User {user['email']} (id={user['user_id']})")

        for event_type in args.mute_type:
            await set_event_type_preference(conn, user["user_id"], event_type, False)
            print(f"   Muted event type: {event_type}")

        if args.push_endpoint:
            if not (args.p256dh and args.auth):
                raise SystemExit("--p256dh and --auth are required with --push-endpoint")
            subscription = await register_push_subscription(
                conn,
                user["user_id"],
                args.push_endpoint,
                {"p256dh": args.p256dh, "auth": args.auth},
            )
            print(f"   Push subscription id={subscription['subscription_id']}")

    await close_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Add a reminder subscriber")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name")
    parser.add_argument("--mute-type", action="append", default=[], help="Event type to opt out of")
    parser.add_argument("--push-endpoint")
    parser.add_argument("--p256dh")
    parser.add_argument("--auth")

    asyncio.run(main(parser.parse_args()))
