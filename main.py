"""
Reminder service entry point.

Architecture:
- One Python process, one asyncio event loop
- Two peer services running concurrently:
  1. FastAPI (health/status HTTP endpoints)
  2. APScheduler (safety sweep, reminder timers, daily calendar sync)

We use FastAPI's lifespan to manage startup/shutdown. The lifespan pattern
gives us uvicorn's signal handling for free.

Run with: python main.py [--port PORT] [--no-persist]
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

# Load .env.local first (if exists), then .env as fallback
# .env.local is gitignored and used for local dev overrides
load_dotenv(project_root / ".env.local")  # Local overrides (gitignored)
load_dotenv()  # Fallback to .env

import sentry_sdk
from fastapi import FastAPI, HTTPException

from reminders.config import check_required_env_vars, is_production
from reminders.database import check_connection, close_engine
from reminders.notifications import (
    cancel_event_reminders,
    get_scheduler_status,
    init_scheduler,
    run_discovery_cycle,
    shutdown_scheduler,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _init_sentry() -> None:
    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return
    sentry_sdk.init(
        dsn=dsn,
        environment="production" if is_production() else "development",
        traces_sample_rate=0.0,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager.

    Starts the scheduler, which runs discovery immediately and then on every
    sweep interval, alongside FastAPI in the same event loop.
    """
    _init_sentry()

    ok, warnings = check_required_env_vars()
    for warning in warnings:
        logger.warning(warning)
    if not ok:
        raise RuntimeError("Missing required environment variables (see log)")

    persist = os.getenv("REMINDER_PERSIST_JOBS", "true").lower() in ("true", "1", "yes")
    print("Starting reminder scheduler...")
    init_scheduler(persist_jobs=persist)

    yield  # FastAPI runs here, scheduler runs alongside it

    print("Shutting down reminder scheduler...")
    shutdown_scheduler()
    await close_engine()  # Close database connections


app = FastAPI(
    title="Event Reminder Service",
    lifespan=lifespan,
)


@app.get("/api/status")
async def api_status():
    """Scheduler status: armed slots, reminder jobs and next sweep."""
    return {"status": "ok", "scheduler": get_scheduler_status()}


@app.get("/health")
async def health():
    """Health check endpoint."""
    status = get_scheduler_status()
    database_ok = await check_connection()
    return {
        "status": "healthy" if status["running"] and database_ok else "degraded",
        "scheduler_running": status["running"],
        "database_connected": database_ok,
    }


@app.post("/api/reminders/discover")
async def discover_now():
    """Run one discovery cycle now instead of waiting for the next sweep."""
    return await run_discovery_cycle()


@app.post("/api/events/{event_id}/cancel-reminders")
async def cancel_reminders(event_id: str):
    """Cancel all armed and pending reminders for an event."""
    if not get_scheduler_status()["running"]:
        raise HTTPException(status_code=503, detail="Scheduler not running")
    return await cancel_event_reminders(event_id)


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Event Reminder Service")
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)",
    )
    parser.add_argument(
        "--no-persist",
        action="store_true",
        help="Keep scheduler jobs in memory only (useful for local dev)",
    )
    args = parser.parse_args()

    # Set env var so it persists across uvicorn reloads
    if args.no_persist:
        os.environ["REMINDER_PERSIST_JOBS"] = "false"

    # Pass app object directly (not string) to avoid module reimport issues
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=args.port,
    )
