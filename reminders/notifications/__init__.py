"""
Reminder scheduling and delivery.

Public API:
    init_scheduler() / shutdown_scheduler() - Lifecycle (FastAPI lifespan)
    run_discovery_cycle() - Arm every upcoming event that needs it
    cancel_event_reminders(event_id) - Drop timers and pending slots of an event
    resolve_recipients(event) - Who gets which reminder for an event
    get_scheduler_status() - Snapshot for the status endpoint
"""

from .preferences import resolve_recipients, compute_recipient_slots
from .scheduler import (
    init_scheduler,
    shutdown_scheduler,
    run_discovery_cycle,
    find_next_candidate,
    cancel_event_reminders,
    get_scheduler_status,
)

__all__ = [
    "init_scheduler",
    "shutdown_scheduler",
    "run_discovery_cycle",
    "find_next_candidate",
    "cancel_event_reminders",
    "get_scheduler_status",
    "resolve_recipients",
    "compute_recipient_slots",
]
