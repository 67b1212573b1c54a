"""
Centralized configuration for the reminder service.

All settings come from environment variables (loaded from .env / .env.local
by the entry points). Timing values are read on every call so tests and
operators can override them without a restart.
"""

import logging
import os
from datetime import timedelta

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}={raw!r}, using {default}")
        return default


def is_production() -> bool:
    """Check if running in a deployed environment."""
    return os.environ.get("APP_ENV", "").lower() == "production"


def get_frontend_url() -> str:
    """Base URL used for links inside reminder messages."""
    return os.environ.get("FRONTEND_URL", "http://localhost:3000").rstrip("/")


def get_sweep_interval() -> timedelta:
    """How often the safety sweep re-runs candidate discovery."""
    return timedelta(minutes=_int_env("REMINDER_SWEEP_INTERVAL_MINUTES", 5))


def get_safety_margin() -> timedelta:
    """Events starting sooner than this are never armed."""
    return timedelta(seconds=_int_env("REMINDER_SAFETY_MARGIN_SECONDS", 60))


def get_dispatch_timeout() -> float:
    """Upper bound in seconds for one transport call."""
    return float(_int_env("REMINDER_DISPATCH_TIMEOUT_SECONDS", 15))


def get_late_grace() -> timedelta:
    """How late a timer may fire before its slot counts as missed."""
    return timedelta(seconds=_int_env("REMINDER_LATE_GRACE_SECONDS", 120))


def get_email_batch_size() -> int:
    """Maximum recipients per outbound email."""
    return max(1, _int_env("EMAIL_BATCH_SIZE", 100))


def get_social_lead_minutes() -> frozenset[int]:
    """
    Lead times (minutes) at which a public social post is made per event.

    Comma-separated, e.g. "60,10". Empty string disables social posts.
    """
    raw = os.environ.get("SOCIAL_LEAD_MINUTES", "10")
    leads = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            value = int(part)
        except ValueError:
            logger.warning(f"Ignoring invalid SOCIAL_LEAD_MINUTES entry {part!r}")
            continue
        if value > 0:
            leads.add(value)
    return frozenset(leads)


def get_lookahead(max_lead_minutes: int) -> timedelta:
    """
    How far ahead candidate discovery looks for events.

    Defaults to the largest lead time plus two sweep intervals, so every
    slot firing before the next sweep is already armed.
    """
    explicit = _int_env("REMINDER_LOOKAHEAD_MINUTES", 0)
    if explicit > 0:
        return timedelta(minutes=explicit)
    return timedelta(minutes=max_lead_minutes) + 2 * get_sweep_interval()


def get_calendar_sync_horizon() -> timedelta:
    """How far ahead calendar sync fetches events."""
    return timedelta(days=_int_env("CALENDAR_SYNC_HORIZON_DAYS", 365))


# Required environment variables
# Format: (name, description, required)
REQUIRED_ENV_VARS = [
    ("DATABASE_URL", "PostgreSQL connection string", True),
    ("SENDGRID_API_KEY", "SendGrid API key for email reminders", False),
    ("VAPID_PRIVATE_KEY", "VAPID private key for browser push", False),
    ("TWITTER_ACCESS_TOKEN", "OAuth 2.0 user token for social posts", False),
    ("GOOGLE_CALENDAR_ID", "Calendar to sync events from", False),
]


def check_required_env_vars() -> tuple[bool, list[str]]:
    """
    Check that required environment variables are set.

    Returns:
        (all_ok, warnings): Tuple of success flag and list of warning messages
    """
    warnings = []
    errors = []

    for name, description, required in REQUIRED_ENV_VARS:
        if os.environ.get(name):
            continue
        if required:
            errors.append(f"  ✗ {name}: Not set ({description})")
        else:
            warnings.append(f"  ⚠ {name}: Not set ({description})")

    for error in errors:
        logger.error(error)

    return not errors, warnings
