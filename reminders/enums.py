"""SQLAlchemy enum definitions for the database schema."""

import enum

from sqlalchemy import Enum as SQLEnum


# =====================================================
# Python Enum Classes
# =====================================================


class Channel(str, enum.Enum):
    email = "email"
    browser = "browser"
    social = "social"


class ReminderStatus(str, enum.Enum):
    pending = "pending"
    sent = "sent"
    skipped = "skipped"


class SkipReason(str, enum.Enum):
    """Why a reminder slot ended without delivery."""

    window_missed = "window-missed"
    event_cancelled = "event-cancelled"
    timeout = "timeout"
    transient_failure = "transient-failure"
    permanent_failure = "permanent-failure"
    no_subscription = "no-subscription"
    rate_limited = "rate-limited"
    preference_changed = "preference-changed"
    interrupted = "interrupted"


# Recipient value used in the ledger for channel-wide posts (not per user)
BROADCAST_RECIPIENT = "broadcast"

# Event type assigned when the calendar feed doesn't provide one
DEFAULT_EVENT_TYPE = "default"


# =====================================================
# SQLAlchemy Enum Types
# These reference existing PostgreSQL types (create_type=False)
# =====================================================

channel_enum = SQLEnum(
    Channel, name="reminder_channel", create_type=False, native_enum=True
)
reminder_status_enum = SQLEnum(
    ReminderStatus, name="reminder_status", create_type=False, native_enum=True
)
