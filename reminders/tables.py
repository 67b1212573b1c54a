"""SQLAlchemy Core table definitions for the database schema."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    Table,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP

from .enums import DEFAULT_EVENT_TYPE, channel_enum, reminder_status_enum

# Naming convention for constraints (helps Alembic generate better names)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=convention)


# =====================================================
# 1. USERS
# =====================================================
users = Table(
    "users",
    metadata,
    Column("user_id", Integer, primary_key=True, autoincrement=True),
    Column("email", Text, nullable=False, unique=True),  # always lower-cased
    Column("name", Text),
    Column("is_active", Boolean, nullable=False, server_default="true"),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
)


# =====================================================
# 2. EVENTS (written by calendar sync)
# =====================================================
events = Table(
    "events",
    metadata,
    Column("event_id", Text, primary_key=True),  # external calendar id
    Column("title", Text, nullable=False, server_default="No Title"),
    Column("description", Text),
    Column("start_time", TIMESTAMP(timezone=True), nullable=False),
    Column("end_time", TIMESTAMP(timezone=True), nullable=False),
    Column("event_type", Text, nullable=False, server_default=DEFAULT_EVENT_TYPE),
    Column("html_link", Text),
    Column("is_deleted", Boolean, nullable=False, server_default="false"),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    CheckConstraint("start_time < end_time", name="start_before_end"),
    Index("idx_events_start_time", "start_time"),
    Index("idx_events_event_type", "event_type"),
)


# =====================================================
# 3. NOTIFICATION_PREFERENCES (one row per user)
# =====================================================
notification_preferences = Table(
    "notification_preferences",
    metadata,
    Column(
        "user_id",
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("notify_email", Boolean, nullable=False, server_default="true"),
    Column("notify_browser", Boolean, nullable=False, server_default="false"),
    Column("notify_all_events", Boolean, nullable=False, server_default="true"),
    Column("email_1h_before", Boolean, nullable=False, server_default="true"),
    Column("email_10m_before", Boolean, nullable=False, server_default="false"),
    Column("browser_1h_before", Boolean, nullable=False, server_default="true"),
    Column("browser_10m_before", Boolean, nullable=False, server_default="false"),
    Column("auto_enable_new_types", Boolean, nullable=False, server_default="false"),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
)


# =====================================================
# 4. EVENT_TYPE_PREFERENCES
# =====================================================
event_type_preferences = Table(
    "event_type_preferences",
    metadata,
    Column(
        "user_id",
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("event_type", Text, nullable=False),
    Column("is_enabled", Boolean, nullable=False, server_default="true"),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    PrimaryKeyConstraint("user_id", "event_type"),
    Index("idx_event_type_preferences_event_type", "event_type"),
)


# =====================================================
# 5. PUSH_SUBSCRIPTIONS
# =====================================================
push_subscriptions = Table(
    "push_subscriptions",
    metadata,
    Column("subscription_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "user_id",
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("endpoint", Text, nullable=False, unique=True),
    Column("keys", JSONB, nullable=False),  # {"p256dh": ..., "auth": ...}
    Column("expires_at", TIMESTAMP(timezone=True)),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Index("idx_push_subscriptions_user_id", "user_id"),
)


# =====================================================
# 6. REMINDER_RECORDS (the ledger)
# =====================================================
reminder_records = Table(
    "reminder_records",
    metadata,
    Column(
        "event_id",
        Text,
        ForeignKey("events.event_id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("recipient", Text, nullable=False),  # user_id as text, or "broadcast"
    Column("channel", channel_enum, nullable=False),
    Column("lead_minutes", Integer, nullable=False),
    Column("scheduled_for", TIMESTAMP(timezone=True), nullable=False),
    Column("status", reminder_status_enum, nullable=False, server_default="pending"),
    Column("skip_reason", Text),
    Column("claimed_at", TIMESTAMP(timezone=True)),  # set by the delivering path
    Column("sent_at", TIMESTAMP(timezone=True)),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    PrimaryKeyConstraint("event_id", "recipient", "channel", "lead_minutes"),
    Index("idx_reminder_records_status", "status"),
    Index("idx_reminder_records_scheduled_for", "scheduled_for"),
)
