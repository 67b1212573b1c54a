"""Initial reminder schema.

Revision ID: 001
Revises:
Create Date: 2026-10-12

Creates users, events, notification preferences, push subscriptions and the
reminder ledger (reminder_records), plus the two enum types.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    reminder_channel = postgresql.ENUM(
        "email", "browser", "social", name="reminder_channel", create_type=False
    )
    reminder_status = postgresql.ENUM(
        "pending", "sent", "skipped", name="reminder_status", create_type=False
    )
    reminder_channel.create(op.get_bind(), checkfirst=True)
    reminder_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("user_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("user_id", name=op.f("pk_users")),
        sa.UniqueConstraint("email", name=op.f("uq_users_email")),
    )

    op.create_table(
        "events",
        sa.Column("event_id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), server_default="No Title", nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("event_type", sa.Text(), server_default="default", nullable=False),
        sa.Column("html_link", sa.Text(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.CheckConstraint("start_time < end_time", name=op.f("ck_events_start_before_end")),
        sa.PrimaryKeyConstraint("event_id", name=op.f("pk_events")),
    )
    op.create_index("idx_events_start_time", "events", ["start_time"], unique=False)
    op.create_index("idx_events_event_type", "events", ["event_type"], unique=False)

    op.create_table(
        "notification_preferences",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("notify_email", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("notify_browser", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("notify_all_events", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("email_1h_before", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("email_10m_before", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("browser_1h_before", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("browser_10m_before", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "auto_enable_new_types", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_notification_preferences_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("user_id", name=op.f("pk_notification_preferences")),
    )

    op.create_table(
        "event_type_preferences",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_event_type_preferences_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("user_id", "event_type", name=op.f("pk_event_type_preferences")),
    )
    op.create_index(
        "idx_event_type_preferences_event_type",
        "event_type_preferences",
        ["event_type"],
        unique=False,
    )

    op.create_table(
        "push_subscriptions",
        sa.Column("subscription_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("keys", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("expires_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_push_subscriptions_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("subscription_id", name=op.f("pk_push_subscriptions")),
        sa.UniqueConstraint("endpoint", name=op.f("uq_push_subscriptions_endpoint")),
    )
    op.create_index(
        "idx_push_subscriptions_user_id", "push_subscriptions", ["user_id"], unique=False
    )

    op.create_table(
        "reminder_records",
        sa.Column("event_id", sa.Text(), nullable=False),
        sa.Column("recipient", sa.Text(), nullable=False),
        sa.Column("channel", reminder_channel, nullable=False),
        sa.Column("lead_minutes", sa.Integer(), nullable=False),
        sa.Column("scheduled_for", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("status", reminder_status, server_default="pending", nullable=False),
        sa.Column("skip_reason", sa.Text(), nullable=True),
        sa.Column("claimed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("sent_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.event_id"],
            name=op.f("fk_reminder_records_event_id_events"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint(
            "event_id", "recipient", "channel", "lead_minutes", name=op.f("pk_reminder_records")
        ),
    )
    op.create_index("idx_reminder_records_status", "reminder_records", ["status"], unique=False)
    op.create_index(
        "idx_reminder_records_scheduled_for", "reminder_records", ["scheduled_for"], unique=False
    )


def downgrade() -> None:
    op.drop_table("reminder_records")
    op.drop_table("push_subscriptions")
    op.drop_table("event_type_preferences")
    op.drop_table("notification_preferences")
    op.drop_table("events")
    op.drop_table("users")
    sa.Enum(name="reminder_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="reminder_channel").drop(op.get_bind(), checkfirst=True)
