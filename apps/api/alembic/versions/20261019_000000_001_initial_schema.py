"""Initial notification engine schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # Create enum types
    op.execute("CREATE TYPE attendee_status AS ENUM ('going', 'maybe', 'not_going')")
    op.execute("CREATE TYPE notification_channel AS ENUM ('email', 'off')")
    op.execute(
        "CREATE TYPE template_category AS ENUM "
        "('user', 'event_attendee', 'event_host', 'calendar_manager', 'calendar', 'product', 'system')"
    )
    op.execute(
        "CREATE TYPE schedule_status AS ENUM "
        "('pending', 'processing', 'sent', 'failed', 'cancelled', 'expired')"
    )
    op.execute(
        "CREATE TYPE batch_status AS ENUM ('draft', 'scheduled', 'processing', 'completed', 'cancelled')"
    )

    # Collaborator tables
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("username", sa.String(100), nullable=True),
        sa.Column("rlly_id", sa.String(100), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("segments", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
    )
    op.create_index(op.f("ix_users_username"), "users", ["username"], unique=True)
    op.create_index(op.f("ix_users_rlly_id"), "users", ["rlly_id"], unique=True)

    op.create_table(
        "events",
        *_base_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("is_virtual", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("virtual_link", sa.String(1000), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("host_id", sa.UUID(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_events")),
        sa.ForeignKeyConstraint(
            ["host_id"],
            ["users.id"],
            name=op.f("fk_events_host_id_users"),
            ondelete="SET NULL",
        ),
    )

    op.create_table(
        "event_attendees",
        *_base_columns(),
        sa.Column("event_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM("going", "maybe", "not_going", name="attendee_status", create_type=False),
            nullable=False,
            server_default="going",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_event_attendees")),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_event_attendees_event_id_events"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_event_attendees_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_attendees_event_user"),
    )
    op.create_index("ix_event_attendees_by_event", "event_attendees", ["event_id"], unique=False)
    op.create_index(op.f("ix_event_attendees_user_id"), "event_attendees", ["user_id"], unique=False)

    op.create_table(
        "notification_preferences",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column(
            "channel",
            postgresql.ENUM("email", "off", name="notification_channel", create_type=False),
            nullable=False,
            server_default="email",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_notification_preferences")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_notification_preferences_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", "category", name="uq_notification_preferences_user_category"),
    )
    op.create_index(
        op.f("ix_notification_preferences_user_id"),
        "notification_preferences",
        ["user_id"],
        unique=False,
    )

    # Events, templates and rules
    op.create_table(
        "email_events",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_email_events")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_email_events_user_id_users"),
            ondelete="CASCADE",
        ),
    )
    op.create_index(op.f("ix_email_events_user_id"), "email_events", ["user_id"], unique=False)
    op.create_index("ix_email_events_type_processed", "email_events", ["type", "processed"], unique=False)

    op.create_table(
        "email_templates",
        *_base_columns(),
        sa.Column("template_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(500), nullable=False),
        sa.Column("component_path", sa.String(255), nullable=False),
        sa.Column("variables", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column(
            "category",
            postgresql.ENUM(
                "user",
                "event_attendee",
                "event_host",
                "calendar_manager",
                "calendar",
                "product",
                "system",
                name="template_category",
                create_type=False,
            ),
            nullable=False,
        ),
        sa.Column("active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("preview_data", postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_email_templates")),
        sa.UniqueConstraint("template_id", "version", name="uq_email_templates_template_version"),
    )
    op.create_index(op.f("ix_email_templates_template_id"), "email_templates", ["template_id"], unique=False)

    op.create_table(
        "email_rules",
        *_base_columns(),
        sa.Column("trigger", sa.String(50), nullable=False),
        sa.Column("conditions", postgresql.JSONB(), nullable=True),
        sa.Column("delay_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("template_id", sa.String(100), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("priority", sa.Integer(), nullable=True),
        sa.Column("max_attempts", sa.Integer(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_email_rules")),
        sa.CheckConstraint("delay_minutes >= 0", name=op.f("ck_email_rules_delay_minutes_non_negative")),
    )
    op.create_index("ix_email_rules_trigger_active", "email_rules", ["trigger", "active"], unique=False)

    # Delayed-send queue
    op.create_table(
        "scheduled_emails",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("rule_id", sa.UUID(), nullable=True),
        sa.Column("email_event_id", sa.UUID(), nullable=True),
        sa.Column("template_id", sa.String(100), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=True),
        sa.Column("event_data", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(
                "pending",
                "processing",
                "sent",
                "failed",
                "cancelled",
                "expired",
                name="schedule_status",
                create_type=False,
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_message_id", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_scheduled_emails")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_scheduled_emails_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["rule_id"],
            ["email_rules.id"],
            name=op.f("fk_scheduled_emails_rule_id_email_rules"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["email_event_id"],
            ["email_events.id"],
            name=op.f("fk_scheduled_emails_email_event_id_email_events"),
            ondelete="SET NULL",
        ),
        sa.CheckConstraint("attempts <= max_attempts", name=op.f("ck_scheduled_emails_attempts_within_max")),
        sa.CheckConstraint("attempts >= 0", name=op.f("ck_scheduled_emails_attempts_non_negative")),
    )
    op.create_index(op.f("ix_scheduled_emails_user_id"), "scheduled_emails", ["user_id"], unique=False)
    op.create_index(op.f("ix_scheduled_emails_rule_id"), "scheduled_emails", ["rule_id"], unique=False)
    op.create_index(
        "ix_scheduled_emails_status_scheduled_for",
        "scheduled_emails",
        ["status", "scheduled_for"],
        unique=False,
    )

    # Batches
    op.create_table(
        "email_batches",
        *_base_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("template_id", sa.String(100), nullable=False),
        sa.Column("user_ids", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("event_data", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(
                "draft",
                "scheduled",
                "processing",
                "completed",
                "cancelled",
                name="batch_status",
                create_type=False,
            ),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("total_emails", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sent_emails", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_emails", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_email_batches")),
        sa.CheckConstraint(
            "sent_emails + failed_emails <= total_emails",
            name=op.f("ck_email_batches_counts_within_total"),
        ),
    )

    # Metrics
    op.create_table(
        "email_metrics",
        *_base_columns(),
        sa.Column("email_id", sa.String(255), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("template_id", sa.String(100), nullable=False),
        sa.Column("rule_id", sa.UUID(), nullable=True),
        sa.Column("scheduled_email_id", sa.UUID(), nullable=True),
        sa.Column("batch_id", sa.UUID(), nullable=True),
        sa.Column("event_type", sa.String(50), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_email_metrics")),
        sa.ForeignKeyConstraint(
            ["scheduled_email_id"],
            ["scheduled_emails.id"],
            name=op.f("fk_email_metrics_scheduled_email_id_scheduled_emails"),
            ondelete="SET NULL",
        ),
    )
    op.create_index(op.f("ix_email_metrics_user_id"), "email_metrics", ["user_id"], unique=False)
    op.create_index(op.f("ix_email_metrics_template_id"), "email_metrics", ["template_id"], unique=False)

    op.create_table(
        "rule_metrics",
        *_base_columns(),
        sa.Column("rule_id", sa.UUID(), nullable=False),
        sa.Column("total_triggers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful_sends", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_sends", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_triggered", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_rule_metrics")),
        sa.ForeignKeyConstraint(
            ["rule_id"],
            ["email_rules.id"],
            name=op.f("fk_rule_metrics_rule_id_email_rules"),
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("rule_id", name=op.f("uq_rule_metrics_rule_id")),
    )


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("rule_metrics")
    op.drop_table("email_metrics")
    op.drop_table("email_batches")
    op.drop_table("scheduled_emails")
    op.drop_table("email_rules")
    op.drop_table("email_templates")
    op.drop_table("email_events")
    op.drop_table("notification_preferences")
    op.drop_table("event_attendees")
    op.drop_table("events")
    op.drop_table("users")

    # Drop enum types
    op.execute("DROP TYPE IF EXISTS batch_status")
    op.execute("DROP TYPE IF EXISTS schedule_status")
    op.execute("DROP TYPE IF EXISTS template_category")
    op.execute("DROP TYPE IF EXISTS notification_channel")
    op.execute("DROP TYPE IF EXISTS attendee_status")
