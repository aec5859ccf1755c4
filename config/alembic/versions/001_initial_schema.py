"""Initial consent pipeline schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None

_LIVE = sa.text("status IN ('pending', 'approved')")


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("subscription_tier", sa.String(), nullable=False, server_default="basic"),
        sa.Column("wali_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("guardian_user_id", sa.String(), nullable=True),
        sa.Column("guardian_contact", sa.String(), nullable=True),
        sa.Column("email_notifications_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_messages", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_matches", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_intro_requests", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notification_frequency", sa.String(), nullable=False, server_default="instant"),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "signals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("from_user_id", sa.String(), nullable=False),
        sa.Column("to_user_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("from_user_id <> to_user_id", name="no_self_signal"),
        sa.CheckConstraint("kind IN ('pass', 'like', 'super_interest')", name="valid_signal_kind"),
    )
    op.create_index("ix_signals_from_user_created", "signals", ["from_user_id", "created_at"])
    op.create_index("ix_signals_pair", "signals", ["from_user_id", "to_user_id"])

    op.create_table(
        "introduction_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("requester_id", sa.String(), nullable=False),
        sa.Column("recipient_id", sa.String(), nullable=False),
        sa.Column("user_low", sa.String(), nullable=False),
        sa.Column("user_high", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("guardian_id", sa.String(), nullable=True),
        sa.Column("guardian_approved", sa.Boolean(), nullable=True),
        sa.Column("guardian_notes", sa.Text(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="valid_intro_status"),
        sa.CheckConstraint("user_low < user_high", name="intro_canonical_ordering"),
    )
    op.create_index(
        "uq_introduction_requests_live_pair",
        "introduction_requests",
        ["user_low", "user_high"],
        unique=True,
        sqlite_where=_LIVE,
        postgresql_where=_LIVE,
    )
    op.create_index(
        "ix_introduction_requests_guardian_status",
        "introduction_requests",
        ["guardian_id", "status"],
    )

    op.create_table(
        "matches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_a", sa.String(), nullable=False),
        sa.Column("user_b", sa.String(), nullable=False),
        sa.Column(
            "introduction_request_id",
            sa.Integer(),
            sa.ForeignKey("introduction_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_a", "user_b", name="uq_matches_user_pair"),
        sa.CheckConstraint("user_a < user_b", name="canonical_ordering"),
    )

    op.create_table(
        "pending_notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("recipient_user_id", sa.String(), nullable=False),
        sa.Column("notification_type", sa.String(), nullable=False),
        sa.Column("source_actor_name", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("is_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("subject", sa.String(), nullable=True),
        sa.CheckConstraint(
            "notification_type IN ('new_message', 'match', 'intro_request', 'wali_approval')",
            name="valid_notification_type",
        ),
    )
    op.create_index(
        "ix_pending_notifications_unsent",
        "pending_notifications",
        ["notification_type", "is_sent", "created_at"],
    )

    op.create_table(
        "guardian_activity_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "introduction_request_id",
            sa.Integer(),
            sa.ForeignKey("introduction_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("guardian_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "notification_delivery_failures",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("recipient_user_id", sa.String(), nullable=False),
        sa.Column("notification_type", sa.String(), nullable=False),
        sa.Column("group_key", sa.String(), nullable=False),
        sa.Column("event_count", sa.Integer(), nullable=False),
        sa.Column("error", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_notification_delivery_failures_group_key",
        "notification_delivery_failures",
        ["group_key"],
    )


def downgrade() -> None:
    op.drop_index("ix_notification_delivery_failures_group_key")
    op.drop_table("notification_delivery_failures")
    op.drop_table("guardian_activity_log")
    op.drop_index("ix_pending_notifications_unsent")
    op.drop_table("pending_notifications")
    op.drop_table("matches")
    op.drop_index("ix_introduction_requests_guardian_status")
    op.drop_index("uq_introduction_requests_live_pair")
    op.drop_table("introduction_requests")
    op.drop_index("ix_signals_pair")
    op.drop_index("ix_signals_from_user_created")
    op.drop_table("signals")
    op.drop_table("profiles")
