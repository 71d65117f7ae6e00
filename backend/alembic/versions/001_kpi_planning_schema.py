"""kpi planning schema

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "production_chains",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="chk_production_chain_status"),
    )
    op.create_index("ix_production_chains_status", "production_chains", ["status"])

    op.create_table(
        "production_chain_steps",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "chain_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("production_chains.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("chain_id", "step_order", name="uq_chain_step_order"),
    )
    op.create_index("ix_production_chain_steps_chain_id", "production_chain_steps", ["chain_id"])

    op.create_table(
        "chain_kpis",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "chain_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("production_chains.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("target_value", sa.Integer(), nullable=False),
        sa.Column("unit_label", sa.String(100), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("month", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("weeks", postgresql.JSONB(), nullable=True),
        sa.Column("is_accumulated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("accumulated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("target_value > 0", name="chk_chain_kpi_target_positive"),
        sa.CheckConstraint("month IS NULL OR (month >= 1 AND month <= 12)", name="chk_chain_kpi_month"),
        sa.CheckConstraint(
            "start_date IS NULL OR end_date IS NULL OR start_date <= end_date",
            name="chk_chain_kpi_date_range",
        ),
    )
    op.create_index("ix_chain_kpis_chain_id", "chain_kpis", ["chain_id"])
    op.create_index("ix_chain_kpis_created_by", "chain_kpis", ["created_by"])

    op.create_table(
        "chain_kpi_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "chain_kpi_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("chain_kpis.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("week_index", sa.Integer(), nullable=False),
        sa.Column(
            "step_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("production_chain_steps.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("assigned_to", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("day_assignments", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("day_results", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("day_titles", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("accepted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("accepted_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("handed_over", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("handed_over_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("handed_over_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("week_index > 0", name="chk_assignment_week_index_positive"),
        sa.CheckConstraint(
            "(accepted = false) OR (accepted_by IS NOT NULL AND accepted_at IS NOT NULL)",
            name="chk_assignment_accepted_stamp",
        ),
        sa.CheckConstraint(
            "(handed_over = false) OR (handed_over_by IS NOT NULL AND handed_over_at IS NOT NULL)",
            name="chk_assignment_handed_over_stamp",
        ),
        sa.UniqueConstraint("chain_kpi_id", "week_index", "step_id", name="uq_assignment_kpi_week_step"),
    )
    op.create_index("ix_chain_kpi_assignments_chain_kpi_id", "chain_kpi_assignments", ["chain_kpi_id"])
    op.create_index("ix_chain_kpi_assignments_step_id", "chain_kpi_assignments", ["step_id"])
    op.create_index("ix_chain_kpi_assignments_assigned_to", "chain_kpi_assignments", ["assigned_to"])

    op.create_table(
        "kpi_completions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "chain_kpi_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("chain_kpis.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("completion_type", sa.String(10), nullable=False),
        sa.Column("week_index", sa.Integer(), nullable=True),
        sa.Column("date_iso", sa.Date(), nullable=True),
        sa.Column("completed_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("completion_type IN ('week', 'day')", name="chk_kpi_completion_type"),
        sa.CheckConstraint(
            "(completion_type = 'week' AND week_index IS NOT NULL AND date_iso IS NULL) OR "
            "(completion_type = 'day' AND date_iso IS NOT NULL AND week_index IS NULL)",
            name="chk_kpi_completion_key",
        ),
    )
    op.create_index("ix_kpi_completions_chain_kpi_id", "kpi_completions", ["chain_kpi_id"])
    # One ledger row per week / per day of a KPI.
    op.create_index(
        "uq_kpi_completion_week",
        "kpi_completions",
        ["chain_kpi_id", "week_index"],
        unique=True,
        postgresql_where=sa.text("completion_type = 'week'"),
    )
    op.create_index(
        "uq_kpi_completion_day",
        "kpi_completions",
        ["chain_kpi_id", "date_iso"],
        unique=True,
        postgresql_where=sa.text("completion_type = 'day'"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("meta_data", postgresql.JSONB(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="unread"),
        sa.Column("recipient_role", sa.String(20), nullable=False),
        sa.Column("recipient_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("entity_type", sa.String(50), nullable=True),
        sa.Column("entity_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('unread', 'read')", name="chk_notification_status"),
        sa.CheckConstraint(
            "recipient_role IN ('admin', 'leader', 'user')",
            name="chk_notification_recipient_role",
        ),
        sa.CheckConstraint(
            "recipient_role <> 'user' OR recipient_user_id IS NOT NULL",
            name="chk_notification_user_recipient",
        ),
    )
    op.create_index("ix_notifications_type", "notifications", ["type"])
    op.create_index("ix_notifications_status", "notifications", ["status"])
    op.create_index("ix_notifications_recipient_role", "notifications", ["recipient_role"])
    op.create_index("ix_notifications_recipient_user_id", "notifications", ["recipient_user_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_index("uq_kpi_completion_day", table_name="kpi_completions")
    op.drop_index("uq_kpi_completion_week", table_name="kpi_completions")
    op.drop_table("kpi_completions")
    op.drop_table("chain_kpi_assignments")
    op.drop_table("chain_kpis")
    op.drop_table("production_chain_steps")
    op.drop_table("production_chains")
