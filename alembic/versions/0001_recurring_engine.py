"""recurring series, instances, exclusions and job heartbeats

Revision ID: 0001_recurring_engine
Revises:
Create Date: 2026-10-19 00:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_recurring_engine"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "recurring_series",
        sa.Column("series_id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("service_id", sa.String(length=64), nullable=True),
        sa.Column("staff_id", sa.String(length=64), nullable=True),
        sa.Column("customer_id", sa.String(length=64), nullable=True),
        sa.Column("master_booking_id", sa.String(length=64), nullable=True),
        sa.Column("template_meta", sa.JSON(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("pattern_kind", sa.String(length=20), nullable=False),
        sa.Column("pattern_options", sa.JSON(), nullable=False),
        sa.Column("end_kind", sa.String(length=10), nullable=False),
        sa.Column("end_count", sa.Integer(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_recurring_series_status", "recurring_series", ["status"])
    op.create_index("ix_recurring_series_customer_id", "recurring_series", ["customer_id"])

    op.create_table(
        "recurring_instances",
        sa.Column("instance_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("series_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("instance_number", sa.Integer(), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("original_date", sa.Date(), nullable=True),
        sa.Column("original_time", sa.Time(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ["series_id"],
            ["recurring_series.series_id"],
            name="fk_recurring_instances_series",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("series_id", "instance_number", name="uq_recurring_instances_series_number"),
    )
    op.create_index(
        "ix_recurring_instances_status_date", "recurring_instances", ["status", "scheduled_date"]
    )

    op.create_table(
        "recurring_exclusions",
        sa.Column("exclusion_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("series_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("exclusion_type", sa.String(length=20), nullable=False),
        sa.Column("exclusion_date", sa.Date(), nullable=True),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("range_start", sa.Date(), nullable=True),
        sa.Column("range_end", sa.Date(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ["series_id"],
            ["recurring_series.series_id"],
            name="fk_recurring_exclusions_series",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_recurring_exclusions_series_id", "recurring_exclusions", ["series_id"])

    op.create_table(
        "job_heartbeats",
        sa.Column("name", sa.String(length=64), primary_key=True),
        sa.Column("last_heartbeat", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_success_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.String(length=128), nullable=True),
        sa.Column("last_error_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("runner_id", sa.String(length=128), nullable=True),
        sa.Column("consecutive_failures", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("job_heartbeats")
    op.drop_index("ix_recurring_exclusions_series_id", table_name="recurring_exclusions")
    op.drop_table("recurring_exclusions")
    op.drop_index("ix_recurring_instances_status_date", table_name="recurring_instances")
    op.drop_table("recurring_instances")
    op.drop_index("ix_recurring_series_customer_id", table_name="recurring_series")
    op.drop_index("ix_recurring_series_status", table_name="recurring_series")
    op.drop_table("recurring_series")
