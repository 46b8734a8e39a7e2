"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- ENUM types ---
    achievement_kind_enum = sa.Enum(
        "accumulative", "threshold_count", "milestone_completion",
        name="achievement_kind_enum",
    )
    achievement_kind_enum.create(op.get_bind(), checkfirst=True)

    # --- achievement_types ---
    op.create_table(
        "achievement_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("kind", sa.Enum(
            "accumulative", "threshold_count", "milestone_completion",
            name="achievement_kind_enum", create_type=False,
        ), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("target_count", sa.Integer(), nullable=False),
        sa.Column("time_window_days", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("allow_over_achievement", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_successes_allowed", sa.Integer(), nullable=True),
        sa.Column("source_key", sa.String(64), nullable=True),
        sa.Column("milestone_ids", sa.Text(), nullable=True,
                  comment="JSON-encoded list of milestone identifiers"),
        sa.Column("prerequisite_ids", sa.Text(), nullable=True,
                  comment="JSON-encoded list of achievement_types ids"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_achievement_types_id", "achievement_types", ["id"])
    op.create_index("ix_achievement_types_source_key", "achievement_types", ["source_key"])

    # --- achievement_attempts ---
    op.create_table(
        "achievement_attempts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("achievement_type_id", sa.Integer(), nullable=False),
        sa.Column("achiever_id", sa.String(64), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("progress", sa.Numeric(10, 9), nullable=False, server_default="0",
                  comment="0.000000000–1.000000000"),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_successful", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["achievement_type_id"], ["achievement_types.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_achievement_attempts_id", "achievement_attempts", ["id"])
    op.create_index("ix_achievement_attempts_achiever_id", "achievement_attempts", ["achiever_id"])
    op.create_index(
        "ix_attempt_type_achiever_start",
        "achievement_attempts",
        ["achievement_type_id", "achiever_id", "start_date"],
    )

    # --- activity_enrollments ---
    op.create_table(
        "activity_enrollments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("source_key", sa.String(64), nullable=False),
        sa.Column("achiever_id", sa.String(64), nullable=False),
        sa.Column("enrolled_on", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_key", "achiever_id", name="uq_activity_enrollment"),
    )
    op.create_index("ix_activity_enrollments_id", "activity_enrollments", ["id"])
    op.create_index("ix_activity_enrollments_source_key", "activity_enrollments", ["source_key"])
    op.create_index("ix_activity_enrollments_achiever_id", "activity_enrollments", ["achiever_id"])

    # --- activity_days ---
    op.create_table(
        "activity_days",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("source_key", sa.String(64), nullable=False),
        sa.Column("achiever_id", sa.String(64), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("has_occurrence", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("has_engagement", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_exclusion", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_key", "achiever_id", "day", name="uq_activity_day"),
    )
    op.create_index("ix_activity_days_id", "activity_days", ["id"])
    op.create_index("ix_activity_days_source_key", "activity_days", ["source_key"])
    op.create_index("ix_activity_days_achiever_id", "activity_days", ["achiever_id"])
    op.create_index("ix_activity_days_day", "activity_days", ["day"])

    # --- milestone_completions ---
    op.create_table(
        "milestone_completions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("achiever_id", sa.String(64), nullable=False),
        sa.Column("milestone_id", sa.String(64), nullable=False),
        sa.Column("completed_on", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_milestone_completions_id", "milestone_completions", ["id"])
    op.create_index("ix_milestone_completions_achiever_id", "milestone_completions", ["achiever_id"])
    op.create_index("ix_milestone_completions_milestone_id", "milestone_completions", ["milestone_id"])

    # --- memberships ---
    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("achiever_id", sa.String(64), nullable=False),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("achiever_id", "member_id", name="uq_membership"),
    )
    op.create_index("ix_memberships_id", "memberships", ["id"])
    op.create_index("ix_memberships_achiever_id", "memberships", ["achiever_id"])


def downgrade() -> None:
    op.drop_table("memberships")
    op.drop_table("milestone_completions")
    op.drop_table("activity_days")
    op.drop_table("activity_enrollments")
    op.drop_table("achievement_attempts")
    op.drop_table("achievement_types")

    op.execute("DROP TYPE IF EXISTS achievement_kind_enum")
