"""initial schema: prediction ledger, stats cache, leaderboard archive, badges

Revision ID: 001
Revises:
Create Date: 2024-11-04
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Ledger ──
    op.create_table(
        "predictions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("asset_id", sa.String(), nullable=False),
        sa.Column("direction", sa.String(), nullable=False),
        sa.Column("duration", sa.String(), nullable=False),
        sa.Column("slot_number", sa.Integer(), nullable=False),
        sa.Column("slot_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("slot_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("result", sa.String(), nullable=False, server_default="pending"),
        sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price_start", sa.Float(), nullable=False),
        sa.Column("price_end", sa.Float(), nullable=True),
        sa.Column("points_if_correct", sa.Integer(), nullable=True),
        sa.Column("penalty_if_wrong", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("evaluated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "user_id", "asset_id", "duration", "slot_number", "slot_start",
            name="uq_predictions_user_slot",
        ),
    )
    op.create_index("ix_predictions_user_id", "predictions", ["user_id"])
    op.create_index("ix_predictions_created_at", "predictions", ["created_at"])
    op.create_index("ix_predictions_status_expires_at", "predictions", ["status", "expires_at"])
    op.create_index("ix_predictions_asset_slot", "predictions", ["asset_id", "duration", "slot_start"])

    op.create_table(
        "user_stats",
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("total_predictions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("resolved_predictions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("correct_predictions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("accuracy_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rolling_accuracy_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rolling_sample", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("monthly_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("period_key", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    # ── Rankings ──
    op.create_table(
        "leaderboard_archives",
        sa.Column("period", sa.String(), primary_key=True),
        sa.Column("entry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "leaderboard_entries",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("period", sa.String(), sa.ForeignKey("leaderboard_archives.period"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("total_score", sa.Integer(), nullable=False),
        sa.Column("total_predictions", sa.Integer(), nullable=False),
        sa.Column("correct_predictions", sa.Integer(), nullable=False),
        sa.Column("accuracy_percentage", sa.Float(), nullable=False),
        sa.Column("score_reached_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("period", "user_id", name="uq_leaderboard_entries_period_user"),
        sa.UniqueConstraint("period", "rank", name="uq_leaderboard_entries_period_rank"),
    )
    op.create_index("ix_leaderboard_entries_period", "leaderboard_entries", ["period"])
    op.create_index("ix_leaderboard_entries_user_id", "leaderboard_entries", ["user_id"])

    op.create_table(
        "badges",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("badge_type", sa.String(), nullable=False),
        sa.Column("scope", sa.String(), nullable=False, server_default="lifetime"),
        sa.Column("metadata_jsonb", postgresql.JSONB(), server_default="{}"),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "badge_type", "scope", name="uq_badges_user_type_scope"),
    )
    op.create_index("ix_badges_user_id", "badges", ["user_id"])
    op.create_index("ix_badges_badge_type", "badges", ["badge_type"])


def downgrade() -> None:
    op.drop_table("badges")
    op.drop_table("leaderboard_entries")
    op.drop_table("leaderboard_archives")
    op.drop_table("user_stats")
    op.drop_table("predictions")
