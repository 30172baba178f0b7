"""Archived leaderboards and awarded badges. Rows here are written once."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlmodel import Field, SQLModel

from slotcast.db.tables.common import JSONType, utc_now


class LeaderboardArchiveRow(SQLModel, table=True):
    __tablename__ = "leaderboard_archives"

    period: str = Field(primary_key=True)
    entry_count: int = Field(default=0)
    archived_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class LeaderboardEntryRow(SQLModel, table=True):
    __tablename__ = "leaderboard_entries"
    __table_args__ = (
        UniqueConstraint("period", "user_id", name="uq_leaderboard_entries_period_user"),
        UniqueConstraint("period", "rank", name="uq_leaderboard_entries_period_rank"),
    )

    id: str = Field(primary_key=True)
    period: str = Field(
        sa_column=Column(String, ForeignKey("leaderboard_archives.period"), nullable=False, index=True),
    )
    user_id: str = Field(index=True)
    rank: int
    total_score: int
    total_predictions: int
    correct_predictions: int
    accuracy_percentage: float
    score_reached_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class BadgeRow(SQLModel, table=True):
    __tablename__ = "badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_type", "scope", name="uq_badges_user_type_scope"),
    )

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    badge_type: str = Field(index=True)
    scope: str = Field(default="lifetime")
    metadata_jsonb: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSONType),
    )
    awarded_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False),
    )
