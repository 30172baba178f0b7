"""Prediction ledger and the stats cache derived from it."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from slotcast.db.tables.common import utc_now


class PredictionRow(SQLModel, table=True):
    __tablename__ = "predictions"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "asset_id", "duration", "slot_number", "slot_start",
            name="uq_predictions_user_slot",
        ),
        Index("ix_predictions_status_expires_at", "status", "expires_at"),
        Index("ix_predictions_asset_slot", "asset_id", "duration", "slot_start"),
    )

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    asset_id: str
    direction: str
    duration: str
    slot_number: int
    slot_start: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    slot_end: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))

    status: str = Field(default="active")
    result: str = Field(default="pending")
    points_awarded: int = Field(default=0)
    price_start: float
    price_end: float | None = Field(default=None)
    points_if_correct: int | None = Field(default=None)
    penalty_if_wrong: int | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    evaluated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class UserStatsRow(SQLModel, table=True):
    __tablename__ = "user_stats"

    user_id: str = Field(primary_key=True)
    total_predictions: int = Field(default=0)
    resolved_predictions: int = Field(default=0)
    correct_predictions: int = Field(default=0)
    current_streak: int = Field(default=0)
    best_streak: int = Field(default=0)
    accuracy_percentage: float = Field(default=0.0)
    rolling_accuracy_percentage: float = Field(default=0.0)
    rolling_sample: int = Field(default=0)
    monthly_score: int = Field(default=0)
    total_score: int = Field(default=0)
    period_key: str | None = Field(default=None)
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False),
    )
