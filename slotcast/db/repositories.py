from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from slotcast.db.tables import (
    BadgeRow, LeaderboardArchiveRow, LeaderboardEntryRow, PredictionRow, UserStatsRow,
)
from slotcast.entities.badge import Badge
from slotcast.entities.leaderboard import Leaderboard, LeaderboardEntry
from slotcast.entities.prediction import (
    Direction, Duration, Prediction, PredictionResult, PredictionStatus,
)
from slotcast.entities.slot import Period
from slotcast.entities.stats import UserStats
from slotcast.errors import DuplicateSubmission, PredictionNotFound, StaleTransition
from slotcast.services.interfaces.badge_repository import BadgeRepository
from slotcast.services.interfaces.leaderboard_repository import LeaderboardRepository
from slotcast.services.interfaces.prediction_repository import PredictionRepository
from slotcast.utils.timeutil import ensure_utc


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands timestamps back without tzinfo; everything is stored as UTC
    return ensure_utc(value) if value is not None else None


class DBPredictionRepository(PredictionRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def insert(self, prediction: Prediction, period: Period | None = None) -> None:
        # ids derive from the uniqueness tuple; the constraint still arbitrates concurrent writers
        if self._session.get(PredictionRow, prediction.id) is not None:
            raise DuplicateSubmission(prediction.id)

        self._session.add(self._domain_to_row(prediction))
        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            raise DuplicateSubmission(prediction.id) from exc

        self._write_stats(prediction.user_id, period, prediction.created_at)
        self._session.commit()

    def get(self, prediction_id: str) -> Prediction | None:
        row = self._session.get(PredictionRow, prediction_id, populate_existing=True)
        return self._row_to_domain(row) if row else None

    def find(
        self,
        *,
        user_id: str | None = None,
        asset_id: str | None = None,
        duration: str | None = None,
        status: str | list[str] | None = None,
        slot_start: datetime | None = None,
        expires_before: datetime | None = None,
        created_since: datetime | None = None,
        created_until: datetime | None = None,
        limit: int | None = None,
    ) -> list[Prediction]:
        stmt = select(PredictionRow).order_by(PredictionRow.created_at.asc(), PredictionRow.id.asc())
        if user_id is not None:
            stmt = stmt.where(PredictionRow.user_id == user_id)
        if asset_id is not None:
            stmt = stmt.where(PredictionRow.asset_id == asset_id)
        if duration is not None:
            stmt = stmt.where(PredictionRow.duration == str(duration))
        if status is not None:
            statuses = status if isinstance(status, list) else [status]
            stmt = stmt.where(PredictionRow.status.in_([str(s) for s in statuses]))
        if slot_start is not None:
            stmt = stmt.where(PredictionRow.slot_start == ensure_utc(slot_start))
        if expires_before is not None:
            stmt = stmt.where(PredictionRow.expires_at <= ensure_utc(expires_before))
        if created_since is not None:
            stmt = stmt.where(PredictionRow.created_at >= ensure_utc(created_since))
        if created_until is not None:
            stmt = stmt.where(PredictionRow.created_at < ensure_utc(created_until))
        if limit is not None:
            stmt = stmt.limit(limit)

        rows = self._session.exec(stmt.execution_options(populate_existing=True)).all()
        return [self._row_to_domain(row) for row in rows]

    def mark_evaluated(
        self,
        prediction_id: str,
        *,
        result: PredictionResult,
        points_awarded: int,
        price_end: float,
        evaluated_at: datetime,
        period: Period | None = None,
    ) -> None:
        stmt = (
            update(PredictionRow)
            .where(PredictionRow.id == prediction_id)
            .where(PredictionRow.status == str(PredictionStatus.ACTIVE))
            .values(
                status=str(PredictionStatus.EVALUATED),
                result=str(result),
                points_awarded=points_awarded,
                price_end=price_end,
                evaluated_at=ensure_utc(evaluated_at),
            )
        )
        changed = self._session.exec(stmt).rowcount
        if changed != 1:
            self._session.rollback()
            row = self._session.get(PredictionRow, prediction_id, populate_existing=True)
            if row is None:
                raise PredictionNotFound(prediction_id)
            raise StaleTransition(prediction_id, row.status)

        row = self._session.get(PredictionRow, prediction_id, populate_existing=True)
        self._write_stats(row.user_id, period, evaluated_at)
        self._session.commit()

    def fetch_user_stats(self, user_id: str) -> UserStats | None:
        row = self._session.get(UserStatsRow, user_id, populate_existing=True)
        return self._stats_row_to_domain(row) if row else None

    def _write_stats(self, user_id: str, period: Period | None, now: datetime) -> None:
        """Re-derive the user's stats inside the caller's transaction."""
        existing = self._session.exec(
            select(UserStatsRow)
            .where(UserStatsRow.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()

        rows = self._session.exec(
            select(PredictionRow)
            .where(PredictionRow.user_id == user_id)
            .execution_options(populate_existing=True)
        ).all()
        stats = UserStats.derive(
            user_id, [self._row_to_domain(row) for row in rows], period=period, now=ensure_utc(now),
        )

        if existing is None:
            try:
                with self._session.begin_nested():
                    self._session.add(self._stats_domain_to_row(stats))
                return
            except IntegrityError:
                # a concurrent first write for this user created the row
                existing = self._session.get(UserStatsRow, user_id, populate_existing=True)

        fresh = self._stats_domain_to_row(stats)
        for name in UserStatsRow.model_fields:
            if name != "user_id":
                setattr(existing, name, getattr(fresh, name))

    @staticmethod
    def _row_to_domain(row: PredictionRow) -> Prediction:
        return Prediction(
            id=row.id,
            user_id=row.user_id,
            asset_id=row.asset_id,
            direction=Direction(row.direction),
            duration=Duration(row.duration),
            slot_number=row.slot_number,
            slot_start=_as_utc(row.slot_start),
            slot_end=_as_utc(row.slot_end),
            price_start=row.price_start,
            created_at=_as_utc(row.created_at),
            expires_at=_as_utc(row.expires_at),
            status=PredictionStatus(row.status),
            result=PredictionResult(row.result),
            points_awarded=row.points_awarded,
            price_end=row.price_end,
            evaluated_at=_as_utc(row.evaluated_at),
            points_if_correct=row.points_if_correct,
            penalty_if_wrong=row.penalty_if_wrong,
        )

    @staticmethod
    def _domain_to_row(prediction: Prediction) -> PredictionRow:
        return PredictionRow(
            id=prediction.id,
            user_id=prediction.user_id,
            asset_id=prediction.asset_id,
            direction=str(prediction.direction),
            duration=str(prediction.duration),
            slot_number=prediction.slot_number,
            slot_start=ensure_utc(prediction.slot_start),
            slot_end=ensure_utc(prediction.slot_end),
            status=str(prediction.status),
            result=str(prediction.result),
            points_awarded=prediction.points_awarded,
            price_start=prediction.price_start,
            price_end=prediction.price_end,
            points_if_correct=prediction.points_if_correct,
            penalty_if_wrong=prediction.penalty_if_wrong,
            created_at=ensure_utc(prediction.created_at),
            expires_at=ensure_utc(prediction.expires_at),
            evaluated_at=_as_utc(prediction.evaluated_at),
        )

    @staticmethod
    def _stats_row_to_domain(row: UserStatsRow) -> UserStats:
        return UserStats(
            user_id=row.user_id,
            total_predictions=row.total_predictions,
            resolved_predictions=row.resolved_predictions,
            correct_predictions=row.correct_predictions,
            current_streak=row.current_streak,
            best_streak=row.best_streak,
            accuracy_percentage=row.accuracy_percentage,
            rolling_accuracy_percentage=row.rolling_accuracy_percentage,
            rolling_sample=row.rolling_sample,
            monthly_score=row.monthly_score,
            total_score=row.total_score,
            period_key=row.period_key,
            updated_at=_as_utc(row.updated_at),
        )

    @staticmethod
    def _stats_domain_to_row(stats: UserStats) -> UserStatsRow:
        return UserStatsRow(
            user_id=stats.user_id,
            total_predictions=stats.total_predictions,
            resolved_predictions=stats.resolved_predictions,
            correct_predictions=stats.correct_predictions,
            current_streak=stats.current_streak,
            best_streak=stats.best_streak,
            accuracy_percentage=stats.accuracy_percentage,
            rolling_accuracy_percentage=stats.rolling_accuracy_percentage,
            rolling_sample=stats.rolling_sample,
            monthly_score=stats.monthly_score,
            total_score=stats.total_score,
            period_key=stats.period_key,
            updated_at=ensure_utc(stats.updated_at),
        )


class DBLeaderboardRepository(LeaderboardRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def get_snapshot(self, period: str) -> Leaderboard | None:
        archive = self._session.get(LeaderboardArchiveRow, period)
        if archive is None:
            return None
        rows = self._session.exec(
            select(LeaderboardEntryRow)
            .where(LeaderboardEntryRow.period == period)
            .order_by(LeaderboardEntryRow.rank.asc())
        ).all()
        return Leaderboard(
            period=period,
            entries=[self._row_to_domain(row) for row in rows],
            archived=True,
            generated_at=_as_utc(archive.archived_at),
        )

    def save_snapshot(self, leaderboard: Leaderboard) -> bool:
        if self._session.get(LeaderboardArchiveRow, leaderboard.period) is not None:
            return False

        self._session.add(
            LeaderboardArchiveRow(
                period=leaderboard.period,
                entry_count=len(leaderboard.entries),
                archived_at=ensure_utc(leaderboard.generated_at),
            )
        )
        # archive row first so the entries' foreign key resolves
        try:
            self._session.flush()
            self._session.add_all(self._domain_to_row(entry) for entry in leaderboard.entries)
            self._session.commit()
        except IntegrityError:
            self._session.rollback()
            return False
        return True

    def find_entries(self, *, user_id: str | None = None, period: str | None = None) -> list[LeaderboardEntry]:
        stmt = select(LeaderboardEntryRow).order_by(
            LeaderboardEntryRow.period.asc(), LeaderboardEntryRow.rank.asc(),
        )
        if user_id is not None:
            stmt = stmt.where(LeaderboardEntryRow.user_id == user_id)
        if period is not None:
            stmt = stmt.where(LeaderboardEntryRow.period == period)
        return [self._row_to_domain(row) for row in self._session.exec(stmt).all()]

    def list_periods(self) -> list[str]:
        stmt = select(LeaderboardArchiveRow.period).order_by(LeaderboardArchiveRow.period.asc())
        return list(self._session.exec(stmt).all())

    @staticmethod
    def _row_to_domain(row: LeaderboardEntryRow) -> LeaderboardEntry:
        return LeaderboardEntry(
            period=row.period,
            user_id=row.user_id,
            rank=row.rank,
            total_score=row.total_score,
            total_predictions=row.total_predictions,
            correct_predictions=row.correct_predictions,
            accuracy_percentage=row.accuracy_percentage,
            score_reached_at=_as_utc(row.score_reached_at),
        )

    @staticmethod
    def _domain_to_row(entry: LeaderboardEntry) -> LeaderboardEntryRow:
        return LeaderboardEntryRow(
            id=f"LBE_{entry.period}_{entry.user_id}",
            period=entry.period,
            user_id=entry.user_id,
            rank=entry.rank,
            total_score=entry.total_score,
            total_predictions=entry.total_predictions,
            correct_predictions=entry.correct_predictions,
            accuracy_percentage=entry.accuracy_percentage,
            score_reached_at=_as_utc(entry.score_reached_at),
        )


class DBBadgeRepository(BadgeRepository):
    def __init__(self, session: Session):
        self._session = session

    def rollback(self) -> None:
        self._session.rollback()

    def award(self, badge: Badge) -> bool:
        existing = self._session.exec(
            select(BadgeRow)
            .where(BadgeRow.user_id == badge.user_id)
            .where(BadgeRow.badge_type == badge.badge_type)
            .where(BadgeRow.scope == badge.scope)
        ).first()
        if existing is not None:
            return False

        self._session.add(self._domain_to_row(badge))
        try:
            self._session.commit()
        except IntegrityError:
            self._session.rollback()
            return False
        return True

    def find(
        self, *, user_id: str | None = None, scope: str | None = None, badge_type: str | None = None,
    ) -> list[Badge]:
        stmt = select(BadgeRow).order_by(BadgeRow.awarded_at.asc(), BadgeRow.id.asc())
        if user_id is not None:
            stmt = stmt.where(BadgeRow.user_id == user_id)
        if scope is not None:
            stmt = stmt.where(BadgeRow.scope == scope)
        if badge_type is not None:
            stmt = stmt.where(BadgeRow.badge_type == badge_type)
        return [self._row_to_domain(row) for row in self._session.exec(stmt).all()]

    def count_by_type(self) -> dict[str, int]:
        stmt = select(BadgeRow.badge_type, func.count()).group_by(BadgeRow.badge_type)
        return {badge_type: count for badge_type, count in self._session.exec(stmt).all()}

    @staticmethod
    def _row_to_domain(row: BadgeRow) -> Badge:
        return Badge(
            id=row.id,
            user_id=row.user_id,
            badge_type=row.badge_type,
            scope=row.scope,
            metadata=dict(row.metadata_jsonb or {}),
            awarded_at=_as_utc(row.awarded_at),
        )

    @staticmethod
    def _domain_to_row(badge: Badge) -> BadgeRow:
        metadata: dict[str, Any] = dict(badge.metadata)
        return BadgeRow(
            id=badge.id,
            user_id=badge.user_id,
            badge_type=badge.badge_type,
            scope=badge.scope,
            metadata_jsonb=metadata,
            awarded_at=ensure_utc(badge.awarded_at),
        )
