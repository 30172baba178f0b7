from abc import ABC, abstractmethod
from datetime import datetime

from slotcast.entities.prediction import Prediction, PredictionResult
from slotcast.entities.slot import Period
from slotcast.entities.stats import UserStats


class PredictionRepository(ABC):
    """Append-only prediction ledger plus the cached per-user stats derived from it."""

    @abstractmethod
    def insert(self, prediction: Prediction, period: Period | None = None) -> None:
        """Persist a new ``active`` prediction and refresh the owner's stats in one transaction.

        Raises ``DuplicateSubmission`` when the uniqueness tuple is already taken.
        """

    @abstractmethod
    def get(self, prediction_id: str) -> Prediction | None:
        pass

    @abstractmethod
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
        pass

    @abstractmethod
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
        """Conditionally move an ``active`` prediction to ``evaluated``.

        The status transition and the stats refresh commit together. Raises
        ``StaleTransition``, without writing anything, when the prediction is no
        longer active.
        """

    @abstractmethod
    def fetch_user_stats(self, user_id: str) -> UserStats | None:
        pass

    def rollback(self) -> None:
        pass
