import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from slotcast.entities.prediction import Prediction, PredictionResult, PredictionStatus
from slotcast.entities.slot import Period
from slotcast.entities.stats import UserStats
from slotcast.errors import DuplicateSubmission, PredictionNotFound, StaleTransition
from slotcast.services.interfaces.prediction_repository import PredictionRepository


class InMemoryPredictionRepository(PredictionRepository):
    def __init__(self):
        # guards the ledger, the uniqueness index and the stats cache together
        self._lock = threading.Lock()
        self._storage: Dict[str, Prediction] = {}
        self._keys: Dict[tuple, str] = {}
        self._stats: Dict[str, UserStats] = {}

    def insert(self, prediction: Prediction, period: Optional[Period] = None) -> None:
        with self._lock:
            if prediction.uniqueness_key in self._keys or prediction.id in self._storage:
                raise DuplicateSubmission(prediction.id)
            self._storage[prediction.id] = replace(prediction)
            self._keys[prediction.uniqueness_key] = prediction.id
            self._refresh_stats(prediction.user_id, period, prediction.created_at)

    def get(self, prediction_id: str) -> Optional[Prediction]:
        with self._lock:
            prediction = self._storage.get(prediction_id)
            return replace(prediction) if prediction else None

    def find(
        self,
        *,
        user_id=None,
        asset_id=None,
        duration=None,
        status=None,
        slot_start=None,
        expires_before=None,
        created_since=None,
        created_until=None,
        limit=None,
    ) -> List[Prediction]:
        with self._lock:
            results = list(self._storage.values())

        if user_id is not None:
            results = [p for p in results if p.user_id == user_id]
        if asset_id is not None:
            results = [p for p in results if p.asset_id == asset_id]
        if duration is not None:
            results = [p for p in results if p.duration == duration]
        if status is not None:
            statuses = status if isinstance(status, list) else [status]
            results = [p for p in results if p.status in statuses]
        if slot_start is not None:
            results = [p for p in results if p.slot_start == slot_start]
        if expires_before is not None:
            results = [p for p in results if p.expires_at <= expires_before]
        if created_since is not None:
            results = [p for p in results if p.created_at >= created_since]
        if created_until is not None:
            results = [p for p in results if p.created_at < created_until]

        results.sort(key=lambda p: (p.created_at, p.id))
        if limit is not None:
            results = results[:limit]
        return [replace(p) for p in results]

    def mark_evaluated(
        self,
        prediction_id: str,
        *,
        result: PredictionResult,
        points_awarded: int,
        price_end: float,
        evaluated_at: datetime,
        period: Optional[Period] = None,
    ) -> None:
        with self._lock:
            current = self._storage.get(prediction_id)
            if current is None:
                raise PredictionNotFound(prediction_id)
            if current.status != PredictionStatus.ACTIVE:
                raise StaleTransition(prediction_id, current.status)
            self._storage[prediction_id] = replace(
                current,
                status=PredictionStatus.EVALUATED,
                result=result,
                points_awarded=points_awarded,
                price_end=price_end,
                evaluated_at=evaluated_at,
            )
            self._refresh_stats(current.user_id, period, evaluated_at)

    def fetch_user_stats(self, user_id: str) -> Optional[UserStats]:
        with self._lock:
            stats = self._stats.get(user_id)
            return replace(stats) if stats else None

    def clear(self):
        """Drop every prediction and cached stat (only for testing)."""
        with self._lock:
            self._storage.clear()
            self._keys.clear()
            self._stats.clear()

    def _refresh_stats(self, user_id: str, period: Optional[Period], now: datetime) -> None:
        self._stats[user_id] = UserStats.derive(user_id, self._storage.values(), period=period, now=now)
