import threading
from dataclasses import replace
from typing import Dict, List, Optional

from slotcast.entities.leaderboard import Leaderboard, LeaderboardEntry
from slotcast.services.interfaces.leaderboard_repository import LeaderboardRepository


class InMemoryLeaderboardRepository(LeaderboardRepository):
    def __init__(self):
        self._lock = threading.Lock()
        self._snapshots: Dict[str, Leaderboard] = {}

    def get_snapshot(self, period: str) -> Optional[Leaderboard]:
        with self._lock:
            snapshot = self._snapshots.get(period)
            return replace(snapshot, entries=list(snapshot.entries)) if snapshot else None

    def save_snapshot(self, leaderboard: Leaderboard) -> bool:
        with self._lock:
            if leaderboard.period in self._snapshots:
                return False
            self._snapshots[leaderboard.period] = replace(
                leaderboard, entries=list(leaderboard.entries), archived=True,
            )
            return True

    def find_entries(self, *, user_id=None, period=None) -> List[LeaderboardEntry]:
        with self._lock:
            snapshots = list(self._snapshots.values())

        entries = [entry for snapshot in snapshots for entry in snapshot.entries]
        if user_id is not None:
            entries = [e for e in entries if e.user_id == user_id]
        if period is not None:
            entries = [e for e in entries if e.period == period]
        return entries

    def list_periods(self) -> List[str]:
        with self._lock:
            return sorted(self._snapshots)

    def clear(self):
        """Forget every archived period (only for testing)."""
        with self._lock:
            self._snapshots.clear()
