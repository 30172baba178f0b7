from abc import ABC, abstractmethod

from slotcast.entities.leaderboard import Leaderboard, LeaderboardEntry


class LeaderboardRepository(ABC):
    """Immutable archive of closed-period rankings."""

    @abstractmethod
    def get_snapshot(self, period: str) -> Leaderboard | None:
        pass

    @abstractmethod
    def save_snapshot(self, leaderboard: Leaderboard) -> bool:
        """Write every entry of a closed period at once; False if the period is already archived."""

    @abstractmethod
    def find_entries(self, *, user_id: str | None = None, period: str | None = None) -> list[LeaderboardEntry]:
        pass

    @abstractmethod
    def list_periods(self) -> list[str]:
        pass

    def rollback(self) -> None:
        pass
