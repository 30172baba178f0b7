from abc import ABC, abstractmethod

from slotcast.entities.badge import Badge


class BadgeRepository(ABC):

    @abstractmethod
    def award(self, badge: Badge) -> bool:
        """Insert-if-absent keyed on (user, badge type, scope). True only when a row was written."""

    @abstractmethod
    def find(
        self, *, user_id: str | None = None, scope: str | None = None, badge_type: str | None = None,
    ) -> list[Badge]:
        pass

    @abstractmethod
    def count_by_type(self) -> dict[str, int]:
        pass

    def rollback(self) -> None:
        pass
