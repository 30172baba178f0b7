import threading
from collections import Counter
from dataclasses import replace
from typing import Dict, List

from slotcast.entities.badge import Badge
from slotcast.services.interfaces.badge_repository import BadgeRepository


class InMemoryBadgeRepository(BadgeRepository):
    def __init__(self):
        self._lock = threading.Lock()
        self._storage: Dict[tuple, Badge] = {}

    def award(self, badge: Badge) -> bool:
        with self._lock:
            if badge.key in self._storage:
                return False
            self._storage[badge.key] = replace(badge, metadata=dict(badge.metadata))
            return True

    def find(self, *, user_id=None, scope=None, badge_type=None) -> List[Badge]:
        with self._lock:
            results = list(self._storage.values())

        if user_id is not None:
            results = [b for b in results if b.user_id == user_id]
        if scope is not None:
            results = [b for b in results if b.scope == scope]
        if badge_type is not None:
            results = [b for b in results if b.badge_type == badge_type]
        return results

    def count_by_type(self) -> Dict[str, int]:
        with self._lock:
            return dict(Counter(badge.badge_type for badge in self._storage.values()))

    def clear(self):
        """Clear all stored badges (only for testing)."""
        with self._lock:
            self._storage.clear()
