from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from slotcast.entities.stats import UserStats

LIFETIME_SCOPE = "lifetime"


def badge_id(user_id: str, badge_type: str, scope: str) -> str:
    return f"BDG_{user_id}_{badge_type}_{scope}"


@dataclass
class Badge:
    id: str
    user_id: str
    badge_type: str
    scope: str = LIFETIME_SCOPE                                   # "lifetime" or a period key (YYYY-MM)
    metadata: dict[str, Any] = field(default_factory=dict)
    awarded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.user_id, self.badge_type, self.scope)


@dataclass(frozen=True)
class BadgeRule:
    """A named predicate over ``UserStats``; rules are data, evaluated uniformly."""
    badge_type: str
    name: str
    description: str
    predicate: Callable[[UserStats], bool]
    metadata: dict[str, Any] = field(default_factory=dict)
