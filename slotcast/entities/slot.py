from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from slotcast.entities.prediction import Duration


@dataclass(frozen=True)
class SlotWindow:
    """A half-open ``[start, end)`` bucket, anchored to wall-clock boundaries in the canonical zone."""
    duration: Duration
    slot_number: int
    start: datetime
    end: datetime
    points_if_correct: int  # after decay, for a submission at the instant the window was built for
    penalty_if_wrong: int

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    @property
    def length(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class SlotListing:
    window: SlotWindow
    is_current: bool
    is_locked: bool
    seconds_until_start: float


@dataclass(frozen=True)
class LockStatus:
    duration: Duration
    is_locked: bool
    seconds_until_lock: float
    seconds_until_next_slot: float


@dataclass(frozen=True)
class Period:
    """Leaderboard accounting window; ``key`` is ``YYYY-MM``."""
    key: str
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def is_closed(self, now: datetime) -> bool:
        return now >= self.end
