"""Slot scheduler: wall-clock instants -> slot windows, lock windows and point schedules.

All boundary math runs on wall-clock time in the schedule's canonical zone,
then converts each boundary to a UTC instant. Slots are half-open
``[start, end)`` so an instant exactly on a boundary belongs to the new slot.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from slotcast.config.schedule import DEFAULT_SCHEDULE, Cycle, DurationSchedule, ScheduleTable
from slotcast.entities.prediction import Duration
from slotcast.entities.slot import LockStatus, Period, SlotListing, SlotWindow
from slotcast.errors import InvalidSlot
from slotcast.utils.timeutil import UTC_MAX, UTC_MIN, ensure_utc

_CYCLE_MONTHS: dict[Cycle, int] = {
    Cycle.MONTH: 1,
    Cycle.QUARTER: 3,
    Cycle.YEAR: 12,
}

_CYCLE_LENGTH: dict[Cycle, timedelta] = {
    Cycle.HOUR: timedelta(hours=1),
    Cycle.DAY: timedelta(days=1),
    Cycle.WEEK: timedelta(weeks=1),
}


def penalty_for(points_if_correct: int) -> int:
    return max(1, points_if_correct // 2)


def format_time_remaining(seconds: float) -> str:
    if seconds <= 0:
        return "Expired"
    total_minutes = int(seconds // 60)
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _add_months(wall: datetime, months: int) -> datetime:
    index = wall.year * 12 + (wall.month - 1) + months
    year, month = divmod(index, 12)
    return wall.replace(year=year, month=month + 1)


class SlotScheduler:
    def __init__(self, table: ScheduleTable = DEFAULT_SCHEDULE):
        self.table = table
        self.zone = ZoneInfo(table.timezone)
        self.lock_window = timedelta(minutes=table.lock_minutes)

    def schedule_for(self, duration: Duration | str) -> DurationSchedule:
        return self.table.for_duration(duration)

    # ── slot windows ──

    def current_slot(self, duration: Duration | str, now: datetime) -> SlotWindow:
        schedule = self.schedule_for(duration)
        instant = ensure_utc(now)
        bounds = self._cycle_bounds(schedule, instant)

        for index in range(schedule.slot_count):
            if bounds[index] <= instant < bounds[index + 1]:
                return self._window(schedule, index + 1, bounds, at=instant)

        # only reachable at the clamped edges of the datetime range
        index = 0 if instant < bounds[0] else self._last_nonempty(bounds)
        return self._window(schedule, index + 1, bounds, at=instant)

    def slot_window(self, duration: Duration | str, slot_number: int, now: datetime) -> SlotWindow:
        """Window for ``slot_number`` within the cycle containing ``now``, priced for a submission at ``now``."""
        schedule = self.schedule_for(duration)
        self._check_range(schedule, slot_number)
        instant = ensure_utc(now)
        bounds = self._cycle_bounds(schedule, instant)
        window = self._window(schedule, slot_number, bounds, at=instant)
        if window.start >= window.end:
            raise InvalidSlot(schedule.duration, slot_number, "slot does not exist in this cycle")
        return window

    def submission_slot(self, duration: Duration | str, slot_number: int, now: datetime) -> SlotWindow:
        """The slot a submission targets; past slots are rejected."""
        instant = ensure_utc(now)
        window = self.slot_window(duration, slot_number, instant)
        if window.end <= instant:
            raise InvalidSlot(window.duration, slot_number, "slot has already ended")
        return window

    def valid_slots(self, duration: Duration | str, now: datetime) -> list[SlotListing]:
        schedule = self.schedule_for(duration)
        instant = ensure_utc(now)
        bounds = self._cycle_bounds(schedule, instant)
        locked = self.is_locked(duration, instant)

        listings = []
        for index in range(schedule.slot_count):
            window = self._window(schedule, index + 1, bounds, at=instant)
            if window.end <= instant or window.start >= window.end:
                continue
            listings.append(
                SlotListing(
                    window=window,
                    is_current=window.contains(instant),
                    is_locked=locked,
                    seconds_until_start=max(0.0, (window.start - instant).total_seconds()),
                )
            )
        return listings

    # ── lock window ──

    def is_locked(self, duration: Duration | str, now: datetime) -> bool:
        if not self.lock_window:
            return False
        instant = ensure_utc(now)
        next_start = self.current_slot(duration, instant).end
        if next_start == UTC_MAX:
            return False
        return next_start - self.lock_window <= instant < next_start

    def lock_status(self, duration: Duration | str, now: datetime) -> LockStatus:
        instant = ensure_utc(now)
        next_start = self.current_slot(duration, instant).end
        return LockStatus(
            duration=Duration(duration),
            is_locked=self.is_locked(duration, instant),
            seconds_until_lock=max(0.0, (next_start - self.lock_window - instant).total_seconds()),
            seconds_until_next_slot=max(0.0, (next_start - instant).total_seconds()),
        )

    # ── points ──

    def points_for_slot(
        self,
        duration: Duration | str,
        slot_number: int,
        submitted_at: datetime | None = None,
        window: SlotWindow | None = None,
    ) -> tuple[int, int]:
        """``(points_if_correct, penalty_if_wrong)`` for a slot.

        With ``submitted_at`` and ``window`` the correct-side value reflects
        intra-slot decay; the penalty always derives from the base value.
        """
        schedule = self.schedule_for(duration)
        self._check_range(schedule, slot_number)
        base = schedule.slot_points[slot_number - 1]
        penalty = penalty_for(base)
        if submitted_at is None or window is None:
            return base, penalty
        return self._decayed(schedule, base, window, ensure_utc(submitted_at)), penalty

    @staticmethod
    def _decayed(schedule: DurationSchedule, base: int, window: SlotWindow, submitted_at: datetime) -> int:
        length = window.length.total_seconds()
        if length <= 0 or submitted_at <= window.start:
            return base
        elapsed_fraction = (submitted_at - window.start).total_seconds() / length

        points = base
        for step in schedule.decay:
            if elapsed_fraction > step.after_fraction:
                points = min(points, step.points)
        return points

    # ── leaderboard periods (calendar months) ──

    def period_containing(self, now: datetime) -> Period:
        wall = self._local_wall(ensure_utc(now))
        start = wall.replace(day=1, hour=0, minute=0, second=0, microsecond=0, fold=0)
        return self._period(start)

    def previous_period(self, now: datetime) -> Period:
        current = self.period_containing(now)
        return self.period_containing(current.start - timedelta(microseconds=1))

    def period_for_key(self, key: str) -> Period:
        try:
            year, month = (int(part) for part in key.split("-"))
            start = datetime(year, month, 1)
        except ValueError as exc:
            raise ValueError(f"invalid period key {key!r}, expected YYYY-MM") from exc
        return self._period(start)

    def time_until_period_end(self, now: datetime) -> float:
        instant = ensure_utc(now)
        return max(0.0, (self.period_containing(instant).end - instant).total_seconds())

    def _period(self, wall_start: datetime) -> Period:
        try:
            wall_end = _add_months(wall_start, 1)
            end = self._to_utc(wall_end)
        except ValueError:
            end = UTC_MAX
        return Period(
            key=f"{wall_start.year:04d}-{wall_start.month:02d}",
            start=self._to_utc(wall_start),
            end=end,
        )

    # ── boundary math ──

    def _cycle_bounds(self, schedule: DurationSchedule, instant: datetime) -> list[datetime]:
        start = self._cycle_start(schedule.cycle, self._local_wall(instant))
        count = schedule.slot_count
        months = _CYCLE_MONTHS.get(schedule.cycle)

        if schedule.cycle == Cycle.HOUR:
            # hours have a fixed length, so split them in absolute time
            origin = self._to_utc(start)
            bounds = []
            for index in range(count + 1):
                try:
                    bounds.append(origin + _CYCLE_LENGTH[Cycle.HOUR] * index / count)
                except OverflowError:
                    bounds.append(UTC_MAX)
            return bounds

        bounds = []
        for index in range(count + 1):
            try:
                if months:
                    wall = _add_months(start, index * months // count)
                else:
                    wall = start + _CYCLE_LENGTH[schedule.cycle] * index / count
            except (OverflowError, ValueError):
                bounds.append(UTC_MAX)
                continue
            bounds.append(self._to_utc(wall))
        return bounds

    @staticmethod
    def _cycle_start(cycle: Cycle, wall: datetime) -> datetime:
        if cycle == Cycle.HOUR:
            # keeps fold so a repeated hour after a clock change gets its own cycle
            return wall.replace(minute=0, second=0, microsecond=0)

        day = wall.replace(hour=0, minute=0, second=0, microsecond=0, fold=0)
        if cycle == Cycle.DAY:
            return day
        if cycle == Cycle.WEEK:
            try:
                return day - timedelta(days=day.weekday())
            except OverflowError:
                return datetime.min
        if cycle == Cycle.MONTH:
            return day.replace(day=1)
        if cycle == Cycle.QUARTER:
            return day.replace(month=3 * ((day.month - 1) // 3) + 1, day=1)
        return day.replace(month=1, day=1)

    def _local_wall(self, instant: datetime) -> datetime:
        try:
            return instant.astimezone(self.zone).replace(tzinfo=None)
        except OverflowError:
            return datetime.min if instant.year < 5000 else datetime.max

    def _to_utc(self, wall: datetime) -> datetime:
        try:
            return wall.replace(tzinfo=self.zone).astimezone(timezone.utc)
        except OverflowError:
            return UTC_MIN if wall.year < 5000 else UTC_MAX

    @staticmethod
    def _last_nonempty(bounds: list[datetime]) -> int:
        for index in range(len(bounds) - 2, -1, -1):
            if bounds[index] < bounds[index + 1]:
                return index
        return 0

    @staticmethod
    def _check_range(schedule: DurationSchedule, slot_number: int) -> None:
        if not 1 <= slot_number <= schedule.slot_count:
            raise InvalidSlot(
                schedule.duration, slot_number, f"expected a slot between 1 and {schedule.slot_count}",
            )

    @classmethod
    def _window(
        cls, schedule: DurationSchedule, slot_number: int, bounds: list[datetime], at: datetime | None = None,
    ) -> SlotWindow:
        base = schedule.slot_points[slot_number - 1]
        window = SlotWindow(
            duration=schedule.duration,
            slot_number=slot_number,
            start=bounds[slot_number - 1],
            end=bounds[slot_number],
            points_if_correct=base,
            penalty_if_wrong=penalty_for(base),
        )
        if at is None:
            return window
        # advertise what a submission at ``at`` would be paid
        return replace(window, points_if_correct=cls._decayed(schedule, base, window, at))
