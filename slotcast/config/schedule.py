"""Versioned duration -> slot -> points schedule table."""
from __future__ import annotations

import json
import logging
import os
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from slotcast.entities.prediction import Duration

logger = logging.getLogger(__name__)


class Cycle(StrEnum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


# slot counts that split each cycle into equal calendar slices
ALLOWED_SLOT_COUNTS: dict[Cycle, tuple[int, ...]] = {
    Cycle.HOUR: (1, 2, 3, 4, 5, 6, 10, 12, 15, 20, 30, 60),
    Cycle.DAY: (1, 2, 3, 4, 6, 8, 12, 24),
    Cycle.WEEK: (1, 7),
    Cycle.MONTH: (1,),
    Cycle.QUARTER: (1, 3),
    Cycle.YEAR: (1, 2, 4, 12),
}


class DecayStep(BaseModel):
    """Submissions made strictly after ``after_fraction`` of the slot has elapsed earn ``points``."""

    after_fraction: float = Field(gt=0, lt=1)
    points: int = Field(ge=1)

    model_config = ConfigDict(frozen=True)


class DurationSchedule(BaseModel):
    duration: Duration
    cycle: Cycle
    slot_points: list[int] = Field(min_length=1, description="Base points per slot number (1-based).")
    decay: list[DecayStep] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def slot_count(self) -> int:
        return len(self.slot_points)

    @model_validator(mode="after")
    def _check_shape(self) -> "DurationSchedule":
        allowed = ALLOWED_SLOT_COUNTS[self.cycle]
        if self.slot_count not in allowed:
            raise ValueError(
                f"{self.duration}: a {self.cycle} cycle cannot be split into {self.slot_count} slots "
                f"(allowed: {allowed})"
            )
        if any(points < 1 for points in self.slot_points):
            raise ValueError(f"{self.duration}: slot points must be positive")

        previous_fraction = 0.0
        previous_points = max(self.slot_points)
        for step in self.decay:
            if step.after_fraction <= previous_fraction:
                raise ValueError(f"{self.duration}: decay steps must have increasing fractions")
            if step.points > previous_points:
                raise ValueError(f"{self.duration}: decay steps must not increase points")
            previous_fraction = step.after_fraction
            previous_points = step.points
        return self


class ScheduleTable(BaseModel):
    version: str = "1"
    timezone: str = "Europe/Berlin"
    lock_minutes: int = Field(default=5, ge=0)
    durations: list[DurationSchedule]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_durations(self) -> "ScheduleTable":
        seen = [schedule.duration for schedule in self.durations]
        if len(seen) != len(set(seen)):
            raise ValueError("each duration may only be scheduled once")
        return self

    def for_duration(self, duration: Duration | str) -> DurationSchedule:
        key = Duration(duration)
        for schedule in self.durations:
            if schedule.duration == key:
                return schedule
        raise KeyError(f"no schedule configured for duration {key}")


DEFAULT_SCHEDULE = ScheduleTable(
    version="2024.1",
    durations=[
        DurationSchedule(
            duration=Duration.SHORT, cycle=Cycle.WEEK, slot_points=[10],
            decay=[DecayStep(after_fraction=0.5, points=3)],
        ),
        DurationSchedule(
            duration=Duration.MEDIUM, cycle=Cycle.MONTH, slot_points=[15],
            decay=[DecayStep(after_fraction=0.5, points=5)],
        ),
        DurationSchedule(
            duration=Duration.LONG, cycle=Cycle.QUARTER, slot_points=[20],
            decay=[DecayStep(after_fraction=0.5, points=7)],
        ),
    ],
)


def load_schedule(path: str | Path | None = None) -> ScheduleTable:
    """Load the schedule table from JSON, falling back to the built-in table."""
    path = path or os.getenv("SLOTCAST_SCHEDULE_PATH")
    if not path:
        return DEFAULT_SCHEDULE

    with open(path, "r", encoding="utf-8") as handle:
        raw = json.load(handle)
    table = ScheduleTable.model_validate(raw)
    logger.info("Loaded schedule table version=%s from %s", table.version, path)
    return table
