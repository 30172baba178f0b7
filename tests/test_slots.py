from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from slotcast.config.schedule import Cycle, DecayStep, DurationSchedule, ScheduleTable
from slotcast.entities.prediction import Duration
from slotcast.errors import InvalidSlot
from slotcast.services.slots import SlotScheduler, format_time_remaining, penalty_for


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _quarter_day_schedule() -> ScheduleTable:
    return ScheduleTable(
        version="test",
        durations=[
            DurationSchedule(duration=Duration.SHORT, cycle=Cycle.DAY, slot_points=[40, 30, 20, 10]),
            DurationSchedule(duration=Duration.MEDIUM, cycle=Cycle.HOUR, slot_points=[8, 6, 4, 2]),
        ],
    )


class TestCurrentSlot(unittest.TestCase):
    def setUp(self):
        self.scheduler = SlotScheduler()

    def test_short_slot_is_the_berlin_calendar_week(self):
        window = self.scheduler.current_slot(Duration.SHORT, _utc(2024, 3, 13, 12))

        self.assertEqual(window.slot_number, 1)
        # Monday 00:00 CET
        self.assertEqual(window.start, _utc(2024, 3, 10, 23))
        self.assertEqual(window.end, _utc(2024, 3, 17, 23))
        self.assertEqual(window.points_if_correct, 10)
        self.assertEqual(window.penalty_if_wrong, 5)

    def test_instants_in_the_same_slot_share_the_window(self):
        first = self.scheduler.current_slot(Duration.MEDIUM, _utc(2024, 3, 1, 0, 0, 1))
        second = self.scheduler.current_slot(Duration.MEDIUM, _utc(2024, 3, 31, 21, 59, 59))
        self.assertEqual((first.slot_number, first.start, first.end), (second.slot_number, second.start, second.end))

    def test_current_slot_advertises_the_decayed_payout(self):
        # Friday of the Berlin week, past the half-way decay step
        window = self.scheduler.current_slot(Duration.SHORT, _utc(2024, 5, 17, 12))
        self.assertEqual(window.points_if_correct, 3)
        self.assertEqual(window.penalty_if_wrong, 5)

    def test_valid_slots_advertise_the_decayed_payout(self):
        [listing] = self.scheduler.valid_slots(Duration.SHORT, _utc(2024, 5, 17, 12))
        self.assertEqual(listing.window.points_if_correct, 3)

        [early] = self.scheduler.valid_slots(Duration.SHORT, _utc(2024, 5, 14, 12))
        self.assertEqual(early.window.points_if_correct, 10)

    def test_boundary_instant_belongs_to_the_new_slot(self):
        boundary = _utc(2024, 3, 17, 23)
        before = self.scheduler.current_slot(Duration.SHORT, boundary - timedelta(microseconds=1))
        at = self.scheduler.current_slot(Duration.SHORT, boundary)

        self.assertEqual(before.end, boundary)
        self.assertEqual(at.start, boundary)
        self.assertFalse(before.contains(boundary))
        self.assertTrue(at.contains(boundary))

    def test_naive_datetimes_are_read_as_utc(self):
        aware = self.scheduler.current_slot(Duration.SHORT, _utc(2024, 3, 13, 12))
        naive = self.scheduler.current_slot(Duration.SHORT, datetime(2024, 3, 13, 12))
        self.assertEqual(aware, naive)

    def test_same_result_regardless_of_caller_offset(self):
        tokyo = timezone(timedelta(hours=9))
        local = self.scheduler.current_slot(Duration.LONG, datetime(2024, 2, 1, 21, tzinfo=tokyo))
        utc = self.scheduler.current_slot(Duration.LONG, _utc(2024, 2, 1, 12))
        self.assertEqual(local, utc)

    def test_quarter_slot(self):
        window = self.scheduler.current_slot(Duration.LONG, _utc(2024, 2, 15))
        self.assertEqual(window.start, _utc(2023, 12, 31, 23))
        self.assertEqual(window.end, _utc(2024, 3, 31, 22))
        self.assertEqual(window.points_if_correct, 20)
        self.assertEqual(window.penalty_if_wrong, 10)


class TestDaylightSaving(unittest.TestCase):
    def setUp(self):
        self.scheduler = SlotScheduler()

    def test_month_across_spring_forward_is_one_hour_short(self):
        window = self.scheduler.current_slot(Duration.MEDIUM, _utc(2024, 3, 20))
        self.assertEqual(window.length, timedelta(days=31) - timedelta(hours=1))

    def test_week_across_fall_back_is_one_hour_long(self):
        window = self.scheduler.current_slot(Duration.SHORT, _utc(2024, 10, 24))
        self.assertEqual(window.start, _utc(2024, 10, 20, 22))
        self.assertEqual(window.end, _utc(2024, 10, 27, 23))
        self.assertEqual(window.length, timedelta(days=7, hours=1))

    def test_repeated_hour_gets_its_own_slots(self):
        scheduler = SlotScheduler(_quarter_day_schedule())
        # 02:00-03:00 CEST then 02:00-03:00 CET on 2024-10-27
        first = scheduler.current_slot(Duration.MEDIUM, _utc(2024, 10, 27, 0, 20))
        second = scheduler.current_slot(Duration.MEDIUM, _utc(2024, 10, 27, 1, 20))

        self.assertEqual(first.start, _utc(2024, 10, 27, 0, 15))
        self.assertEqual(second.start, _utc(2024, 10, 27, 1, 15))
        self.assertEqual(first.length, timedelta(minutes=15))
        self.assertEqual(second.length, timedelta(minutes=15))

    def test_slots_never_overlap_across_a_day(self):
        scheduler = SlotScheduler(_quarter_day_schedule())
        instant = _utc(2024, 10, 26, 22)
        previous = None
        for _ in range(30 * 24):
            window = scheduler.current_slot(Duration.MEDIUM, instant)
            self.assertLess(window.start, window.end)
            self.assertTrue(window.contains(instant))
            if previous is not None and previous != window:
                self.assertEqual(previous.end, window.start)
            previous = window
            instant += timedelta(minutes=5)


class TestExtremeInstants(unittest.TestCase):
    def setUp(self):
        self.scheduler = SlotScheduler()

    def test_far_past_instant_is_clamped(self):
        instant = _utc(1, 1, 1, 12)
        for duration in Duration:
            window = self.scheduler.current_slot(duration, instant)
            self.assertTrue(window.contains(instant))

    def test_far_future_instant_is_clamped(self):
        instant = _utc(9999, 12, 31, 12)
        for duration in Duration:
            window = self.scheduler.current_slot(duration, instant)
            self.assertTrue(window.contains(instant))
            self.assertFalse(self.scheduler.is_locked(duration, instant))


class TestSlotWindowAndValidSlots(unittest.TestCase):
    def setUp(self):
        self.scheduler = SlotScheduler(_quarter_day_schedule())
        # 13:30 Berlin, third quarter of the day
        self.now = _utc(2024, 3, 13, 12, 30)

    def test_current_slot_number(self):
        window = self.scheduler.current_slot(Duration.SHORT, self.now)
        self.assertEqual(window.slot_number, 3)
        self.assertEqual(window.start, _utc(2024, 3, 13, 11))
        self.assertEqual(window.end, _utc(2024, 3, 13, 17))
        self.assertEqual(window.points_if_correct, 20)

    def test_valid_slots_skip_ended_slots(self):
        listings = self.scheduler.valid_slots(Duration.SHORT, self.now)

        self.assertEqual([l.window.slot_number for l in listings], [3, 4])
        self.assertTrue(listings[0].is_current)
        self.assertEqual(listings[0].seconds_until_start, 0.0)
        self.assertFalse(listings[1].is_current)
        self.assertEqual(listings[1].seconds_until_start, 4.5 * 3600)

    def test_submission_to_ended_slot_is_rejected(self):
        with self.assertRaises(InvalidSlot) as ctx:
            self.scheduler.submission_slot(Duration.SHORT, 1, self.now)
        self.assertEqual(ctx.exception.code, "invalid_slot")

    def test_slot_number_out_of_range_is_rejected(self):
        for slot_number in (0, 5, -1):
            with self.assertRaises(InvalidSlot):
                self.scheduler.slot_window(Duration.SHORT, slot_number, self.now)

    def test_future_slot_in_the_cycle_is_accepted(self):
        window = self.scheduler.submission_slot(Duration.SHORT, 4, self.now)
        self.assertEqual(window.start, _utc(2024, 3, 13, 17))
        self.assertEqual(window.end, _utc(2024, 3, 13, 23))


class TestLockWindow(unittest.TestCase):
    def setUp(self):
        self.scheduler = SlotScheduler()
        self.next_start = _utc(2024, 3, 17, 23)

    def test_last_minutes_before_the_next_slot_are_locked(self):
        self.assertTrue(self.scheduler.is_locked(Duration.SHORT, self.next_start - timedelta(minutes=4)))
        self.assertTrue(self.scheduler.is_locked(Duration.SHORT, self.next_start - timedelta(minutes=5)))

    def test_outside_the_lock_window(self):
        self.assertFalse(self.scheduler.is_locked(Duration.SHORT, self.next_start - timedelta(minutes=5, seconds=1)))
        self.assertFalse(self.scheduler.is_locked(Duration.SHORT, self.next_start))

    def test_lock_status_reports_remaining_time(self):
        status = self.scheduler.lock_status(Duration.SHORT, self.next_start - timedelta(minutes=4))
        self.assertTrue(status.is_locked)
        self.assertEqual(status.seconds_until_next_slot, 240.0)
        self.assertEqual(status.seconds_until_lock, 0.0)

    def test_zero_lock_minutes_disables_the_lock(self):
        table = ScheduleTable(
            lock_minutes=0,
            durations=[DurationSchedule(duration=Duration.SHORT, cycle=Cycle.WEEK, slot_points=[10])],
        )
        scheduler = SlotScheduler(table)
        self.assertFalse(scheduler.is_locked(Duration.SHORT, self.next_start - timedelta(seconds=1)))


class TestPoints(unittest.TestCase):
    def setUp(self):
        self.scheduler = SlotScheduler()

    def test_penalty_is_half_the_base_points_and_at_least_one(self):
        self.assertEqual(penalty_for(40), 20)
        self.assertEqual(penalty_for(15), 7)
        self.assertEqual(penalty_for(1), 1)

    def test_points_without_submission_time_are_the_base_points(self):
        self.assertEqual(self.scheduler.points_for_slot(Duration.MEDIUM, 1), (15, 7))

    def test_late_submission_decays(self):
        window = self.scheduler.current_slot(Duration.SHORT, _utc(2024, 3, 13))
        early = window.start + timedelta(days=1)
        late = window.start + timedelta(days=5)

        self.assertEqual(self.scheduler.points_for_slot(Duration.SHORT, 1, early, window), (10, 5))
        self.assertEqual(self.scheduler.points_for_slot(Duration.SHORT, 1, late, window), (3, 5))

    def test_advertised_payout_matches_the_scored_payout(self):
        for hours in (1, 80, 90, 160):
            now = _utc(2024, 5, 12, 22) + timedelta(hours=hours)
            window = self.scheduler.current_slot(Duration.SHORT, now)
            self.assertEqual(
                (window.points_if_correct, window.penalty_if_wrong),
                self.scheduler.points_for_slot(Duration.SHORT, 1, now, window),
            )

    def test_future_slots_advertise_base_points(self):
        scheduler = SlotScheduler(
            ScheduleTable(
                durations=[
                    DurationSchedule(
                        duration=Duration.SHORT, cycle=Cycle.DAY, slot_points=[40, 30, 20, 10],
                        decay=[DecayStep(after_fraction=0.5, points=5)],
                    ),
                ],
            )
        )
        # 13:30 Berlin: slot 3 is a quarter through, slot 4 has not started
        listings = scheduler.valid_slots(Duration.SHORT, _utc(2024, 3, 13, 12, 30))
        self.assertEqual([l.window.points_if_correct for l in listings], [20, 10])

        late = scheduler.submission_slot(Duration.SHORT, 3, _utc(2024, 3, 13, 15))
        self.assertEqual(late.points_if_correct, 5)

    def test_exactly_half_way_keeps_full_points(self):
        window = self.scheduler.current_slot(Duration.SHORT, _utc(2024, 3, 13))
        half = window.start + window.length / 2
        self.assertEqual(self.scheduler.points_for_slot(Duration.SHORT, 1, half, window)[0], 10)


class TestScheduleValidation(unittest.TestCase):
    def test_slot_count_must_split_the_cycle(self):
        with self.assertRaises(ValueError):
            DurationSchedule(duration=Duration.SHORT, cycle=Cycle.DAY, slot_points=[1, 2, 3, 4, 5])

    def test_decay_must_not_increase_points(self):
        with self.assertRaises(ValueError):
            DurationSchedule(
                duration=Duration.SHORT, cycle=Cycle.WEEK, slot_points=[10],
                decay=[DecayStep(after_fraction=0.3, points=5), DecayStep(after_fraction=0.6, points=8)],
            )

    def test_duplicate_durations_are_rejected(self):
        schedule = DurationSchedule(duration=Duration.SHORT, cycle=Cycle.WEEK, slot_points=[10])
        with self.assertRaises(ValueError):
            ScheduleTable(durations=[schedule, schedule])

    def test_unknown_duration_raises_key_error(self):
        scheduler = SlotScheduler(_quarter_day_schedule())
        with self.assertRaises(KeyError):
            scheduler.current_slot(Duration.LONG, _utc(2024, 3, 13))


class TestPeriods(unittest.TestCase):
    def setUp(self):
        self.scheduler = SlotScheduler()

    def test_period_is_the_berlin_calendar_month(self):
        period = self.scheduler.period_containing(_utc(2024, 2, 29, 22, 59))
        self.assertEqual(period.key, "2024-02")
        self.assertEqual(period.start, _utc(2024, 1, 31, 23))
        self.assertEqual(period.end, _utc(2024, 2, 29, 23))

    def test_month_starts_at_local_midnight(self):
        self.assertEqual(self.scheduler.period_containing(_utc(2024, 2, 29, 23)).key, "2024-03")

    def test_previous_period_wraps_the_year(self):
        self.assertEqual(self.scheduler.previous_period(_utc(2024, 1, 15)).key, "2023-12")

    def test_period_for_key(self):
        period = self.scheduler.period_for_key("2024-03")
        self.assertEqual(period.start, _utc(2024, 2, 29, 23))
        self.assertEqual(period.end, _utc(2024, 3, 31, 22))

    def test_bad_period_key(self):
        with self.assertRaises(ValueError):
            self.scheduler.period_for_key("March")

    def test_time_until_period_end(self):
        self.assertEqual(self.scheduler.time_until_period_end(_utc(2024, 3, 31, 21)), 3600.0)


class TestFormatTimeRemaining(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(format_time_remaining(0), "Expired")
        self.assertEqual(format_time_remaining(-5), "Expired")
        self.assertEqual(format_time_remaining(59), "0m")
        self.assertEqual(format_time_remaining(45 * 60), "45m")
        self.assertEqual(format_time_remaining(3 * 3600 + 20 * 60), "3h 20m")
        self.assertEqual(format_time_remaining(2 * 86400 + 5 * 3600), "2d 5h")


if __name__ == "__main__":
    unittest.main()
