from __future__ import annotations

import asyncio
import unittest
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from slotcast.config.schedule import Cycle, DurationSchedule, ScheduleTable
from slotcast.entities.prediction import Direction, Duration, PredictionResult, PredictionStatus
from slotcast.infrastructure.memory import InMemoryPredictionRepository, StaticPriceOracle
from slotcast.infrastructure.publishers import InMemoryEventPublisher
from slotcast.services.evaluator import EvaluatorService
from slotcast.services.predictions import PredictionService
from slotcast.services.slots import SlotScheduler

SLOT_START = datetime(2024, 3, 12, 23, tzinfo=timezone.utc)
SLOT_END = datetime(2024, 3, 13, 5, tzinfo=timezone.utc)


def _scheduler() -> SlotScheduler:
    return SlotScheduler(
        ScheduleTable(
            durations=[DurationSchedule(duration=Duration.SHORT, cycle=Cycle.DAY, slot_points=[40, 30, 20, 10])],
        )
    )


class OverlappingSweepRepository(InMemoryPredictionRepository):
    """Lists every due row as active, like a sweep that read them before another sweep finished."""

    def find(self, **kwargs):
        kwargs["status"] = None
        return [replace(p, status=PredictionStatus.ACTIVE) for p in super().find(**kwargs)]


class FailingWriteRepository(InMemoryPredictionRepository):
    def __init__(self):
        super().__init__()
        self.rollbacks = 0

    def mark_evaluated(self, prediction_id, **kwargs):
        raise RuntimeError("connection reset")

    def rollback(self):
        self.rollbacks += 1


class TestEvaluatorService(unittest.TestCase):
    def _build(self, repo=None, prices=None):
        self.repo = repo or InMemoryPredictionRepository()
        self.publisher = InMemoryEventPublisher()
        self.prediction_service = PredictionService(_scheduler(), self.repo, event_publisher=self.publisher)
        self.oracle = StaticPriceOracle(prices)
        return EvaluatorService(self.prediction_service, self.oracle, interval_seconds=1)

    def _submit(self, user_id, asset_id="BTC", direction=Direction.UP):
        return self.prediction_service.submit(
            user_id, asset_id, direction, Duration.SHORT, 1, 100.0, now=SLOT_START + timedelta(minutes=5),
        )

    def test_evaluates_every_due_prediction(self):
        evaluator = self._build(prices={"BTC": 110.0})
        up = self._submit("alice")
        down = self._submit("bob", direction=Direction.DOWN)

        sweep = evaluator.run_once(SLOT_END)

        self.assertEqual((sweep.evaluated, sweep.deferred, sweep.stale, sweep.failed), (2, 0, 0, 0))
        self.assertEqual(self.repo.get(up.id).result, PredictionResult.CORRECT)
        self.assertEqual(self.repo.get(down.id).points_awarded, -20)
        self.assertEqual(len(self.publisher.events), 2)

    def test_nothing_is_due_before_the_slot_ends(self):
        evaluator = self._build(prices={"BTC": 110.0})
        self._submit("alice")

        sweep = evaluator.run_once(SLOT_END - timedelta(seconds=1))

        self.assertEqual(sweep.total, 0)
        self.assertEqual(len(self.repo.find(status=PredictionStatus.ACTIVE)), 1)

    def test_missing_price_defers_until_the_next_sweep(self):
        evaluator = self._build(prices={"BTC": 110.0})
        self._submit("alice", asset_id="BTC")
        pending = self._submit("alice", asset_id="ETH")

        sweep = evaluator.run_once(SLOT_END)
        self.assertEqual((sweep.evaluated, sweep.deferred), (1, 1))
        self.assertEqual(self.repo.get(pending.id).status, PredictionStatus.ACTIVE)

        self.oracle.set_price("ETH", 3000.0)
        sweep = evaluator.run_once(SLOT_END + timedelta(minutes=1))
        self.assertEqual((sweep.evaluated, sweep.deferred), (1, 0))
        self.assertEqual(self.repo.get(pending.id).status, PredictionStatus.EVALUATED)

    def test_oracle_error_is_treated_as_unavailable(self):
        evaluator = self._build()
        evaluator.price_oracle = MagicMock()
        evaluator.price_oracle.get_price.side_effect = ConnectionError("timeout")
        self._submit("alice")

        sweep = evaluator.run_once(SLOT_END)

        self.assertEqual(sweep.deferred, 1)
        self.assertEqual(sweep.failed, 0)

    def test_non_positive_price_is_deferred(self):
        evaluator = self._build(prices={"BTC": 0.0})
        self._submit("alice")
        self.assertEqual(evaluator.run_once(SLOT_END).deferred, 1)

    def test_price_fetched_once_per_asset(self):
        evaluator = self._build()
        evaluator.price_oracle = MagicMock()
        evaluator.price_oracle.get_price.return_value = 110.0
        for user_id in ("alice", "bob", "carol"):
            self._submit(user_id)

        evaluator.run_once(SLOT_END)

        evaluator.price_oracle.get_price.assert_called_once_with("BTC")

    def test_already_evaluated_rows_count_as_stale(self):
        evaluator = self._build(repo=OverlappingSweepRepository(), prices={"BTC": 110.0})
        prediction = self._submit("alice")
        self.prediction_service.evaluate(prediction.id, 120.0, now=SLOT_END)

        sweep = evaluator.run_once(SLOT_END + timedelta(minutes=1))

        self.assertEqual((sweep.evaluated, sweep.stale), (0, 1))
        self.assertEqual(self.repo.get(prediction.id).price_end, 120.0)
        self.assertEqual(len(self.publisher.events), 1)

    def test_write_failure_rolls_back_and_keeps_going(self):
        repo = FailingWriteRepository()
        evaluator = self._build(repo=repo, prices={"BTC": 110.0})
        self._submit("alice")
        self._submit("bob")

        with self.assertLogs("slotcast.services.evaluator", level="ERROR"):
            sweep = evaluator.run_once(SLOT_END)

        self.assertEqual(sweep.failed, 2)
        self.assertEqual(repo.rollbacks, 2)
        self.assertEqual(len(repo.find(status=PredictionStatus.ACTIVE)), 2)
        self.assertEqual(self.publisher.events, [])

    def test_batch_size_limits_a_sweep(self):
        evaluator = self._build(prices={"BTC": 110.0})
        evaluator.batch_size = 2
        for user_id in ("alice", "bob", "carol"):
            self._submit(user_id)

        self.assertEqual(evaluator.run_once(SLOT_END).evaluated, 2)
        self.assertEqual(evaluator.run_once(SLOT_END).evaluated, 1)

    def test_run_stops_on_shutdown(self):
        evaluator = self._build(prices={"BTC": 110.0})
        evaluator.run_once = MagicMock()

        async def _drive():
            task = asyncio.create_task(evaluator.run())
            await asyncio.sleep(0.05)
            await evaluator.shutdown()
            await asyncio.wait_for(task, timeout=2)

        asyncio.run(_drive())
        evaluator.run_once.assert_called()

    def test_loop_survives_a_failing_sweep(self):
        evaluator = self._build()
        evaluator.interval_seconds = 0.01
        calls = []

        def _flaky_run_once():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            evaluator.stop_event.set()

        evaluator.run_once = _flaky_run_once

        async def _drive():
            await asyncio.wait_for(evaluator.run(), timeout=2)

        with self.assertLogs("slotcast.services.evaluator", level="ERROR"):
            asyncio.run(_drive())
        self.assertEqual(len(calls), 2)


if __name__ == "__main__":
    unittest.main()
