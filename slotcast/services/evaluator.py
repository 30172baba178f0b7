"""Evaluator: sweeps expired active predictions, prices them, and drives the state machine."""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from slotcast.entities.prediction import PredictionStatus
from slotcast.errors import PriceUnavailable
from slotcast.services.interfaces.price_oracle import PriceOracle
from slotcast.services.predictions import PredictionService
from slotcast.utils.timeutil import ensure_utc


@dataclass
class EvaluationSweep:
    evaluated: int = 0
    deferred: int = 0     # no price yet, retried next sweep
    stale: int = 0        # already evaluated by someone else
    failed: int = 0       # persistence or unexpected error, retried next sweep

    @property
    def total(self) -> int:
        return self.evaluated + self.deferred + self.stale + self.failed


class EvaluatorService:
    def __init__(
        self,
        prediction_service: PredictionService,
        price_oracle: PriceOracle,
        interval_seconds: int = 60,
        batch_size: int | None = None,
    ):
        self.prediction_service = prediction_service
        self.prediction_repository = prediction_service.prediction_repository
        self.price_oracle = price_oracle
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.logger = logging.getLogger(__name__)
        self.stop_event = asyncio.Event()

    async def run(self) -> None:
        self.logger.info("evaluator started (interval=%ds)", self.interval_seconds)
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.logger.exception("evaluation loop error: %s", exc)
                self._rollback_repositories()
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def run_once(self, now: datetime | None = None) -> EvaluationSweep:
        now = ensure_utc(now or datetime.now(timezone.utc))
        sweep = EvaluationSweep()

        due = self.prediction_repository.find(
            status=PredictionStatus.ACTIVE, expires_before=now, limit=self.batch_size,
        )
        if not due:
            self.logger.info("No predictions due for evaluation")
            return sweep

        # one oracle call per asset per sweep
        prices: dict[str, float | None] = {}
        for prediction in due:
            if prediction.asset_id not in prices:
                prices[prediction.asset_id] = self._fetch_price(prediction.asset_id)
            price = prices[prediction.asset_id]
            if price is None:
                sweep.deferred += 1
                continue

            try:
                outcome = self.prediction_service.evaluate(prediction.id, price, now)
            except PriceUnavailable:
                sweep.deferred += 1
                continue
            except Exception as exc:
                self.logger.exception("Failed to evaluate %s: %s", prediction.id, exc)
                self._rollback_repositories()
                sweep.failed += 1
                continue

            if outcome.applied:
                sweep.evaluated += 1
            else:
                sweep.stale += 1

        self.logger.info(
            "Evaluation sweep: %d evaluated, %d deferred, %d stale, %d failed",
            sweep.evaluated, sweep.deferred, sweep.stale, sweep.failed,
        )
        return sweep

    async def shutdown(self) -> None:
        self.stop_event.set()

    def _fetch_price(self, asset_id: str) -> float | None:
        try:
            price = self.price_oracle.get_price(asset_id)
        except Exception as exc:
            self.logger.warning("Price lookup for %s failed, deferring: %s", asset_id, exc)
            return None

        if price is None or not math.isfinite(price) or price <= 0:
            self.logger.warning("No usable price for %s (%r), deferring", asset_id, price)
            return None
        return price

    def _rollback_repositories(self) -> None:
        try:
            self.prediction_repository.rollback()
        except Exception:
            self.logger.debug("prediction repository rollback failed", exc_info=True)
