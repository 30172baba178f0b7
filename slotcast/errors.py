"""Typed domain errors raised by the prediction core.

Every error carries a stable ``code`` so an API layer can map it to a
user-facing status without parsing messages.
"""
from __future__ import annotations


class SlotcastError(Exception):
    code = "slotcast_error"


class InvalidSlot(SlotcastError):
    """Slot number out of range, or a slot that already ended."""

    code = "invalid_slot"

    def __init__(self, duration: str, slot_number: int, reason: str):
        self.duration = duration
        self.slot_number = slot_number
        self.reason = reason
        super().__init__(f"invalid slot {slot_number} for {duration}: {reason}")


class SlotLocked(SlotcastError):
    code = "slot_locked"

    def __init__(self, duration: str, remaining_seconds: float):
        self.duration = duration
        self.remaining_seconds = max(0.0, remaining_seconds)
        super().__init__(
            f"submissions for {duration} are locked for another {self.remaining_seconds:.0f}s"
        )


class DuplicateSubmission(SlotcastError):
    code = "duplicate_submission"

    def __init__(self, prediction_id: str):
        self.prediction_id = prediction_id
        super().__init__(f"prediction {prediction_id} already exists")


class InvalidPrice(SlotcastError):
    code = "invalid_price"

    def __init__(self, price: float | None):
        self.price = price
        super().__init__(f"price must be a positive number, got {price!r}")


class PriceUnavailable(SlotcastError):
    """The oracle had no usable price; evaluation is deferred to the next sweep."""

    code = "price_unavailable"

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"no price available for {asset_id}")


class PredictionNotFound(SlotcastError):
    code = "prediction_not_found"

    def __init__(self, prediction_id: str):
        self.prediction_id = prediction_id
        super().__init__(f"prediction {prediction_id} not found")


class PredictionNotExpired(SlotcastError):
    code = "prediction_not_expired"

    def __init__(self, prediction_id: str, expires_at):
        self.prediction_id = prediction_id
        self.expires_at = expires_at
        super().__init__(f"prediction {prediction_id} expires at {expires_at.isoformat()}")


class StaleTransition(SlotcastError):
    """The prediction left ``active`` before this transition could be applied.

    ``PredictionService.evaluate`` absorbs it and reports the stored outcome.
    """

    code = "stale_transition"

    def __init__(self, prediction_id: str, status: str):
        self.prediction_id = prediction_id
        self.status = status
        super().__init__(f"prediction {prediction_id} is already {status}")
