import json
import logging
import threading
from typing import List

from slotcast.db.pg_notify import notify
from slotcast.entities.prediction import PredictionEvaluated
from slotcast.services.interfaces.event_publisher import EventPublisher

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "prediction_evaluated"


class LoggingEventPublisher(EventPublisher):
    def publish(self, event: PredictionEvaluated) -> None:
        logger.info(
            "prediction evaluated: %s user=%s result=%s points=%+d",
            event.prediction_id, event.user_id, event.result, event.points_awarded,
        )


class InMemoryEventPublisher(EventPublisher):
    def __init__(self):
        self._lock = threading.Lock()
        self.events: List[PredictionEvaluated] = []

    def publish(self, event: PredictionEvaluated) -> None:
        with self._lock:
            self.events.append(event)


class PgNotifyEventPublisher(EventPublisher):
    """Fans events out through PostgreSQL NOTIFY so other workers can LISTEN."""

    def __init__(self, channel: str = DEFAULT_CHANNEL, connection=None):
        self.channel = channel
        self.connection = connection

    def publish(self, event: PredictionEvaluated) -> None:
        payload = json.dumps(event.to_payload(), sort_keys=True)
        notify(self.channel, payload=payload, connection=self.connection)
