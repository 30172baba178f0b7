from abc import ABC, abstractmethod

from slotcast.entities.prediction import PredictionEvaluated


class EventPublisher(ABC):
    """Outbound sink for evaluation events; consumers must tolerate redelivery."""

    @abstractmethod
    def publish(self, event: PredictionEvaluated) -> None:
        pass
