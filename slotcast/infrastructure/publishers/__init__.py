from .event_publishers import (
    DEFAULT_CHANNEL,
    InMemoryEventPublisher,
    LoggingEventPublisher,
    PgNotifyEventPublisher,
)
