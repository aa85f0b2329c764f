"""EventBus implementation for publishing appended events."""

import asyncio
from typing import Awaitable, Callable, Iterable, Protocol

from ..logging_config import get_logger, log_context
from ..models import RecordedEvent

logger = get_logger(__name__)

ALL_EVENTS = "*"

EventHandler = Callable[[RecordedEvent], Awaitable[None]]


class IEventBus(Protocol):
    """In-memory pub/sub distributing recorded events to other domains."""

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event type name, or ALL_EVENTS."""
        ...

    async def publish(self, records: Iterable[RecordedEvent]) -> None:
        """Deliver records to subscribers, one record at a time, in order."""
        ...


class EventBus:
    """In-memory pub/sub event bus keyed by event type name."""

    def __init__(self):
        self._subscribers: dict[str, list[EventHandler]] = {}

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event type name, or ALL_EVENTS."""
        self._subscribers.setdefault(topic, []).append(handler)

    def unsubscribe(self, topic: str, handler: EventHandler) -> None:
        """Remove a previously subscribed handler."""
        handlers = self._subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, records: Iterable[RecordedEvent]) -> None:
        """Deliver records to subscribers, one record at a time, in order.

        Handlers of a single record run concurrently. A failing handler is
        logged and does not affect the others or later records.
        """
        for record in records:
            handlers = self._subscribers.get(record.event_type, []) + self._subscribers.get(
                ALL_EVENTS, []
            )
            if not handlers:
                continue

            results = await asyncio.gather(
                *[handler(record) for handler in handlers],
                return_exceptions=True,
            )

            for handler, result in zip(handlers, results):
                if isinstance(result, Exception):
                    logger.error(
                        "Error in handler %s: %s",
                        getattr(handler, "__qualname__", repr(handler)),
                        result,
                        extra=log_context(
                            conversation_id=record.conversation_id,
                            sequence=record.sequence,
                            event_type=record.event_type,
                        ),
                    )
