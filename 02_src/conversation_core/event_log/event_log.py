"""Append-only event log contract and in-memory implementation."""

import asyncio
from datetime import datetime, timezone
from typing import Protocol, Sequence

from ..errors import ConcurrencyConflict
from ..logging_config import get_logger, log_context
from ..models import DomainEvent, RecordedEvent

logger = get_logger(__name__)


class IEventLog(Protocol):
    """Durable, per-conversation ordered sequence of domain events."""

    async def init(self) -> None:
        """Prepare the underlying storage."""
        ...

    async def close(self) -> None:
        """Release the underlying storage."""
        ...

    async def append(
        self,
        conversation_id: str,
        expected_last_sequence: int,
        events: Sequence[DomainEvent],
    ) -> list[RecordedEvent]:
        """Atomically append events after ``expected_last_sequence``.

        Raises ConcurrencyConflict when the log has moved on since the caller
        read it. Returns the recorded events; the last one's sequence is the
        new last sequence.
        """
        ...

    async def read(
        self, conversation_id: str, after_sequence: int = 0
    ) -> list[RecordedEvent]:
        """Get events with sequence greater than ``after_sequence``, in order."""
        ...

    async def last_sequence(self, conversation_id: str) -> int:
        """Get the last sequence number (0 for an unknown conversation)."""
        ...

    async def conversation_ids(self) -> list[str]:
        """Get ids of all conversations with at least one event."""
        ...

    async def clear(self) -> None:
        """Remove all events."""
        ...


def record_events(
    conversation_id: str,
    last_sequence: int,
    events: Sequence[DomainEvent],
) -> list[RecordedEvent]:
    """Wrap events in envelopes numbered after ``last_sequence``."""
    recorded_at = datetime.now(timezone.utc)
    records = []
    for offset, event in enumerate(events, start=1):
        if event.conversation_id != conversation_id:
            raise ValueError(
                f"Event for {event.conversation_id} appended to {conversation_id}"
            )
        records.append(
            RecordedEvent(
                conversation_id=conversation_id,
                sequence=last_sequence + offset,
                event=event,
                recorded_at=recorded_at,
            )
        )
    return records


class InMemoryEventLog:
    """Event log held in process memory."""

    def __init__(self):
        self._streams: dict[str, list[RecordedEvent]] = {}
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Nothing to prepare."""
        return

    async def close(self) -> None:
        """Nothing to release."""
        return

    async def append(
        self,
        conversation_id: str,
        expected_last_sequence: int,
        events: Sequence[DomainEvent],
    ) -> list[RecordedEvent]:
        """Atomically append events after ``expected_last_sequence``."""
        if not events:
            return []

        async with self._lock:
            stream = self._streams.get(conversation_id, [])
            actual = len(stream)
            if actual != expected_last_sequence:
                raise ConcurrencyConflict(
                    conversation_id, expected_last_sequence, actual
                )
            records = record_events(conversation_id, actual, events)
            self._streams[conversation_id] = stream + records

        logger.debug(
            "Appended %d event(s) to %s", len(records), conversation_id,
            extra=log_context(
                conversation_id=conversation_id,
                last_sequence=records[-1].sequence,
            ),
        )
        return records

    async def read(
        self, conversation_id: str, after_sequence: int = 0
    ) -> list[RecordedEvent]:
        """Get events with sequence greater than ``after_sequence``, in order."""
        # Sequence n sits at index n - 1.
        return list(self._streams.get(conversation_id, [])[max(after_sequence, 0):])

    async def last_sequence(self, conversation_id: str) -> int:
        """Get the last sequence number (0 for an unknown conversation)."""
        return len(self._streams.get(conversation_id, []))

    async def conversation_ids(self) -> list[str]:
        """Get ids of all conversations with at least one event."""
        return list(self._streams)

    async def clear(self) -> None:
        """Remove all events."""
        async with self._lock:
            self._streams.clear()
