"""Domain events and the sequenced envelope the event log stores them in."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from .values import (
    ContextUpdateMode,
    ConversationId,
    ConversationType,
    Message,
    Participant,
)


@dataclass(frozen=True)
class ConversationStarted:
    conversation_id: ConversationId
    participants: tuple[Participant, ...]
    occurred_at: datetime
    context: dict[str, Any] = field(default_factory=dict)
    conversation_type: ConversationType = ConversationType.DIRECT


@dataclass(frozen=True)
class MessageSent:
    conversation_id: ConversationId
    message: Message
    occurred_at: datetime


@dataclass(frozen=True)
class ParticipantAdded:
    conversation_id: ConversationId
    participant: Participant
    occurred_at: datetime


@dataclass(frozen=True)
class ConversationPaused:
    conversation_id: ConversationId
    occurred_at: datetime


@dataclass(frozen=True)
class ConversationResumed:
    conversation_id: ConversationId
    occurred_at: datetime


@dataclass(frozen=True)
class ConversationEnded:
    conversation_id: ConversationId
    occurred_at: datetime
    reason: str | None = None


@dataclass(frozen=True)
class ContextUpdated:
    conversation_id: ConversationId
    values: dict[str, Any]
    mode: ContextUpdateMode
    occurred_at: datetime


@dataclass(frozen=True)
class TopicSwitched:
    conversation_id: ConversationId
    topic_id: str
    name: str
    occurred_at: datetime
    previous_topic_id: str | None = None


@dataclass(frozen=True)
class TopicCompleted:
    conversation_id: ConversationId
    topic_id: str
    occurred_at: datetime
    resolution: str | None = None


@dataclass(frozen=True)
class MetadataSet:
    conversation_id: ConversationId
    key: str
    value: Any
    occurred_at: datetime


DomainEvent = Union[
    ConversationStarted,
    MessageSent,
    ParticipantAdded,
    ConversationPaused,
    ConversationResumed,
    ConversationEnded,
    ContextUpdated,
    TopicSwitched,
    TopicCompleted,
    MetadataSet,
]

EVENT_TYPES: dict[str, type] = {
    cls.__name__: cls
    for cls in (
        ConversationStarted,
        MessageSent,
        ParticipantAdded,
        ConversationPaused,
        ConversationResumed,
        ConversationEnded,
        ContextUpdated,
        TopicSwitched,
        TopicCompleted,
        MetadataSet,
    )
}


@dataclass(frozen=True)
class RecordedEvent:
    """A domain event as stored in the log, with its position."""

    conversation_id: ConversationId
    sequence: int  # 1-based, contiguous per conversation
    event: DomainEvent
    recorded_at: datetime

    @property
    def event_type(self) -> str:
        return type(self.event).__name__
