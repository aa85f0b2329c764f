"""Read-optimized views and the store that holds them."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..models import AttachmentRef, ConversationStatus, ConversationType, TopicStatus


@dataclass
class ParticipantView:
    id: str
    display_name: str
    kind: str  # "user" or "agent"
    joined_at: datetime
    specialization: str | None = None


@dataclass
class TopicView:
    id: str
    name: str
    status: TopicStatus
    opened_at: datetime
    completed_at: datetime | None = None
    resolution: str | None = None
    message_count: int = 0


@dataclass
class ConversationView:
    """Summary of one conversation."""

    conversation_id: str
    status: ConversationStatus
    participants: list[ParticipantView]
    context: dict[str, Any]
    started_at: datetime
    last_activity_at: datetime
    message_count: int = 0
    ended_at: datetime | None = None
    end_reason: str | None = None
    last_sequence: int = 0
    conversation_type: ConversationType = ConversationType.DIRECT
    topics: list[TopicView] = field(default_factory=list)
    current_topic_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def participant(self, participant_id: str) -> ParticipantView | None:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def topic(self, topic_id: str) -> TopicView | None:
        for topic in self.topics:
            if topic.id == topic_id:
                return topic
        return None


@dataclass
class HistoryEntry:
    """One message in a conversation's history, with sender attribution."""

    sequence: int
    message_id: str
    sender_id: str
    sender_name: str
    sender_kind: str
    kind: str  # "text" or "structured"
    timestamp: datetime
    body: str | None = None
    payload: dict[str, Any] | None = None
    format_type: str | None = None
    attachments: list[AttachmentRef] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    topic_id: str | None = None  # topic current when the message was sent
    topic_name: str | None = None


class ProjectionStore:
    """In-memory home of the projections, keyed by conversation id."""

    def __init__(self):
        self.views: dict[str, ConversationView] = {}
        self.histories: dict[str, list[HistoryEntry]] = {}
        self.positions: dict[str, int] = {}  # last folded sequence

    def position(self, conversation_id: str) -> int:
        return self.positions.get(conversation_id, 0)

    def clear(self) -> None:
        self.views.clear()
        self.histories.clear()
        self.positions.clear()
