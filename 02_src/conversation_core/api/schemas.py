"""Request and response models for the HTTP API."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from ..event_log.codec import event_to_dict
from ..models import (
    AgentParticipant,
    AttachmentRef,
    ContextUpdateMode,
    ConversationStatus,
    ConversationType,
    Participant,
    RecordedEvent,
    TopicStatus,
    UserParticipant,
)


class ParticipantModel(BaseModel):
    """A participant as sent by clients."""

    kind: Literal["user", "agent"]
    id: str
    display_name: str
    specialization: str | None = None

    def to_participant(self) -> Participant:
        if self.kind == "agent":
            return AgentParticipant(
                id=self.id,
                display_name=self.display_name,
                specialization=self.specialization,
            )
        return UserParticipant(id=self.id, display_name=self.display_name)


class AttachmentModel(BaseModel):
    """Reference to an object already held by the attachment store."""

    id: str
    type: str
    url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_ref(self) -> AttachmentRef:
        return AttachmentRef(
            id=self.id, type=self.type, url=self.url, metadata=dict(self.metadata)
        )


class StartConversationRequest(BaseModel):
    conversation_id: str | None = None  # generated when omitted
    participants: list[ParticipantModel]
    context: dict[str, Any] = Field(default_factory=dict)
    conversation_type: ConversationType = ConversationType.DIRECT


class SendMessageRequest(BaseModel):
    """Text message (``body``) or structured message (``payload`` + ``format_type``)."""

    sender_id: str
    body: str | None = None
    payload: dict[str, Any] | None = None
    format_type: str | None = None
    attachments: list[AttachmentModel] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    message_id: str | None = None


class EndConversationRequest(BaseModel):
    reason: str | None = None


class UpdateContextRequest(BaseModel):
    values: dict[str, Any]
    mode: ContextUpdateMode = ContextUpdateMode.MERGE


class SwitchTopicRequest(BaseModel):
    topic_id: str
    name: str


class CompleteTopicRequest(BaseModel):
    resolution: str | None = None


class SetMetadataRequest(BaseModel):
    key: str
    value: Any = None


class EventRecordResponse(BaseModel):
    conversation_id: str
    sequence: int
    event_type: str
    recorded_at: datetime
    payload: dict[str, Any]


class CommandResponse(BaseModel):
    conversation_id: str
    events: list[EventRecordResponse]


class ParticipantResponse(BaseModel):
    id: str
    display_name: str
    kind: str
    joined_at: datetime
    specialization: str | None = None


class TopicResponse(BaseModel):
    id: str
    name: str
    status: TopicStatus
    opened_at: datetime
    completed_at: datetime | None = None
    resolution: str | None = None
    message_count: int


class ConversationResponse(BaseModel):
    conversation_id: str
    status: ConversationStatus
    participants: list[ParticipantResponse]
    participant_count: int
    context: dict[str, Any]
    message_count: int
    started_at: datetime
    last_activity_at: datetime
    ended_at: datetime | None = None
    end_reason: str | None = None
    last_sequence: int
    conversation_type: ConversationType
    topics: list[TopicResponse] = Field(default_factory=list)
    current_topic_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class HistoryEntryResponse(BaseModel):
    sequence: int
    message_id: str
    sender_id: str
    sender_name: str
    sender_kind: str
    kind: str
    timestamp: datetime
    body: str | None = None
    payload: dict[str, Any] | None = None
    format_type: str | None = None
    attachments: list[AttachmentModel] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    topic_id: str | None = None
    topic_name: str | None = None


class StatisticsResponse(BaseModel):
    total_conversations: int
    active_conversations: int
    paused_conversations: int
    ended_conversations: int
    total_messages: int
    average_message_count: float
    total_participants: int
    conversations_by_type: dict[str, int] = Field(default_factory=dict)


def record_to_dict(record: RecordedEvent) -> dict[str, Any]:
    return {
        "conversation_id": record.conversation_id,
        "sequence": record.sequence,
        "event_type": record.event_type,
        "recorded_at": record.recorded_at,
        "payload": event_to_dict(record.event),
    }


def command_response(conversation_id: str, records: list[RecordedEvent]) -> dict:
    return {
        "conversation_id": conversation_id,
        "events": [record_to_dict(r) for r in records],
    }
