"""Commands accepted by the conversation core."""

from dataclasses import dataclass, field
from typing import Any, Union

from .values import (
    AttachmentRef,
    ContextUpdateMode,
    ConversationId,
    ConversationType,
    Participant,
)


@dataclass(frozen=True)
class StructuredContent:
    """Content of a structured message before it is recorded."""

    payload: dict[str, Any]
    format_type: str


@dataclass(frozen=True)
class StartConversation:
    conversation_id: ConversationId
    participants: tuple[Participant, ...]
    context: dict[str, Any] = field(default_factory=dict)
    conversation_type: ConversationType = ConversationType.DIRECT


@dataclass(frozen=True)
class SendMessage:
    conversation_id: ConversationId
    sender_id: str
    content: str | StructuredContent
    attachments: tuple[AttachmentRef, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    message_id: str | None = None  # generated when omitted


@dataclass(frozen=True)
class AddParticipant:
    conversation_id: ConversationId
    participant: Participant


@dataclass(frozen=True)
class PauseConversation:
    conversation_id: ConversationId


@dataclass(frozen=True)
class ResumeConversation:
    conversation_id: ConversationId


@dataclass(frozen=True)
class EndConversation:
    conversation_id: ConversationId
    reason: str | None = None


@dataclass(frozen=True)
class UpdateContext:
    conversation_id: ConversationId
    values: dict[str, Any]
    mode: ContextUpdateMode = ContextUpdateMode.MERGE


@dataclass(frozen=True)
class SwitchTopic:
    """Make a topic current, pausing the previous one."""

    conversation_id: ConversationId
    topic_id: str
    name: str


@dataclass(frozen=True)
class CompleteTopic:
    conversation_id: ConversationId
    topic_id: str
    resolution: str | None = None


@dataclass(frozen=True)
class SetMetadata:
    """Set one conversation-level metadata key."""

    conversation_id: ConversationId
    key: str
    value: Any


Command = Union[
    StartConversation,
    SendMessage,
    AddParticipant,
    PauseConversation,
    ResumeConversation,
    EndConversation,
    UpdateContext,
    SwitchTopic,
    CompleteTopic,
    SetMetadata,
]
