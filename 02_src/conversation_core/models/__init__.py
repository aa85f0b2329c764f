"""Core data models for the conversation domain."""

from .commands import (
    AddParticipant,
    Command,
    CompleteTopic,
    EndConversation,
    PauseConversation,
    ResumeConversation,
    SendMessage,
    SetMetadata,
    StartConversation,
    StructuredContent,
    SwitchTopic,
    UpdateContext,
)
from .events import (
    EVENT_TYPES,
    ContextUpdated,
    ConversationEnded,
    ConversationPaused,
    ConversationResumed,
    ConversationStarted,
    DomainEvent,
    MessageSent,
    MetadataSet,
    ParticipantAdded,
    RecordedEvent,
    TopicCompleted,
    TopicSwitched,
)
from .values import (
    AgentParticipant,
    AttachmentRef,
    ContextUpdateMode,
    ConversationId,
    ConversationStatus,
    ConversationType,
    Message,
    Participant,
    StructuredMessage,
    TextMessage,
    Topic,
    TopicStatus,
    UserParticipant,
    new_id,
)

__all__ = [
    # Values
    "ConversationId",
    "ConversationStatus",
    "ContextUpdateMode",
    "ConversationType",
    "Topic",
    "TopicStatus",
    "UserParticipant",
    "AgentParticipant",
    "Participant",
    "AttachmentRef",
    "TextMessage",
    "StructuredMessage",
    "Message",
    "new_id",
    # Commands
    "Command",
    "StartConversation",
    "SendMessage",
    "StructuredContent",
    "AddParticipant",
    "PauseConversation",
    "ResumeConversation",
    "EndConversation",
    "UpdateContext",
    "SwitchTopic",
    "CompleteTopic",
    "SetMetadata",
    # Events
    "DomainEvent",
    "EVENT_TYPES",
    "ConversationStarted",
    "MessageSent",
    "ParticipantAdded",
    "ConversationPaused",
    "ConversationResumed",
    "ConversationEnded",
    "ContextUpdated",
    "TopicSwitched",
    "TopicCompleted",
    "MetadataSet",
    "RecordedEvent",
]
