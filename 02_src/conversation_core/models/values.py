"""Value types shared by commands, events and the aggregate."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Union

ConversationId = str


def new_id() -> str:
    """Generate a fresh opaque identifier."""
    return str(uuid.uuid4())


class ConversationStatus(str, Enum):
    """Lifecycle state of a conversation."""

    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class ConversationType(str, Enum):
    """What kind of exchange a conversation is."""

    DIRECT = "direct"
    GROUP = "group"
    SUPPORT = "support"
    TASK = "task"
    SOCIAL = "social"
    SYSTEM = "system"


class TopicStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"  # another topic became current
    COMPLETED = "completed"


class ContextUpdateMode(str, Enum):
    """How a context update is folded into the snapshot."""

    MERGE = "merge"  # shallow key overwrite
    REPLACE = "replace"


@dataclass(frozen=True)
class UserParticipant:
    """A human taking part in a conversation."""

    id: str
    display_name: str
    kind: Literal["user"] = "user"


@dataclass(frozen=True)
class AgentParticipant:
    """An AI agent taking part in a conversation."""

    id: str
    display_name: str
    specialization: str | None = None
    kind: Literal["agent"] = "agent"


Participant = Union[UserParticipant, AgentParticipant]


@dataclass(frozen=True)
class Topic:
    """A subject discussed within a conversation."""

    id: str
    name: str
    status: TopicStatus = TopicStatus.ACTIVE


@dataclass(frozen=True)
class AttachmentRef:
    """Reference to content held by the external object store."""

    id: str
    type: str  # "file", "image", "audio"
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TextMessage:
    """A plain text message."""

    id: str
    sender_id: str
    body: str
    timestamp: datetime
    attachments: tuple[AttachmentRef, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    kind: Literal["text"] = "text"


@dataclass(frozen=True)
class StructuredMessage:
    """A message carrying typed or opaque data."""

    id: str
    sender_id: str
    payload: dict[str, Any]
    format_type: str
    timestamp: datetime
    attachments: tuple[AttachmentRef, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    kind: Literal["structured"] = "structured"


Message = Union[TextMessage, StructuredMessage]
