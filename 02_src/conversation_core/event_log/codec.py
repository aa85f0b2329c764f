"""Conversion between domain events and JSON-ready dicts."""

from datetime import datetime
from typing import Any

from ..models import (
    EVENT_TYPES,
    AgentParticipant,
    AttachmentRef,
    ContextUpdated,
    ContextUpdateMode,
    ConversationEnded,
    ConversationPaused,
    ConversationResumed,
    ConversationStarted,
    ConversationType,
    DomainEvent,
    Message,
    MessageSent,
    MetadataSet,
    Participant,
    ParticipantAdded,
    StructuredMessage,
    TextMessage,
    TopicCompleted,
    TopicSwitched,
    UserParticipant,
)


def participant_to_dict(participant: Participant) -> dict[str, Any]:
    data = {
        "kind": participant.kind,
        "id": participant.id,
        "display_name": participant.display_name,
    }
    if isinstance(participant, AgentParticipant):
        data["specialization"] = participant.specialization
    return data


def participant_from_dict(data: dict[str, Any]) -> Participant:
    kind = data.get("kind")
    if kind == "user":
        return UserParticipant(id=data["id"], display_name=data["display_name"])
    if kind == "agent":
        return AgentParticipant(
            id=data["id"],
            display_name=data["display_name"],
            specialization=data.get("specialization"),
        )
    raise ValueError(f"Unknown participant kind: {kind!r}")


def attachment_to_dict(attachment: AttachmentRef) -> dict[str, Any]:
    return {
        "id": attachment.id,
        "type": attachment.type,
        "url": attachment.url,
        "metadata": dict(attachment.metadata),
    }


def attachment_from_dict(data: dict[str, Any]) -> AttachmentRef:
    return AttachmentRef(
        id=data["id"],
        type=data["type"],
        url=data.get("url"),
        metadata=data.get("metadata") or {},
    )


def message_to_dict(message: Message) -> dict[str, Any]:
    data: dict[str, Any] = {
        "kind": message.kind,
        "id": message.id,
        "sender_id": message.sender_id,
        "timestamp": message.timestamp.isoformat(),
        "attachments": [attachment_to_dict(a) for a in message.attachments],
        "metadata": dict(message.metadata),
    }
    if isinstance(message, TextMessage):
        data["body"] = message.body
    else:
        data["payload"] = message.payload
        data["format_type"] = message.format_type
    return data


def message_from_dict(data: dict[str, Any]) -> Message:
    common = {
        "id": data["id"],
        "sender_id": data["sender_id"],
        "timestamp": datetime.fromisoformat(data["timestamp"]),
        "attachments": tuple(
            attachment_from_dict(a) for a in data.get("attachments", [])
        ),
        "metadata": data.get("metadata") or {},
    }
    kind = data.get("kind")
    if kind == "text":
        return TextMessage(body=data["body"], **common)
    if kind == "structured":
        return StructuredMessage(
            payload=data["payload"], format_type=data["format_type"], **common
        )
    raise ValueError(f"Unknown message kind: {kind!r}")


def event_to_dict(event: DomainEvent) -> dict[str, Any]:
    """Serialize an event payload (without the log envelope)."""
    data: dict[str, Any] = {
        "conversation_id": event.conversation_id,
        "occurred_at": event.occurred_at.isoformat(),
    }
    if isinstance(event, ConversationStarted):
        data["participants"] = [participant_to_dict(p) for p in event.participants]
        data["context"] = dict(event.context)
        data["conversation_type"] = ConversationType(event.conversation_type).value
    elif isinstance(event, MessageSent):
        data["message"] = message_to_dict(event.message)
    elif isinstance(event, ParticipantAdded):
        data["participant"] = participant_to_dict(event.participant)
    elif isinstance(event, ConversationEnded):
        data["reason"] = event.reason
    elif isinstance(event, ContextUpdated):
        data["values"] = dict(event.values)
        data["mode"] = event.mode.value
    elif isinstance(event, TopicSwitched):
        data["topic_id"] = event.topic_id
        data["name"] = event.name
        data["previous_topic_id"] = event.previous_topic_id
    elif isinstance(event, TopicCompleted):
        data["topic_id"] = event.topic_id
        data["resolution"] = event.resolution
    elif isinstance(event, MetadataSet):
        data["key"] = event.key
        data["value"] = event.value
    elif not isinstance(event, (ConversationPaused, ConversationResumed)):
        raise TypeError(f"Unsupported event: {type(event).__name__}")
    return data


def event_from_dict(event_type: str, data: dict[str, Any]) -> DomainEvent:
    """Rebuild an event from its type name and serialized payload."""
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown event type: {event_type!r}")

    cid = data["conversation_id"]
    occurred_at = datetime.fromisoformat(data["occurred_at"])

    if event_type == "ConversationStarted":
        return ConversationStarted(
            conversation_id=cid,
            participants=tuple(participant_from_dict(p) for p in data["participants"]),
            occurred_at=occurred_at,
            context=data.get("context") or {},
            conversation_type=ConversationType(data.get("conversation_type", "direct")),
        )
    if event_type == "MessageSent":
        return MessageSent(
            conversation_id=cid,
            message=message_from_dict(data["message"]),
            occurred_at=occurred_at,
        )
    if event_type == "ParticipantAdded":
        return ParticipantAdded(
            conversation_id=cid,
            participant=participant_from_dict(data["participant"]),
            occurred_at=occurred_at,
        )
    if event_type == "ConversationEnded":
        return ConversationEnded(
            conversation_id=cid, occurred_at=occurred_at, reason=data.get("reason")
        )
    if event_type == "ContextUpdated":
        return ContextUpdated(
            conversation_id=cid,
            values=data.get("values") or {},
            mode=ContextUpdateMode(data["mode"]),
            occurred_at=occurred_at,
        )
    if event_type == "TopicSwitched":
        return TopicSwitched(
            conversation_id=cid,
            topic_id=data["topic_id"],
            name=data["name"],
            occurred_at=occurred_at,
            previous_topic_id=data.get("previous_topic_id"),
        )
    if event_type == "TopicCompleted":
        return TopicCompleted(
            conversation_id=cid,
            topic_id=data["topic_id"],
            occurred_at=occurred_at,
            resolution=data.get("resolution"),
        )
    if event_type == "MetadataSet":
        return MetadataSet(
            conversation_id=cid,
            key=data["key"],
            value=data.get("value"),
            occurred_at=occurred_at,
        )
    return EVENT_TYPES[event_type](conversation_id=cid, occurred_at=occurred_at)
