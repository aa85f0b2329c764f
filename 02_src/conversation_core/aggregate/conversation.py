"""Conversation aggregate.

The aggregate is a pure fold over the event log (``apply``/``replay``) plus a
pure decision function (``decide``) that validates a command against the
folded state and returns the events that would be appended. Neither function
performs I/O or mutates its inputs.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from ..errors import (
    ConversationAlreadyEnded,
    ConversationAlreadyExists,
    ConversationNotActive,
    ConversationNotFound,
    InvalidTransition,
    UnknownParticipant,
    UnknownTopic,
    ValidationFailed,
)
from ..models import (
    AddParticipant,
    AgentParticipant,
    Command,
    CompleteTopic,
    ContextUpdated,
    ContextUpdateMode,
    ConversationEnded,
    ConversationPaused,
    ConversationResumed,
    ConversationStarted,
    ConversationStatus,
    ConversationType,
    DomainEvent,
    EndConversation,
    MessageSent,
    MetadataSet,
    Participant,
    ParticipantAdded,
    PauseConversation,
    RecordedEvent,
    ResumeConversation,
    SendMessage,
    SetMetadata,
    StartConversation,
    StructuredContent,
    StructuredMessage,
    SwitchTopic,
    TextMessage,
    Topic,
    TopicCompleted,
    TopicStatus,
    TopicSwitched,
    UpdateContext,
    UserParticipant,
    new_id,
)


@dataclass(frozen=True)
class ConversationPolicy:
    """Rules applied when participants join a conversation."""

    require_user: bool = True
    require_agent: bool = False
    max_participants: int | None = None


DEFAULT_POLICY = ConversationPolicy()


@dataclass(frozen=True)
class Conversation:
    """Folded state of one conversation.

    Only what is needed to validate commands is kept: message bodies live in
    the log and the history projection, the aggregate tracks ids and counts.
    ``version`` is the sequence number of the last applied event.
    """

    id: str
    status: ConversationStatus
    participants: tuple[Participant, ...]
    context: dict[str, Any]
    started_at: datetime
    version: int = 1
    message_count: int = 0
    message_ids: frozenset[str] = frozenset()
    last_message_at: datetime | None = None
    ended_at: datetime | None = None
    end_reason: str | None = None
    conversation_type: ConversationType = ConversationType.DIRECT
    topics: tuple[Topic, ...] = ()
    current_topic_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def participant(self, participant_id: str) -> Participant | None:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def has_participant(self, participant_id: str) -> bool:
        return self.participant(participant_id) is not None

    def topic(self, topic_id: str) -> Topic | None:
        for topic in self.topics:
            if topic.id == topic_id:
                return topic
        return None


# Fold


def apply(state: Conversation | None, event: DomainEvent) -> Conversation:
    """Return the state that results from applying one event."""
    if isinstance(event, ConversationStarted):
        return Conversation(
            id=event.conversation_id,
            status=ConversationStatus.ACTIVE,
            participants=tuple(event.participants),
            context=dict(event.context),
            started_at=event.occurred_at,
            version=(state.version if state else 0) + 1,
            conversation_type=ConversationType(event.conversation_type),
        )

    if state is None:
        raise ValueError(
            f"{type(event).__name__} applied before ConversationStarted"
        )

    if isinstance(event, MessageSent):
        return _advance(
            state,
            message_count=state.message_count + 1,
            message_ids=state.message_ids | {event.message.id},
            last_message_at=event.message.timestamp,
        )
    if isinstance(event, ParticipantAdded):
        if state.has_participant(event.participant.id):
            return _advance(state)
        return _advance(state, participants=state.participants + (event.participant,))
    if isinstance(event, ConversationPaused):
        return _advance(state, status=ConversationStatus.PAUSED)
    if isinstance(event, ConversationResumed):
        return _advance(state, status=ConversationStatus.ACTIVE)
    if isinstance(event, ConversationEnded):
        return _advance(
            state,
            status=ConversationStatus.ENDED,
            ended_at=event.occurred_at,
            end_reason=event.reason,
        )
    if isinstance(event, ContextUpdated):
        return _advance(state, context=merge_context(state.context, event.values, event.mode))
    if isinstance(event, TopicSwitched):
        return _advance(
            state,
            topics=switch_topics(state.topics, event.topic_id, event.name),
            current_topic_id=event.topic_id,
        )
    if isinstance(event, TopicCompleted):
        topics = tuple(
            dataclasses.replace(t, status=TopicStatus.COMPLETED)
            if t.id == event.topic_id
            else t
            for t in state.topics
        )
        current = None if state.current_topic_id == event.topic_id else state.current_topic_id
        return _advance(state, topics=topics, current_topic_id=current)
    if isinstance(event, MetadataSet):
        return _advance(state, metadata={**state.metadata, event.key: event.value})

    raise TypeError(f"Unsupported event: {type(event).__name__}")


def replay(
    events: Iterable[DomainEvent | RecordedEvent],
    state: Conversation | None = None,
) -> Conversation | None:
    """Fold a sequence of events (or recorded events) onto ``state``."""
    for item in events:
        event = item.event if isinstance(item, RecordedEvent) else item
        state = apply(state, event)
    return state


def merge_context(
    current: dict[str, Any],
    values: dict[str, Any],
    mode: ContextUpdateMode,
) -> dict[str, Any]:
    """Combine a context snapshot with an update.

    MERGE overwrites the given top-level keys and keeps the rest; nested
    mappings are replaced whole. REPLACE discards the old snapshot.
    """
    if mode == ContextUpdateMode.REPLACE:
        return dict(values)
    merged = dict(current)
    merged.update(values)
    return merged


def switch_topics(
    topics: tuple[Topic, ...], topic_id: str, name: str
) -> tuple[Topic, ...]:
    """Make ``topic_id`` the only active topic.

    Other active topics are paused, completed ones stay completed. A topic
    that was seen before is reopened under its new name.
    """
    result = []
    found = False
    for topic in topics:
        if topic.id == topic_id:
            result.append(Topic(id=topic_id, name=name))
            found = True
        elif topic.status == TopicStatus.ACTIVE:
            result.append(dataclasses.replace(topic, status=TopicStatus.PAUSED))
        else:
            result.append(topic)
    if not found:
        result.append(Topic(id=topic_id, name=name))
    return tuple(result)


def _advance(state: Conversation, **changes: Any) -> Conversation:
    return dataclasses.replace(state, version=state.version + 1, **changes)


# Decisions


Decider = Callable[
    [Any, Conversation | None, ConversationPolicy, datetime], list[DomainEvent]
]


def decide(
    command: Command,
    state: Conversation | None,
    *,
    policy: ConversationPolicy = DEFAULT_POLICY,
    now: datetime | None = None,
) -> list[DomainEvent]:
    """Validate a command against ``state`` and return the resulting events.

    Raises a ``ConversationError`` subclass when the command is rejected.
    An empty list means the command was accepted but changes nothing.
    """
    decider = _DECIDERS.get(type(command))
    if decider is None:
        raise TypeError(f"Unsupported command: {type(command).__name__}")
    return decider(command, state, policy, now or datetime.now(timezone.utc))


def _decide_start(
    command: StartConversation,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    cid = command.conversation_id
    if state is not None:
        raise ConversationAlreadyExists(
            f"Conversation {cid} already exists", cid, status=state.status.value
        )
    if not cid:
        raise ValidationFailed("Conversation id must not be empty")
    if not command.participants:
        raise ValidationFailed("At least one participant is required", cid)

    seen: set[str] = set()
    for participant in command.participants:
        _validate_participant(participant, cid)
        if participant.id in seen:
            raise ValidationFailed(
                f"Duplicate participant {participant.id}", cid, participant_id=participant.id
            )
        seen.add(participant.id)

    if policy.require_user and not any(
        isinstance(p, UserParticipant) for p in command.participants
    ):
        raise ValidationFailed("At least one user participant is required", cid)
    if policy.require_agent and not any(
        isinstance(p, AgentParticipant) for p in command.participants
    ):
        raise ValidationFailed("At least one agent participant is required", cid)
    if policy.max_participants is not None and len(seen) > policy.max_participants:
        raise ValidationFailed(
            f"At most {policy.max_participants} participants allowed", cid
        )
    _validate_context(command.context, cid)
    try:
        conversation_type = ConversationType(command.conversation_type)
    except ValueError:
        raise ValidationFailed(
            f"Unknown conversation type {command.conversation_type!r}", cid
        )

    return [
        ConversationStarted(
            conversation_id=cid,
            participants=tuple(command.participants),
            occurred_at=now,
            context=dict(command.context),
            conversation_type=conversation_type,
        )
    ]


def _decide_send(
    command: SendMessage,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    cid = command.conversation_id
    conversation = _require_existing(cid, state)

    content = command.content
    if isinstance(content, str):
        if not content.strip():
            raise ValidationFailed("Message body must not be empty", cid)
    elif isinstance(content, StructuredContent):
        if not content.format_type:
            raise ValidationFailed("Structured message needs a format type", cid)
        if not isinstance(content.payload, dict):
            raise ValidationFailed("Structured payload must be a mapping", cid)
        _require_json(content.payload, cid, "payload")
    else:
        raise ValidationFailed(
            f"Unsupported message content: {type(content).__name__}", cid
        )
    _require_json(command.metadata, cid, "metadata")
    for attachment in command.attachments:
        _require_json(attachment.metadata, cid, f"attachment {attachment.id} metadata")

    if not conversation.has_participant(command.sender_id):
        raise UnknownParticipant(
            f"Sender {command.sender_id} is not a participant",
            cid,
            participant_id=command.sender_id,
        )
    _require_status(conversation, "SendMessage", ConversationStatus.ACTIVE)

    message_id = command.message_id or new_id()
    if message_id in conversation.message_ids:
        raise ValidationFailed(
            f"Duplicate message id {message_id}", cid, message_id=message_id
        )

    # The aggregate, not the sender's clock, orders messages.
    timestamp = now
    if conversation.last_message_at and conversation.last_message_at > now:
        timestamp = conversation.last_message_at

    if isinstance(content, str):
        message = TextMessage(
            id=message_id,
            sender_id=command.sender_id,
            body=content,
            timestamp=timestamp,
            attachments=tuple(command.attachments),
            metadata=dict(command.metadata),
        )
    else:
        message = StructuredMessage(
            id=message_id,
            sender_id=command.sender_id,
            payload=dict(content.payload),
            format_type=content.format_type,
            timestamp=timestamp,
            attachments=tuple(command.attachments),
            metadata=dict(command.metadata),
        )
    return [MessageSent(conversation_id=cid, message=message, occurred_at=timestamp)]


def _decide_add_participant(
    command: AddParticipant,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    cid = command.conversation_id
    conversation = _require_existing(cid, state)
    _require_status(conversation, "AddParticipant", ConversationStatus.ACTIVE)
    _validate_participant(command.participant, cid)

    # Tolerate redelivery of the same command.
    if conversation.has_participant(command.participant.id):
        return []

    if (
        policy.max_participants is not None
        and len(conversation.participants) >= policy.max_participants
    ):
        raise ValidationFailed(
            f"At most {policy.max_participants} participants allowed", cid
        )
    return [
        ParticipantAdded(
            conversation_id=cid, participant=command.participant, occurred_at=now
        )
    ]


def _decide_pause(
    command: PauseConversation,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    conversation = _require_existing(command.conversation_id, state)
    _require_status(conversation, "PauseConversation", ConversationStatus.ACTIVE)
    return [ConversationPaused(conversation_id=command.conversation_id, occurred_at=now)]


def _decide_resume(
    command: ResumeConversation,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    conversation = _require_existing(command.conversation_id, state)
    _require_status(conversation, "ResumeConversation", ConversationStatus.PAUSED)
    return [ConversationResumed(conversation_id=command.conversation_id, occurred_at=now)]


def _decide_end(
    command: EndConversation,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    conversation = _require_existing(command.conversation_id, state)
    _require_status(
        conversation,
        "EndConversation",
        ConversationStatus.ACTIVE,
        ConversationStatus.PAUSED,
    )
    return [
        ConversationEnded(
            conversation_id=command.conversation_id,
            occurred_at=now,
            reason=command.reason,
        )
    ]


def _decide_update_context(
    command: UpdateContext,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    cid = command.conversation_id
    conversation = _require_existing(cid, state)
    _require_status(conversation, "UpdateContext", ConversationStatus.ACTIVE)

    try:
        mode = ContextUpdateMode(command.mode)
    except ValueError:
        raise ValidationFailed(f"Unknown context update mode {command.mode!r}", cid)
    _validate_context(command.values, cid)
    if mode == ContextUpdateMode.MERGE and not command.values:
        raise ValidationFailed("Context merge needs at least one key", cid)

    return [
        ContextUpdated(
            conversation_id=cid,
            values=dict(command.values),
            mode=mode,
            occurred_at=now,
        )
    ]


def _decide_switch_topic(
    command: SwitchTopic,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    cid = command.conversation_id
    conversation = _require_existing(cid, state)
    _require_status(conversation, "SwitchTopic", ConversationStatus.ACTIVE)
    if not command.topic_id:
        raise ValidationFailed("Topic id must not be empty", cid)
    if not command.name or not command.name.strip():
        raise ValidationFailed(
            f"Topic {command.topic_id} needs a name", cid, topic_id=command.topic_id
        )

    current = conversation.topic(command.topic_id)
    if (
        conversation.current_topic_id == command.topic_id
        and current is not None
        and current.name == command.name
    ):
        return []
    return [
        TopicSwitched(
            conversation_id=cid,
            topic_id=command.topic_id,
            name=command.name,
            occurred_at=now,
            previous_topic_id=conversation.current_topic_id,
        )
    ]


def _decide_complete_topic(
    command: CompleteTopic,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    cid = command.conversation_id
    conversation = _require_existing(cid, state)
    _require_status(conversation, "CompleteTopic", ConversationStatus.ACTIVE)

    topic = conversation.topic(command.topic_id)
    if topic is None:
        raise UnknownTopic(
            f"Topic {command.topic_id} was never opened", cid, topic_id=command.topic_id
        )
    if topic.status == TopicStatus.COMPLETED:
        return []
    return [
        TopicCompleted(
            conversation_id=cid,
            topic_id=command.topic_id,
            occurred_at=now,
            resolution=command.resolution,
        )
    ]


def _decide_set_metadata(
    command: SetMetadata,
    state: Conversation | None,
    policy: ConversationPolicy,
    now: datetime,
) -> list[DomainEvent]:
    cid = command.conversation_id
    conversation = _require_existing(cid, state)
    _require_status(
        conversation,
        "SetMetadata",
        ConversationStatus.ACTIVE,
        ConversationStatus.PAUSED,
    )
    if not isinstance(command.key, str) or not command.key:
        raise ValidationFailed(f"Invalid metadata key {command.key!r}", cid)
    _require_json(command.value, cid, f"metadata {command.key}")

    if (
        command.key in conversation.metadata
        and conversation.metadata[command.key] == command.value
    ):
        return []
    return [
        MetadataSet(
            conversation_id=cid, key=command.key, value=command.value, occurred_at=now
        )
    ]


_DECIDERS: dict[type, Decider] = {
    StartConversation: _decide_start,
    SendMessage: _decide_send,
    AddParticipant: _decide_add_participant,
    PauseConversation: _decide_pause,
    ResumeConversation: _decide_resume,
    EndConversation: _decide_end,
    UpdateContext: _decide_update_context,
    SwitchTopic: _decide_switch_topic,
    CompleteTopic: _decide_complete_topic,
    SetMetadata: _decide_set_metadata,
}


def _require_existing(cid: str, state: Conversation | None) -> Conversation:
    if state is None:
        raise ConversationNotFound(f"Conversation {cid} not found", cid)
    return state


def _require_status(
    conversation: Conversation,
    command_name: str,
    *allowed: ConversationStatus,
) -> None:
    status = conversation.status
    if status in allowed:
        return
    if status == ConversationStatus.ENDED:
        raise ConversationAlreadyEnded(
            f"Conversation {conversation.id} has ended",
            conversation.id,
            command=command_name,
            status=status.value,
        )
    if allowed == (ConversationStatus.ACTIVE,):
        raise ConversationNotActive(
            f"Conversation {conversation.id} is not active",
            conversation.id,
            command=command_name,
            status=status.value,
        )
    raise InvalidTransition(
        f"{command_name} is not allowed while conversation is {status.value}",
        conversation.id,
        command=command_name,
        status=status.value,
    )


def _validate_participant(participant: Participant, cid: str) -> None:
    if not isinstance(participant, (UserParticipant, AgentParticipant)):
        raise ValidationFailed(
            f"Unsupported participant: {type(participant).__name__}", cid
        )
    if not participant.id:
        raise ValidationFailed("Participant id must not be empty", cid)
    if not participant.display_name or not participant.display_name.strip():
        raise ValidationFailed(
            f"Participant {participant.id} needs a display name",
            cid,
            participant_id=participant.id,
        )


def _validate_context(values: Any, cid: str) -> None:
    if not isinstance(values, dict):
        raise ValidationFailed("Context must be a mapping", cid)
    for key, value in values.items():
        if not isinstance(key, str) or not key:
            raise ValidationFailed(f"Invalid context key {key!r}", cid)
        _require_json(value, cid, f"context {key}")


def _require_json(value: Any, cid: str, what: str) -> None:
    """Reject values that would not survive a trip through the event log.

    Only JSON types are accepted. Tuples and datetimes are rejected.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return
    if isinstance(value, list):
        for item in value:
            _require_json(item, cid, what)
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationFailed(f"Non-string key {key!r} in {what}", cid)
            _require_json(item, cid, what)
        return
    raise ValidationFailed(
        f"Unsupported {type(value).__name__} value in {what}", cid
    )
