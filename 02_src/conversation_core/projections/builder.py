"""ProjectionBuilder: folds recorded events into read views."""

from typing import Protocol

from ..aggregate import merge_context
from ..event_log import IEventLog
from ..logging_config import get_logger, log_context
from ..models import (
    AgentParticipant,
    ContextUpdated,
    ConversationEnded,
    ConversationPaused,
    ConversationResumed,
    ConversationStarted,
    ConversationStatus,
    MessageSent,
    MetadataSet,
    Participant,
    ParticipantAdded,
    RecordedEvent,
    TextMessage,
    TopicCompleted,
    TopicStatus,
    TopicSwitched,
)
from .views import (
    ConversationView,
    HistoryEntry,
    ParticipantView,
    ProjectionStore,
    TopicView,
)

logger = get_logger(__name__)


class IProjectionBuilder(Protocol):
    """Keeps projections in step with the event log."""

    async def handle(self, record: RecordedEvent) -> None:
        """Fold a freshly published event, catching up on gaps."""
        ...

    async def catch_up(self, conversation_id: str) -> int:
        """Fold everything after the last folded sequence. Return count folded."""
        ...

    async def rebuild(self) -> int:
        """Drop all projections and refold the whole log. Return count folded."""
        ...


class ProjectionBuilder:
    """Deterministic, restartable fold of the event log into projections.

    Each conversation's last folded sequence is tracked, so replayed or
    duplicated events are skipped and a missing event triggers a read of the
    log tail instead of a full replay.
    """

    def __init__(self, event_log: IEventLog, store: ProjectionStore | None = None):
        self._event_log = event_log
        self._store = store if store is not None else ProjectionStore()

    @property
    def store(self) -> ProjectionStore:
        return self._store

    def position(self, conversation_id: str) -> int:
        """Last sequence folded for a conversation."""
        return self._store.position(conversation_id)

    def fold(self, record: RecordedEvent) -> bool:
        """Fold one record if it is the next in line.

        Returns False when the record is ahead of the projection (a gap),
        True when it was folded or had already been folded.
        """
        position = self.position(record.conversation_id)
        if record.sequence <= position:
            return True
        if record.sequence != position + 1:
            return False
        self._apply(record)
        self._store.positions[record.conversation_id] = record.sequence
        return True

    async def handle(self, record: RecordedEvent) -> None:
        """Fold a freshly published event, catching up on gaps."""
        if self.fold(record):
            return
        logger.warning(
            "Projection gap before sequence %d, catching up",
            record.sequence,
            extra=log_context(
                conversation_id=record.conversation_id,
                position=self.position(record.conversation_id),
            ),
        )
        await self.catch_up(record.conversation_id)

    async def catch_up(self, conversation_id: str) -> int:
        """Fold everything after the last folded sequence. Return count folded."""
        records = await self._event_log.read(
            conversation_id, self.position(conversation_id)
        )
        folded = 0
        for record in records:
            before = self.position(conversation_id)
            if not self.fold(record):
                break
            if self.position(conversation_id) > before:
                folded += 1
        return folded

    async def rebuild(self) -> int:
        """Drop all projections and refold the whole log. Return count folded."""
        self._store.clear()
        folded = 0
        for conversation_id in await self._event_log.conversation_ids():
            folded += await self.catch_up(conversation_id)
        logger.info("Projections rebuilt from %d event(s)", folded)
        return folded

    def _apply(self, record: RecordedEvent) -> None:
        event = record.event
        cid = record.conversation_id

        if isinstance(event, ConversationStarted):
            self._store.views[cid] = ConversationView(
                conversation_id=cid,
                status=ConversationStatus.ACTIVE,
                participants=[
                    _participant_view(p, record) for p in event.participants
                ],
                context=dict(event.context),
                started_at=event.occurred_at,
                last_activity_at=event.occurred_at,
                last_sequence=record.sequence,
                conversation_type=event.conversation_type,
            )
            self._store.histories[cid] = []
            return

        view = self._store.views.get(cid)
        if view is None:
            logger.error(
                "%s for a conversation that was never started",
                record.event_type,
                extra=log_context(conversation_id=cid, sequence=record.sequence),
            )
            return

        if isinstance(event, MessageSent):
            self._store.histories[cid].append(_history_entry(view, record))
            view.message_count += 1
            current = view.topic(view.current_topic_id)
            if current is not None:
                current.message_count += 1
        elif isinstance(event, ParticipantAdded):
            if view.participant(event.participant.id) is None:
                view.participants.append(_participant_view(event.participant, record))
        elif isinstance(event, ConversationPaused):
            view.status = ConversationStatus.PAUSED
        elif isinstance(event, ConversationResumed):
            view.status = ConversationStatus.ACTIVE
        elif isinstance(event, ConversationEnded):
            view.status = ConversationStatus.ENDED
            view.ended_at = event.occurred_at
            view.end_reason = event.reason
        elif isinstance(event, ContextUpdated):
            view.context = merge_context(view.context, event.values, event.mode)
        elif isinstance(event, TopicSwitched):
            _switch_topic(view, event)
        elif isinstance(event, TopicCompleted):
            topic = view.topic(event.topic_id)
            if topic is not None:
                topic.status = TopicStatus.COMPLETED
                topic.completed_at = event.occurred_at
                topic.resolution = event.resolution
            if view.current_topic_id == event.topic_id:
                view.current_topic_id = None
        elif isinstance(event, MetadataSet):
            view.metadata[event.key] = event.value

        view.last_activity_at = max(view.last_activity_at, event.occurred_at)
        view.last_sequence = record.sequence


def _participant_view(participant: Participant, record: RecordedEvent) -> ParticipantView:
    return ParticipantView(
        id=participant.id,
        display_name=participant.display_name,
        kind=participant.kind,
        joined_at=record.event.occurred_at,
        specialization=(
            participant.specialization
            if isinstance(participant, AgentParticipant)
            else None
        ),
    )


def _switch_topic(view: ConversationView, event: TopicSwitched) -> None:
    for topic in view.topics:
        if topic.id != event.topic_id and topic.status == TopicStatus.ACTIVE:
            topic.status = TopicStatus.PAUSED
    topic = view.topic(event.topic_id)
    if topic is None:
        view.topics.append(
            TopicView(
                id=event.topic_id,
                name=event.name,
                status=TopicStatus.ACTIVE,
                opened_at=event.occurred_at,
            )
        )
    else:
        topic.name = event.name
        topic.status = TopicStatus.ACTIVE
        topic.completed_at = None
        topic.resolution = None
    view.current_topic_id = event.topic_id


def _history_entry(view: ConversationView, record: RecordedEvent) -> HistoryEntry:
    message = record.event.message
    sender = view.participant(message.sender_id)
    topic = view.topic(view.current_topic_id)
    entry = HistoryEntry(
        sequence=record.sequence,
        message_id=message.id,
        sender_id=message.sender_id,
        sender_name=sender.display_name if sender else message.sender_id,
        sender_kind=sender.kind if sender else "unknown",
        kind=message.kind,
        timestamp=message.timestamp,
        attachments=list(message.attachments),
        metadata=dict(message.metadata),
        topic_id=topic.id if topic else None,
        topic_name=topic.name if topic else None,
    )
    if isinstance(message, TextMessage):
        entry.body = message.body
    else:
        entry.payload = dict(message.payload)
        entry.format_type = message.format_type
    return entry
