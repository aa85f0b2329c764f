"""QueryService: read access to conversation projections."""

import copy
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from ..errors import ValidationFailed
from ..models import ConversationStatus, ConversationType
from ..projections import ConversationView, HistoryEntry, ProjectionStore

MAX_PAGE_SIZE = 1000


def as_utc(value: datetime | None) -> datetime | None:
    """Read naive datetimes as UTC so they compare with stored timestamps."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class Pagination:
    offset: int = 0
    limit: int = 50

    def __post_init__(self):
        if self.offset < 0:
            raise ValidationFailed("Pagination offset must not be negative")
        if not 1 <= self.limit <= MAX_PAGE_SIZE:
            raise ValidationFailed(f"Pagination limit must be in 1..{MAX_PAGE_SIZE}")

    def slice(self, items: list) -> list:
        return items[self.offset : self.offset + self.limit]


@dataclass(frozen=True)
class ConversationFilter:
    """Criteria for listing conversations. Date bounds are inclusive."""

    status: ConversationStatus | None = None
    participant_id: str | None = None
    active_since: datetime | None = None
    conversation_type: ConversationType | None = None
    started_after: datetime | None = None
    started_before: datetime | None = None

    def __post_init__(self):
        for name in ("active_since", "started_after", "started_before"):
            object.__setattr__(self, name, as_utc(getattr(self, name)))
        if (
            self.started_after is not None
            and self.started_before is not None
            and self.started_after > self.started_before
        ):
            raise ValidationFailed("started_after must not be later than started_before")

    def matches(self, view: ConversationView) -> bool:
        if self.status is not None and view.status != self.status:
            return False
        if self.participant_id is not None and view.participant(self.participant_id) is None:
            return False
        if self.active_since is not None and view.last_activity_at < self.active_since:
            return False
        if (
            self.conversation_type is not None
            and view.conversation_type != self.conversation_type
        ):
            return False
        if self.started_after is not None and view.started_at < self.started_after:
            return False
        if self.started_before is not None and view.started_at > self.started_before:
            return False
        return True


@dataclass(frozen=True)
class ConversationStatistics:
    total_conversations: int
    active_conversations: int
    paused_conversations: int
    ended_conversations: int
    total_messages: int
    average_message_count: float
    total_participants: int  # distinct participant ids
    conversations_by_type: dict[str, int]


class IQueryService(Protocol):
    """Read-only access to conversations, served from projections."""

    async def get_conversation(self, conversation_id: str) -> ConversationView | None:
        ...

    async def list_conversations(
        self,
        conversation_filter: ConversationFilter | None = None,
        pagination: Pagination | None = None,
    ) -> list[ConversationView]:
        ...

    async def search_conversations(
        self, text: str, pagination: Pagination | None = None
    ) -> list[ConversationView]:
        ...

    async def get_history(
        self,
        conversation_id: str,
        pagination: Pagination | None = None,
        sender_id: str | None = None,
        search: str | None = None,
        topic_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[HistoryEntry] | None:
        ...

    async def get_statistics(self) -> ConversationStatistics:
        ...


class QueryService:
    """Serves views from the projection store.

    Results are copies, so callers cannot alter the projections. The views
    may lag the event log by whatever the projection builder has not folded.
    """

    def __init__(self, store: ProjectionStore):
        self._store = store

    async def get_conversation(self, conversation_id: str) -> ConversationView | None:
        """Get the summary of one conversation."""
        view = self._store.views.get(conversation_id)
        return copy.deepcopy(view) if view else None

    async def list_conversations(
        self,
        conversation_filter: ConversationFilter | None = None,
        pagination: Pagination | None = None,
    ) -> list[ConversationView]:
        """List conversations, most recently active first."""
        conversation_filter = conversation_filter or ConversationFilter()
        views = [
            v for v in self._store.views.values() if conversation_filter.matches(v)
        ]
        return copy.deepcopy((pagination or Pagination()).slice(_by_activity(views)))

    async def search_conversations(
        self, text: str, pagination: Pagination | None = None
    ) -> list[ConversationView]:
        """Find conversations with a message containing ``text``.

        Matching is case-insensitive over text bodies and the JSON form of
        structured payloads.
        """
        if not text or not text.strip():
            raise ValidationFailed("Search text must not be empty")
        needle = text.lower()

        views = [
            view
            for cid, view in self._store.views.items()
            if any(_entry_matches(e, needle) for e in self._store.histories.get(cid, []))
        ]
        return copy.deepcopy((pagination or Pagination()).slice(_by_activity(views)))

    async def get_history(
        self,
        conversation_id: str,
        pagination: Pagination | None = None,
        sender_id: str | None = None,
        search: str | None = None,
        topic_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[HistoryEntry] | None:
        """Get messages in log order, or None for an unknown conversation.

        ``search`` is a case-insensitive substring match on text bodies.
        ``since`` and ``until`` bound the message timestamp inclusively.
        """
        history = self._store.histories.get(conversation_id)
        if history is None:
            return None
        since, until = as_utc(since), as_utc(until)

        entries = history
        if sender_id is not None:
            entries = [e for e in entries if e.sender_id == sender_id]
        if topic_id is not None:
            entries = [e for e in entries if e.topic_id == topic_id]
        if since is not None:
            entries = [e for e in entries if e.timestamp >= since]
        if until is not None:
            entries = [e for e in entries if e.timestamp <= until]
        if search:
            needle = search.lower()
            entries = [e for e in entries if e.body and needle in e.body.lower()]

        return copy.deepcopy((pagination or Pagination()).slice(entries))

    async def get_statistics(self) -> ConversationStatistics:
        """Aggregate counts over all projected conversations."""
        views = list(self._store.views.values())
        by_status = {status: 0 for status in ConversationStatus}
        by_type: dict[str, int] = {}
        participant_ids: set[str] = set()
        total_messages = 0
        for view in views:
            by_status[view.status] += 1
            type_name = ConversationType(view.conversation_type).value
            by_type[type_name] = by_type.get(type_name, 0) + 1
            total_messages += view.message_count
            participant_ids.update(p.id for p in view.participants)

        return ConversationStatistics(
            total_conversations=len(views),
            active_conversations=by_status[ConversationStatus.ACTIVE],
            paused_conversations=by_status[ConversationStatus.PAUSED],
            ended_conversations=by_status[ConversationStatus.ENDED],
            total_messages=total_messages,
            average_message_count=total_messages / len(views) if views else 0.0,
            total_participants=len(participant_ids),
            conversations_by_type=by_type,
        )


def _by_activity(views: list[ConversationView]) -> list[ConversationView]:
    # Two stable sorts: id ascending, then last activity descending.
    views = sorted(views, key=lambda v: v.conversation_id)
    return sorted(views, key=lambda v: v.last_activity_at, reverse=True)


def _entry_matches(entry: HistoryEntry, needle: str) -> bool:
    if entry.body is not None and needle in entry.body.lower():
        return True
    if entry.payload is not None:
        return needle in json.dumps(entry.payload, ensure_ascii=False).lower()
    return False
