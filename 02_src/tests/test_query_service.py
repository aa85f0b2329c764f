"""Tests for QueryService."""

from datetime import timedelta

import pytest
import pytest_asyncio

from conftest import T0
from conversation_core.errors import ValidationFailed
from conversation_core.models import (
    AddParticipant,
    ConversationStatus,
    ConversationType,
    EndConversation,
    PauseConversation,
    SendMessage,
    StartConversation,
    StructuredContent,
    SwitchTopic,
)
from conversation_core.queries import ConversationFilter, Pagination


@pytest_asyncio.fixture
async def three_conversations(command_handler, clock, alice, helper, bob):
    """C1 active (Alice, Helper), C2 paused (Bob, Helper), C3 ended (Alice)."""
    await command_handler.handle(StartConversation("C1", (alice, helper)))
    clock.advance(10)
    await command_handler.handle(StartConversation("C2", (bob, helper)))
    await command_handler.handle(PauseConversation("C2"))
    clock.advance(10)
    await command_handler.handle(StartConversation("C3", (alice,)))
    await command_handler.handle(EndConversation("C3"))
    clock.advance(10)
    await command_handler.handle(SendMessage("C1", "U1", "still here"))
    return ["C1", "C2", "C3"]


class TestGetConversation:
    """Tests for single conversation lookups."""

    @pytest.mark.asyncio
    async def test_get_conversation(self, query_service, started):
        """Test the summary of a started conversation."""
        view = await query_service.get_conversation(started)

        assert view.conversation_id == "C1"
        assert view.status == ConversationStatus.ACTIVE
        assert view.participant_count == 2
        assert view.context == {"topic": "billing"}
        assert view.started_at == T0

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, query_service):
        """Test an unknown id returns None."""
        assert await query_service.get_conversation("nope") is None

    @pytest.mark.asyncio
    async def test_result_is_a_copy(self, query_service, projection_builder, started):
        """Test callers cannot modify the projection through results."""
        view = await query_service.get_conversation(started)
        view.context["topic"] = "hacked"
        view.participants.clear()

        stored = projection_builder.store.views[started]
        assert stored.context == {"topic": "billing"}
        assert stored.participant_count == 2


class TestListConversations:
    """Tests for listing with filters and pagination."""

    @pytest.mark.asyncio
    async def test_most_recent_activity_first(self, query_service, three_conversations):
        """Test ordering by last activity, newest first."""
        views = await query_service.list_conversations()
        assert [v.conversation_id for v in views] == ["C1", "C3", "C2"]

    @pytest.mark.asyncio
    async def test_ties_ordered_by_id(self, command_handler, query_service, alice):
        """Test equal activity times fall back to id order."""
        for cid in ["C9", "C5", "C7"]:
            await command_handler.handle(StartConversation(cid, (alice,)))

        views = await query_service.list_conversations()
        assert [v.conversation_id for v in views] == ["C5", "C7", "C9"]

    @pytest.mark.asyncio
    async def test_filter_by_status(self, query_service, three_conversations):
        """Test filtering by lifecycle status."""
        views = await query_service.list_conversations(
            conversation_filter=ConversationFilter(status=ConversationStatus.PAUSED)
        )
        assert [v.conversation_id for v in views] == ["C2"]

    @pytest.mark.asyncio
    async def test_filter_by_participant(self, query_service, three_conversations):
        """Test filtering by membership."""
        views = await query_service.list_conversations(
            ConversationFilter(participant_id="U1")
        )
        assert [v.conversation_id for v in views] == ["C1", "C3"]

    @pytest.mark.asyncio
    async def test_filter_by_activity(self, query_service, three_conversations, clock):
        """Test active_since excludes conversations idle before the cutoff."""
        views = await query_service.list_conversations(
            ConversationFilter(active_since=clock.now)
        )
        assert [v.conversation_id for v in views] == ["C1"]

    @pytest.mark.asyncio
    async def test_pagination(self, query_service, three_conversations):
        """Test offset and limit slice the ordered list."""
        views = await query_service.list_conversations(
            pagination=Pagination(offset=1, limit=1)
        )
        assert [v.conversation_id for v in views] == ["C3"]

    @pytest.mark.parametrize("offset,limit", [(-1, 10), (0, 0), (0, 1001)])
    def test_invalid_pagination(self, offset, limit):
        """Test out-of-range pagination is rejected."""
        with pytest.raises(ValidationFailed):
            Pagination(offset=offset, limit=limit)


class TestHistory:
    """Tests for message history queries."""

    @pytest.mark.asyncio
    async def test_history_in_log_order(self, command_handler, query_service, started, clock):
        """Test history lists messages by sequence."""
        await command_handler.handle(SendMessage(started, "U1", "My invoice is wrong"))
        clock.advance()
        await command_handler.handle(SendMessage(started, "A1", "Let me check the invoice"))
        clock.advance()
        await command_handler.handle(
            SendMessage(started, "A1", StructuredContent({"invoice": "INV-1"}, "invoice_card"))
        )

        history = await query_service.get_history(started)

        assert [e.sequence for e in history] == [2, 3, 4]
        assert [e.sender_name for e in history] == ["Alice", "Helper", "Helper"]

    @pytest.mark.asyncio
    async def test_history_filters(self, command_handler, query_service, started):
        """Test sender filter and case-insensitive text search."""
        await command_handler.handle(SendMessage(started, "U1", "My INVOICE is wrong"))
        await command_handler.handle(SendMessage(started, "A1", "Let me check the invoice"))
        await command_handler.handle(SendMessage(started, "A1", "Done"))

        by_sender = await query_service.get_history(started, sender_id="A1")
        assert [e.body for e in by_sender] == ["Let me check the invoice", "Done"]

        found = await query_service.get_history(started, search="invoice")
        assert [e.sequence for e in found] == [2, 3]

        both = await query_service.get_history(started, sender_id="A1", search="invoice")
        assert [e.sequence for e in both] == [3]

    @pytest.mark.asyncio
    async def test_history_pagination(self, command_handler, query_service, started):
        """Test history pages."""
        for i in range(5):
            await command_handler.handle(SendMessage(started, "U1", f"message {i}"))

        page = await query_service.get_history(started, Pagination(offset=2, limit=2))
        assert [e.body for e in page] == ["message 2", "message 3"]

    @pytest.mark.asyncio
    async def test_history_of_unknown_conversation(self, query_service):
        """Test an unknown conversation has no history rather than an empty one."""
        assert await query_service.get_history("nope") is None

    @pytest.mark.asyncio
    async def test_empty_history(self, query_service, started):
        """Test a conversation without messages has an empty history."""
        assert await query_service.get_history(started) == []


class TestStatistics:
    """Tests for aggregate statistics."""

    @pytest.mark.asyncio
    async def test_statistics(self, command_handler, query_service, three_conversations, bob):
        """Test counts across all conversations."""
        await command_handler.handle(AddParticipant("C1", bob))

        stats = await query_service.get_statistics()

        assert stats.total_conversations == 3
        assert stats.active_conversations == 1
        assert stats.paused_conversations == 1
        assert stats.ended_conversations == 1
        assert stats.total_messages == 1
        assert stats.average_message_count == pytest.approx(1 / 3)
        assert stats.total_participants == 3
        assert stats.conversations_by_type == {"direct": 3}

    @pytest.mark.asyncio
    async def test_statistics_empty(self, query_service):
        """Test statistics with no conversations."""
        stats = await query_service.get_statistics()

        assert stats.total_conversations == 0
        assert stats.average_message_count == 0.0


class TestListFilters:
    """Tests for type and date range filters."""

    @pytest.mark.asyncio
    async def test_filter_by_type(self, command_handler, query_service, three_conversations, alice):
        """Test only conversations of the requested type are listed."""
        await command_handler.handle(
            StartConversation("C4", (alice,), conversation_type=ConversationType.SUPPORT)
        )

        views = await query_service.list_conversations(
            ConversationFilter(conversation_type=ConversationType.SUPPORT)
        )

        assert [v.conversation_id for v in views] == ["C4"]

    @pytest.mark.asyncio
    async def test_started_range_is_inclusive(self, query_service, three_conversations):
        """Test both bounds of the start date range are included."""
        views = await query_service.list_conversations(
            ConversationFilter(
                started_after=T0 + timedelta(seconds=10),
                started_before=T0 + timedelta(seconds=20),
            )
        )

        assert sorted(v.conversation_id for v in views) == ["C2", "C3"]

    @pytest.mark.asyncio
    async def test_naive_active_since_read_as_utc(
        self, query_service, three_conversations, clock
    ):
        """Test a timestamp without offset compares as UTC instead of failing."""
        views = await query_service.list_conversations(
            ConversationFilter(active_since=clock.now.replace(tzinfo=None))
        )

        assert [v.conversation_id for v in views] == ["C1"]

    @pytest.mark.asyncio
    async def test_naive_started_bounds_read_as_utc(self, query_service, three_conversations):
        """Test naive range bounds are normalized too."""
        views = await query_service.list_conversations(
            ConversationFilter(started_before=T0.replace(tzinfo=None))
        )

        assert [v.conversation_id for v in views] == ["C1"]

    def test_inverted_range_rejected(self):
        """Test a range whose start is after its end is refused."""
        with pytest.raises(ValidationFailed):
            ConversationFilter(started_after=T0 + timedelta(days=1), started_before=T0)


class TestSearchConversations:
    """Tests for text search across conversations."""

    @pytest.mark.asyncio
    async def test_search_text_and_payloads(
        self, command_handler, query_service, three_conversations, alice, helper
    ):
        """Test matches in text bodies and structured payloads, ignoring case."""
        await command_handler.handle(StartConversation("C4", (alice, helper)))
        await command_handler.handle(SendMessage("C4", "A1", "Your REFUND is on its way"))
        await command_handler.handle(
            SendMessage("C1", "U1", StructuredContent({"action": "refund"}, "button"))
        )

        views = await query_service.search_conversations("refund")

        assert sorted(v.conversation_id for v in views) == ["C1", "C4"]

    @pytest.mark.asyncio
    async def test_search_without_match(self, query_service, three_conversations):
        """Test a search with no hits returns an empty list."""
        assert await query_service.search_conversations("nothing like this") == []

    @pytest.mark.asyncio
    async def test_empty_search_rejected(self, query_service):
        """Test blank search text is refused."""
        with pytest.raises(ValidationFailed):
            await query_service.search_conversations("  ")


class TestHistoryFilters:
    """Tests for history by topic and time range."""

    @pytest.mark.asyncio
    async def test_history_by_topic(self, command_handler, query_service, started):
        """Test only messages sent under the topic are returned."""
        await command_handler.handle(SendMessage(started, "U1", "hello"))
        await command_handler.handle(SwitchTopic(started, "t1", "Refund"))
        await command_handler.handle(SendMessage(started, "U1", "refund please"))

        entries = await query_service.get_history(started, topic_id="t1")

        assert [e.body for e in entries] == ["refund please"]

    @pytest.mark.asyncio
    async def test_history_time_range(self, command_handler, query_service, started, clock):
        """Test since and until are inclusive and accept naive timestamps."""
        for i in range(4):
            clock.advance(10)
            await command_handler.handle(SendMessage(started, "U1", f"message {i}"))

        entries = await query_service.get_history(
            started,
            since=(T0 + timedelta(seconds=20)).replace(tzinfo=None),
            until=T0 + timedelta(seconds=30),
        )

        assert [e.body for e in entries] == ["message 1", "message 2"]
