"""Pytest configuration and fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from conversation_core.models import AgentParticipant, UserParticipant  # noqa: E402

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that moves forward only when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def alice():
    return UserParticipant(id="U1", display_name="Alice")


@pytest.fixture
def helper():
    return AgentParticipant(id="A1", display_name="Helper", specialization="support")


@pytest.fixture
def bob():
    return UserParticipant(id="U2", display_name="Bob")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_log():
    """Create in-memory event log for testing."""
    from conversation_core.event_log import InMemoryEventLog

    return InMemoryEventLog()


@pytest_asyncio.fixture
async def sqlite_log():
    """Create SQLite event log on an in-memory database."""
    from conversation_core.event_log import SqliteEventLog

    log = SqliteEventLog(":memory:")
    await log.init()
    yield log
    await log.close()


@pytest.fixture
def event_bus():
    """Create EventBus."""
    from conversation_core.event_bus import EventBus

    return EventBus()


@pytest.fixture
def projection_builder(event_log, event_bus):
    """Create ProjectionBuilder subscribed to every published event."""
    from conversation_core.event_bus import ALL_EVENTS
    from conversation_core.projections import ProjectionBuilder

    builder = ProjectionBuilder(event_log)
    event_bus.subscribe(ALL_EVENTS, builder.handle)
    return builder


@pytest.fixture
def command_handler(event_log, event_bus, projection_builder, clock):
    """Create command handler wired to log, bus and projections."""
    from conversation_core.handlers import ConversationCommandHandler

    return ConversationCommandHandler(
        event_log=event_log,
        event_bus=event_bus,
        retry_base_delay=0.0,
        clock=clock,
    )


@pytest.fixture
def query_service(projection_builder):
    """Create QueryService over the builder's projections."""
    from conversation_core.queries import QueryService

    return QueryService(projection_builder.store)


@pytest_asyncio.fixture
async def started(command_handler, alice, helper):
    """Conversation C1 with Alice and Helper, already started."""
    from conversation_core.models import StartConversation

    await command_handler.handle(
        StartConversation(
            conversation_id="C1",
            participants=(alice, helper),
            context={"topic": "billing"},
        )
    )
    return "C1"
