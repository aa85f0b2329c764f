"""Application bootstrap and lifecycle management."""

from typing import Protocol

from .aggregate import ConversationPolicy
from .config import Settings
from .event_bus import ALL_EVENTS, EventBus
from .event_log import IEventLog, InMemoryEventLog, SqliteEventLog
from .handlers import ConversationCommandHandler
from .logging_config import get_logger
from .projections import ProjectionBuilder
from .queries import QueryService

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Drop all conversations (test runs)."""
        ...

    @property
    def commands(self) -> ConversationCommandHandler:
        ...

    @property
    def queries(self) -> QueryService:
        ...


class Application:
    """Wires event log, bus, command handler, projections and queries."""

    def __init__(self, settings: Settings | None = None, db_path: str | None = None):
        self._settings = settings or Settings.from_env()
        self._db_path = db_path if db_path is not None else self._settings.database_url

        # Components (initialized in start())
        self._event_log: IEventLog | None = None
        self._event_bus: EventBus | None = None
        self._projection_builder: ProjectionBuilder | None = None
        self._command_handler: ConversationCommandHandler | None = None
        self._query_service: QueryService | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")
        settings = self._settings

        # 1. Event log (no dependencies)
        if settings.event_log_backend == "memory":
            self._event_log = InMemoryEventLog()
        else:
            self._event_log = SqliteEventLog(self._db_path)
        await self._event_log.init()
        logger.info("Event log initialized (%s)", settings.event_log_backend)

        # 2. EventBus
        self._event_bus = EventBus()

        # 3. Projections, rebuilt from the log before serving reads
        self._projection_builder = ProjectionBuilder(self._event_log)
        await self._projection_builder.rebuild()
        self._event_bus.subscribe(ALL_EVENTS, self._projection_builder.handle)

        # 4. Command handler (depends on EventLog + EventBus)
        self._command_handler = ConversationCommandHandler(
            event_log=self._event_log,
            event_bus=self._event_bus,
            policy=ConversationPolicy(
                require_agent=settings.require_agent,
                max_participants=settings.max_participants,
            ),
            max_attempts=settings.command_max_attempts,
            retry_base_delay=settings.command_retry_base_delay,
            retry_max_delay=settings.command_retry_max_delay,
            snapshot_cache_size=settings.snapshot_cache_size,
        )

        # 5. Query service (depends on projections)
        self._query_service = QueryService(self._projection_builder.store)
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._event_log:
            await self._event_log.close()
            logger.info("Event log closed")

    async def reset(self) -> None:
        """Drop all conversations (test runs)."""
        if self._event_log:
            await self._event_log.clear()
        if self._command_handler:
            self._command_handler.forget()
        if self._projection_builder:
            await self._projection_builder.rebuild()
        logger.info("Reset complete")

    @property
    def event_log(self) -> IEventLog:
        """Get event log instance."""
        if not self._event_log:
            raise RuntimeError("Application not started")
        return self._event_log

    @property
    def event_bus(self) -> EventBus:
        """Get event bus instance."""
        if not self._event_bus:
            raise RuntimeError("Application not started")
        return self._event_bus

    @property
    def commands(self) -> ConversationCommandHandler:
        """Get command handler instance."""
        if not self._command_handler:
            raise RuntimeError("Application not started")
        return self._command_handler

    @property
    def projections(self) -> ProjectionBuilder:
        """Get projection builder instance."""
        if not self._projection_builder:
            raise RuntimeError("Application not started")
        return self._projection_builder

    @property
    def queries(self) -> QueryService:
        """Get query service instance."""
        if not self._query_service:
            raise RuntimeError("Application not started")
        return self._query_service
