"""Event-sourced conversation core."""

from .aggregate import Conversation, ConversationPolicy, apply, decide, replay
from .app import Application, IApplication
from .config import Settings
from .errors import (
    ConcurrencyConflict,
    ConversationAlreadyEnded,
    ConversationAlreadyExists,
    ConversationError,
    ConversationNotActive,
    ConversationNotFound,
    InvalidTransition,
    StorageUnavailable,
    UnknownParticipant,
    UnknownTopic,
    ValidationFailed,
)
from .event_bus import ALL_EVENTS, EventBus, IEventBus
from .event_log import IEventLog, InMemoryEventLog, SqliteEventLog
from .handlers import ConversationCommandHandler, ICommandHandler
from .projections import (
    ConversationView,
    HistoryEntry,
    IProjectionBuilder,
    ProjectionBuilder,
    ProjectionStore,
)
from .queries import ConversationFilter, IQueryService, Pagination, QueryService

__all__ = [
    # Application
    "Application",
    "IApplication",
    "Settings",
    # Aggregate
    "Conversation",
    "ConversationPolicy",
    "apply",
    "decide",
    "replay",
    # Errors
    "ConversationError",
    "ValidationFailed",
    "InvalidTransition",
    "ConversationNotActive",
    "ConversationAlreadyEnded",
    "ConversationAlreadyExists",
    "UnknownParticipant",
    "UnknownTopic",
    "ConversationNotFound",
    "ConcurrencyConflict",
    "StorageUnavailable",
    # Components
    "IEventLog",
    "InMemoryEventLog",
    "SqliteEventLog",
    "IEventBus",
    "EventBus",
    "ALL_EVENTS",
    "ICommandHandler",
    "ConversationCommandHandler",
    "IProjectionBuilder",
    "ProjectionBuilder",
    "ProjectionStore",
    "ConversationView",
    "HistoryEntry",
    "IQueryService",
    "QueryService",
    "ConversationFilter",
    "Pagination",
]
