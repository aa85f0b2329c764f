from .event_log import IEventLog, InMemoryEventLog
from .sqlite import SqliteEventLog

__all__ = ["IEventLog", "InMemoryEventLog", "SqliteEventLog"]
