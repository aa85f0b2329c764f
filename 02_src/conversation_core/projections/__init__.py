"""Projections module."""

from .builder import IProjectionBuilder, ProjectionBuilder
from .views import (
    ConversationView,
    HistoryEntry,
    ParticipantView,
    ProjectionStore,
    TopicView,
)

__all__ = [
    "IProjectionBuilder",
    "ProjectionBuilder",
    "ProjectionStore",
    "ConversationView",
    "ParticipantView",
    "HistoryEntry",
    "TopicView",
]
