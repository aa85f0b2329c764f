"""Query module."""

from .query_service import (
    ConversationFilter,
    ConversationStatistics,
    IQueryService,
    Pagination,
    QueryService,
)

__all__ = [
    "ConversationFilter",
    "ConversationStatistics",
    "IQueryService",
    "Pagination",
    "QueryService",
]
