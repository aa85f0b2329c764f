"""Read API routes."""

import dataclasses
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query

from ...app import IApplication
from ...models import ConversationStatus, ConversationType
from ...projections import ConversationView
from ...queries import ConversationFilter, Pagination
from ..schemas import ConversationResponse, HistoryEntryResponse, StatisticsResponse


def _view_to_dict(view: ConversationView) -> dict:
    data = dataclasses.asdict(view)
    data["participant_count"] = view.participant_count
    return data


def create_queries_router(app: IApplication) -> APIRouter:
    """Create read router."""
    router = APIRouter(prefix="/api", tags=["queries"])

    @router.get("/conversations", response_model=list[ConversationResponse])
    async def list_conversations(
        status: ConversationStatus | None = Query(None),
        participant_id: str | None = Query(None),
        conversation_type: ConversationType | None = Query(None),
        active_since: datetime | None = Query(None, description="ISO timestamp filter"),
        started_after: datetime | None = Query(None),
        started_before: datetime | None = Query(None),
        offset: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=1000),
    ) -> list[dict]:
        """List conversations, most recently active first.

        Timestamps without an offset are read as UTC.
        """
        views = await app.queries.list_conversations(
            ConversationFilter(
                status=status,
                participant_id=participant_id,
                active_since=active_since,
                conversation_type=conversation_type,
                started_after=started_after,
                started_before=started_before,
            ),
            Pagination(offset=offset, limit=limit),
        )
        return [_view_to_dict(v) for v in views]

    # Declared before /conversations/{conversation_id} so "search" is not an id.
    @router.get("/conversations/search", response_model=list[ConversationResponse])
    async def search_conversations(
        q: str = Query(..., min_length=1, description="Case-insensitive message text"),
        offset: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=1000),
    ) -> list[dict]:
        views = await app.queries.search_conversations(
            q, Pagination(offset=offset, limit=limit)
        )
        return [_view_to_dict(v) for v in views]

    @router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
    async def get_conversation(conversation_id: str) -> dict:
        view = await app.queries.get_conversation(conversation_id)
        if view is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return _view_to_dict(view)

    @router.get(
        "/conversations/{conversation_id}/history",
        response_model=list[HistoryEntryResponse],
    )
    async def get_history(
        conversation_id: str,
        sender_id: str | None = Query(None),
        search: str | None = Query(None, description="Case-insensitive text search"),
        topic_id: str | None = Query(None),
        since: datetime | None = Query(None),
        until: datetime | None = Query(None),
        offset: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=1000),
    ) -> list[dict]:
        entries = await app.queries.get_history(
            conversation_id,
            Pagination(offset=offset, limit=limit),
            sender_id=sender_id,
            search=search,
            topic_id=topic_id,
            since=since,
            until=until,
        )
        if entries is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return [dataclasses.asdict(e) for e in entries]

    @router.get("/statistics", response_model=StatisticsResponse)
    async def get_statistics() -> dict:
        return dataclasses.asdict(await app.queries.get_statistics())

    return router
