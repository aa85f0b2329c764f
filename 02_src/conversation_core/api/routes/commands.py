"""Command ingress API routes."""

from fastapi import APIRouter

from ...app import IApplication
from ...models import (
    AddParticipant,
    CompleteTopic,
    EndConversation,
    PauseConversation,
    ResumeConversation,
    SendMessage,
    SetMetadata,
    StartConversation,
    StructuredContent,
    SwitchTopic,
    UpdateContext,
    new_id,
)
from ..schemas import (
    CommandResponse,
    CompleteTopicRequest,
    EndConversationRequest,
    ParticipantModel,
    SendMessageRequest,
    SetMetadataRequest,
    StartConversationRequest,
    SwitchTopicRequest,
    UpdateContextRequest,
    command_response,
)


def create_commands_router(app: IApplication) -> APIRouter:
    """Create command router.

    Rejections propagate as ConversationError and are mapped to HTTP
    responses by the handler registered in ``create_fastapi_app``.
    """
    router = APIRouter(prefix="/api/conversations", tags=["commands"])

    @router.post("", response_model=CommandResponse, status_code=201)
    async def start_conversation(request: StartConversationRequest) -> dict:
        """Start a conversation."""
        conversation_id = request.conversation_id or new_id()
        records = await app.commands.handle(
            StartConversation(
                conversation_id=conversation_id,
                participants=tuple(p.to_participant() for p in request.participants),
                context=dict(request.context),
                conversation_type=request.conversation_type,
            )
        )
        return command_response(conversation_id, records)

    @router.post("/{conversation_id}/messages", response_model=CommandResponse)
    async def send_message(conversation_id: str, request: SendMessageRequest) -> dict:
        """Send a text or structured message."""
        if request.payload is not None:
            content = StructuredContent(
                payload=request.payload, format_type=request.format_type or ""
            )
        else:
            content = request.body or ""

        records = await app.commands.handle(
            SendMessage(
                conversation_id=conversation_id,
                sender_id=request.sender_id,
                content=content,
                attachments=tuple(a.to_ref() for a in request.attachments),
                metadata=dict(request.metadata),
                message_id=request.message_id,
            )
        )
        return command_response(conversation_id, records)

    @router.post("/{conversation_id}/participants", response_model=CommandResponse)
    async def add_participant(conversation_id: str, request: ParticipantModel) -> dict:
        """Add a participant. Re-adding a known id appends nothing."""
        records = await app.commands.handle(
            AddParticipant(
                conversation_id=conversation_id,
                participant=request.to_participant(),
            )
        )
        return command_response(conversation_id, records)

    @router.post("/{conversation_id}/pause", response_model=CommandResponse)
    async def pause_conversation(conversation_id: str) -> dict:
        records = await app.commands.handle(
            PauseConversation(conversation_id=conversation_id)
        )
        return command_response(conversation_id, records)

    @router.post("/{conversation_id}/resume", response_model=CommandResponse)
    async def resume_conversation(conversation_id: str) -> dict:
        records = await app.commands.handle(
            ResumeConversation(conversation_id=conversation_id)
        )
        return command_response(conversation_id, records)

    @router.post("/{conversation_id}/end", response_model=CommandResponse)
    async def end_conversation(
        conversation_id: str, request: EndConversationRequest | None = None
    ) -> dict:
        records = await app.commands.handle(
            EndConversation(
                conversation_id=conversation_id,
                reason=request.reason if request else None,
            )
        )
        return command_response(conversation_id, records)

    @router.put("/{conversation_id}/context", response_model=CommandResponse)
    async def update_context(conversation_id: str, request: UpdateContextRequest) -> dict:
        """Merge into or replace the conversation context."""
        records = await app.commands.handle(
            UpdateContext(
                conversation_id=conversation_id,
                values=dict(request.values),
                mode=request.mode,
            )
        )
        return command_response(conversation_id, records)

    @router.post("/{conversation_id}/topics", response_model=CommandResponse)
    async def switch_topic(conversation_id: str, request: SwitchTopicRequest) -> dict:
        """Make a topic current, opening it if it is new."""
        records = await app.commands.handle(
            SwitchTopic(
                conversation_id=conversation_id,
                topic_id=request.topic_id,
                name=request.name,
            )
        )
        return command_response(conversation_id, records)

    @router.post(
        "/{conversation_id}/topics/{topic_id}/complete", response_model=CommandResponse
    )
    async def complete_topic(
        conversation_id: str, topic_id: str, request: CompleteTopicRequest | None = None
    ) -> dict:
        records = await app.commands.handle(
            CompleteTopic(
                conversation_id=conversation_id,
                topic_id=topic_id,
                resolution=request.resolution if request else None,
            )
        )
        return command_response(conversation_id, records)

    @router.put("/{conversation_id}/metadata", response_model=CommandResponse)
    async def set_metadata(conversation_id: str, request: SetMetadataRequest) -> dict:
        records = await app.commands.handle(
            SetMetadata(
                conversation_id=conversation_id,
                key=request.key,
                value=request.value,
            )
        )
        return command_response(conversation_id, records)

    return router
