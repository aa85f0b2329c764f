"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..app import Application
from ..errors import (
    ConcurrencyConflict,
    ConversationError,
    ConversationNotFound,
    InvalidTransition,
    StorageUnavailable,
    UnknownParticipant,
    UnknownTopic,
    ValidationFailed,
)
from .routes import commands, queries

_STATUS_CODES: list[tuple[type[ConversationError], int]] = [
    (ConversationNotFound, 404),
    (ValidationFailed, 422),
    (UnknownParticipant, 422),
    (UnknownTopic, 422),
    (InvalidTransition, 409),
    (ConcurrencyConflict, 409),
    (StorageUnavailable, 503),
]

# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def status_code_for(error: ConversationError) -> int:
    """HTTP status for a rejected command."""
    for error_type, status_code in _STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


async def conversation_error_handler(request: Request, exc: ConversationError) -> JSONResponse:
    return JSONResponse(status_code=status_code_for(exc), content=exc.to_dict())


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    application = application or get_app()

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        await application.start()
        yield
        await application.stop()

    fastapi_app = FastAPI(
        title="Conversation Core API",
        description="Command ingress and read API for event-sourced conversations",
        version="0.1.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    fastapi_app.add_exception_handler(ConversationError, conversation_error_handler)

    fastapi_app.include_router(commands.create_commands_router(application))
    fastapi_app.include_router(queries.create_queries_router(application))

    return fastapi_app
