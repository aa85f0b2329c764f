"""Error taxonomy for the conversation core.

Every rejection carries a stable ``code``, the conversation it concerns and
whether retrying the whole decide-and-append cycle can help.
"""

from typing import Any


class ConversationError(Exception):
    """Base class for all errors raised by the conversation core."""

    code = "conversation_error"
    retryable = False

    def __init__(
        self,
        message: str,
        conversation_id: str | None = None,
        **details: Any,
    ):
        super().__init__(message)
        self.message = message
        self.conversation_id = conversation_id
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Structured form used by the API layer and in logs."""
        return {
            "code": self.code,
            "message": self.message,
            "conversation_id": self.conversation_id,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationFailed(ConversationError):
    """Malformed command input."""

    code = "validation_failed"


class InvalidTransition(ConversationError):
    """Command is not legal in the conversation's current state."""

    code = "invalid_transition"


class ConversationNotActive(InvalidTransition):
    code = "conversation_not_active"


class ConversationAlreadyEnded(InvalidTransition):
    code = "conversation_ended"


class ConversationAlreadyExists(InvalidTransition):
    code = "conversation_already_exists"


class UnknownParticipant(ConversationError):
    """Referenced participant is not part of the conversation."""

    code = "unknown_participant"


class UnknownTopic(ConversationError):
    """Referenced topic was never opened in the conversation."""

    code = "unknown_topic"


class ConversationNotFound(ConversationError):
    """Command targets a conversation that was never started."""

    code = "conversation_not_found"


class ConcurrencyConflict(ConversationError):
    """Someone else appended between our read and our append."""

    code = "concurrency_conflict"
    retryable = True

    def __init__(self, conversation_id: str, expected: int, actual: int):
        super().__init__(
            f"Expected last sequence {expected}, found {actual}",
            conversation_id,
            expected=expected,
            actual=actual,
        )
        self.expected = expected
        self.actual = actual


class StorageUnavailable(ConversationError):
    """The event log storage failed."""

    code = "storage_unavailable"
    retryable = True
