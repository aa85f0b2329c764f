"""Command handlers module."""

from .command_handler import ConversationCommandHandler, ICommandHandler

__all__ = ["ConversationCommandHandler", "ICommandHandler"]
