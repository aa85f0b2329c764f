"""Conversation aggregate module."""

from .conversation import (
    DEFAULT_POLICY,
    Conversation,
    ConversationPolicy,
    apply,
    decide,
    merge_context,
    replay,
)

__all__ = [
    "Conversation",
    "ConversationPolicy",
    "DEFAULT_POLICY",
    "apply",
    "decide",
    "merge_context",
    "replay",
]
