"""Conversation buffering: keys, storage, early release and rendering."""

from .heuristics import DEFAULT_ACTION_INDICATORS, ReleasePolicy, should_release_now
from .keys import conversation_key
from .models import BufferedMessage, Conversation, ConversationFinalizedError
from .render import parse_rendered, render_conversation
from .store import ConversationStore, KeyedLock

__all__ = [
    "BufferedMessage",
    "Conversation",
    "ConversationFinalizedError",
    "ConversationStore",
    "DEFAULT_ACTION_INDICATORS",
    "KeyedLock",
    "ReleasePolicy",
    "conversation_key",
    "parse_rendered",
    "render_conversation",
    "should_release_now",
]
