"""Conversation state, eviction policies and derived context."""

from .conversation_store import ConversationStore, TurnSequencer, TurnTicket
from .derived_context import detect_emotion, friendship_level, update_derived_context
from .eviction import LRUTTLEviction, NoEviction

__all__ = [
    "ConversationStore",
    "LRUTTLEviction",
    "NoEviction",
    "TurnSequencer",
    "TurnTicket",
    "detect_emotion",
    "friendship_level",
    "update_derived_context",
]
