"""
Eviction policies for the conversation state store.

The store never drops a conversation on its own. A policy decides which
ids may go; conversations with turns in flight are always kept.
"""

from __future__ import annotations

from typing import Optional

from ..domain.entities import ConversationState
from ..domain.ports import IEvictionPolicy


class NoEviction(IEvictionPolicy):
    """Keep every conversation for the life of the process."""

    def select_evictions(self, conversations, protected, now, last_access) -> list[str]:
        return []


class LRUTTLEviction(IEvictionPolicy):
    """Evict idle conversations, then the least recently used over capacity.

    Args:
        max_entries: Upper bound on stored conversations (None = unbounded)
        ttl_seconds: Idle time after which a conversation expires (None = never)
    """

    def __init__(
        self,
        max_entries: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
    ):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds

    def select_evictions(
        self,
        conversations: dict[str, ConversationState],
        protected: set[str],
        now: float,
        last_access: dict[str, float],
    ) -> list[str]:
        evict: list[str] = []
        candidates = [cid for cid in conversations if cid not in protected]

        if self.ttl_seconds is not None:
            for cid in candidates:
                if now - last_access.get(cid, now) >= self.ttl_seconds:
                    evict.append(cid)

        if self.max_entries is not None:
            remaining = len(conversations) - len(evict)
            if remaining > self.max_entries:
                expired = set(evict)
                by_age = sorted(
                    (cid for cid in candidates if cid not in expired),
                    key=lambda cid: last_access.get(cid, 0.0),
                )
                evict.extend(by_age[: remaining - self.max_entries])

        return evict
