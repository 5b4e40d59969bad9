"""
Port interfaces (abstract base classes) for the orchestration core.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional, Protocol

if TYPE_CHECKING:
    from .entities import ConversationState, IntentMatch


# ============================================
# Remote Cache Interface
# ============================================


class IRemoteCache(ABC):
    """Interface for the durable (remote) cache tier.

    Implementations may raise on failure; the hybrid cache converts every
    exception into a miss.
    """

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None on a miss."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value with a time-to-live."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Return {"status": "healthy" | "disabled" | "unhealthy", ...}."""
        pass


class IRedisClient(Protocol):
    """Protocol for an async Redis client (for dependency injection)."""

    async def get(self, key: str) -> Optional[str]:
        """Get a key value."""
        ...

    async def setex(self, key: str, ttl: int, value: str) -> None:
        """Set a key with expiration."""
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys."""
        ...

    async def keys(self, pattern: str) -> list:
        """List keys matching a glob pattern."""
        ...

    async def ping(self) -> bool:
        """Check connectivity."""
        ...


# ============================================
# Intent Router Interface
# ============================================


class IIntentRouter(ABC):
    """Interface for mapping a raw message to the capabilities to invoke."""

    @abstractmethod
    def detect_intent(self, raw_message: str) -> str:
        """Return the intent name for a message."""
        pass

    @abstractmethod
    def route(self, raw_message: str) -> IntentMatch:
        """Return the intent and the capabilities it expands to."""
        pass


# ============================================
# Eviction Policy Interface
# ============================================


class IEvictionPolicy(ABC):
    """Decides which conversations the state store may drop."""

    @abstractmethod
    def select_evictions(
        self,
        conversations: dict[str, ConversationState],
        protected: set[str],
        now: float,
        last_access: dict[str, float],
    ) -> list[str]:
        """Return conversation ids to evict.

        Args:
            conversations: All stored conversations by id
            protected: Ids that must not be evicted (turns in flight)
            now: Current monotonic time
            last_access: Monotonic time of last access by id
        """
        pass
