"""
Domain entities for the orchestration core.

These are pure domain objects with no infrastructure dependencies.
They define the core data structures that flow between the orchestrator,
the provider registry, the skill executor, the cache and the conversation
store.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

# ============================================
# Request Types
# ============================================


class UserTier(str, Enum):
    """Service tier of the calling user."""

    GUEST = "guest"
    STANDARD = "standard"
    PREMIUM = "premium"


@dataclass(frozen=True)
class CallContext:
    """Caller-supplied fallbacks for identity fields.

    Attributes:
        user_id: Used when the request carries no user id
        conversation_id: Used when the request carries no conversation id
        tier: Used when the request carries no tier
    """

    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    tier: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> "CallContext":
        if value is None:
            return cls()
        if isinstance(value, CallContext):
            return value
        return cls(
            user_id=value.get("user_id") or value.get("userId"),
            conversation_id=value.get("conversation_id") or value.get("conversationId"),
            tier=value.get("tier"),
        )


# ============================================
# Orchestration Stages
# ============================================


class OrchestrationStage(str, Enum):
    """Lifecycle of one orchestrate() call.

    received -> validated -> intent_resolved -> dispatching -> aggregating
    -> completed, or failed from any stage.
    """

    RECEIVED = "received"
    VALIDATED = "validated"
    INTENT_RESOLVED = "intent_resolved"
    DISPATCHING = "dispatching"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================
# Results
# ============================================


@dataclass
class ProviderResult:
    """Outcome of invoking one capability.

    Attributes:
        provider_name: Name of the provider or skill that ran
        capability: Capability that was requested
        success: Whether the invocation succeeded
        payload: Provider output (None on failure)
        error: Error message on failure
        elapsed_ms: Wall time across all attempts
        timed_out: True when the call hit its time budget
        attempts: Number of attempts made (retries included)
        cached: True when served from the hybrid cache
        stub: True when produced by the NullProvider
        error_code: Machine-readable error code on failure
    """

    provider_name: str
    capability: str
    success: bool
    payload: Any = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    timed_out: bool = False
    attempts: int = 1
    cached: bool = False
    stub: bool = False
    error_code: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_name": self.provider_name,
            "capability": self.capability,
            "success": self.success,
            "payload": self.payload,
            "error": self.error,
            "elapsed_ms": self.elapsed_ms,
            "timed_out": self.timed_out,
            "attempts": self.attempts,
            "cached": self.cached,
            "stub": self.stub,
            "error_code": self.error_code,
        }


@dataclass
class OrchestrationResult:
    """The response envelope returned by Orchestrator.orchestrate().

    Attributes:
        success: True when at least one capability succeeded (or all, when
            the request set require_all)
        data: Per-capability results
        metadata: request_id, response_time_ms, conversation_id, intent,
            capabilities, interaction_count, partial, stage
        error: Error message for failed requests
        error_code: Machine-readable error code for failed requests
    """

    success: bool
    data: dict[str, ProviderResult] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def request_id(self) -> Optional[str]:
        return self.metadata.get("request_id")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "data": {name: r.to_dict() for name, r in self.data.items()},
            "metadata": dict(self.metadata),
        }
        if self.error is not None:
            result["error"] = self.error
            result["error_code"] = self.error_code
        return result


@dataclass
class SkillResult:
    """Outcome of running a skill handler.

    Attributes:
        skill_name: Skill that was requested
        success: Whether the handler completed successfully
        result: Handler return value on success
        error: Error message on failure
        error_code: Machine-readable error code on failure
        available: Registered skill names (set when the skill was not found)
        execution_time_ms: Handler wall time
    """

    skill_name: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    available: Optional[list[str]] = None
    execution_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "skill": self.skill_name,
            "success": self.success,
            "execution_time_ms": self.execution_time_ms,
        }
        if self.success:
            data["result"] = self.result
        else:
            data["error"] = self.error
            data["error_code"] = self.error_code
            if self.available is not None:
                data["available"] = self.available
        return data


@dataclass(frozen=True)
class IntentMatch:
    """Intent detected for a message and the capabilities it expands to."""

    intent: str
    capabilities: tuple[str, ...]
    matched_keyword: Optional[str] = None


# ============================================
# Conversation State
# ============================================


@dataclass
class Turn:
    """One committed user turn."""

    message: str
    request_id: str
    intent: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "request_id": self.request_id,
            "intent": self.intent,
        }


@dataclass
class ConversationState:
    """Per-conversation state.

    Attributes:
        id: Conversation identifier
        user_id: Owner of the conversation
        turn_history: Committed turns in arrival order
        interaction_count: Number of committed turns
        derived_context: Emotional state, friendship level, last intent
        created_at: Creation timestamp
        last_interaction_at: Timestamp of the last committed turn
    """

    id: str
    user_id: str
    turn_history: list[Turn] = field(default_factory=list)
    interaction_count: int = 0
    derived_context: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    last_interaction_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("conversation id is required")
        if self.created_at is None:
            self.created_at = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "turn_history": [t.to_dict() for t in self.turn_history],
            "interaction_count": self.interaction_count,
            "derived_context": dict(self.derived_context),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_interaction_at": (
                self.last_interaction_at.isoformat()
                if self.last_interaction_at
                else None
            ),
        }


# ============================================
# Cache Types
# ============================================


class CacheSource(str, Enum):
    """Tier a cached value was served from."""

    LOCAL = "local"
    REMOTE = "remote"
    NONE = "none"


@dataclass
class CacheEntry:
    """A value held in the local cache tier."""

    key: str
    value: Any
    written_at_local: float = field(default_factory=time.monotonic)
    source: CacheSource = CacheSource.LOCAL

    def age_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.monotonic()) - self.written_at_local


@dataclass(frozen=True)
class CacheLookup:
    """Result of HybridCache.get()."""

    found: bool
    value: Any = None
    source: CacheSource = CacheSource.NONE
    age_ms: Optional[float] = None


@dataclass
class CacheWriteResult:
    """Result of HybridCache.set().

    ``sync_task`` is the background remote write, when one was scheduled.
    Callers normally ignore it.
    """

    success: bool
    source: CacheSource = CacheSource.LOCAL
    sync_scheduled: bool = False
    sync_task: Optional[Any] = None
