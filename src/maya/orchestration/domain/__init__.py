"""Domain entities and port interfaces for the orchestration core."""

from .entities import (
    CacheEntry,
    CacheLookup,
    CacheSource,
    CacheWriteResult,
    CallContext,
    ConversationState,
    IntentMatch,
    OrchestrationResult,
    OrchestrationStage,
    ProviderResult,
    SkillResult,
    Turn,
    UserTier,
)
from .ports import (
    IEvictionPolicy,
    IIntentRouter,
    IRedisClient,
    IRemoteCache,
)

__all__ = [
    # Entities
    "CacheEntry",
    "CacheLookup",
    "CacheSource",
    "CacheWriteResult",
    "CallContext",
    "ConversationState",
    "IntentMatch",
    "OrchestrationResult",
    "OrchestrationStage",
    "ProviderResult",
    "SkillResult",
    "Turn",
    "UserTier",
    # Ports
    "IEvictionPolicy",
    "IIntentRouter",
    "IRedisClient",
    "IRemoteCache",
]
