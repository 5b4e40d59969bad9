"""
Maya request-orchestration core.

Turns one inbound user utterance into an aggregated result by dispatching
it to independently pluggable capability providers, managing
per-conversation state, and caching provider results across a local
in-process tier and a remote durable tier.

Architecture:
- Domain: Core entities and port interfaces
- Providers: Capability provider contract and registry
- Skills: Named handlers behind a uniform failure boundary
- Routing: Keyword intent router
- Cache: Local-first hybrid cache with Redis/JSONbin remote tiers
- Memory: Conversation state with ordered turn commits
- Orchestrator: Validation, parallel dispatch, aggregation
"""

# Domain entities
from .domain.entities import (
    CallContext,
    ConversationState,
    OrchestrationResult,
    OrchestrationStage,
    ProviderResult,
    SkillResult,
    Turn,
    UserTier,
)

# Providers
from .providers import (
    CapabilityProvider,
    FunctionProvider,
    NullProvider,
    ProviderRegistry,
)

# Skills and routing
from .skills import SkillExecutor
from .routing import IntentRule, KeywordIntentRouter

# Cache
from .cache import (
    CacheConfig,
    HybridCache,
    InMemoryRemoteCache,
    JSONBinCacheBackend,
    RedisCacheBackend,
)

# Memory
from .memory import ConversationStore, LRUTTLEviction, NoEviction

# Orchestrator
from .orchestrator import (
    Orchestrator,
    OrchestratorConfig,
    RequestEnvelope,
    get_orchestrator,
    init_orchestrator,
)

__all__ = [
    # Entities
    "CallContext",
    "ConversationState",
    "OrchestrationResult",
    "OrchestrationStage",
    "ProviderResult",
    "SkillResult",
    "Turn",
    "UserTier",
    # Providers
    "CapabilityProvider",
    "FunctionProvider",
    "NullProvider",
    "ProviderRegistry",
    # Skills and routing
    "SkillExecutor",
    "IntentRule",
    "KeywordIntentRouter",
    # Cache
    "CacheConfig",
    "HybridCache",
    "InMemoryRemoteCache",
    "JSONBinCacheBackend",
    "RedisCacheBackend",
    # Memory
    "ConversationStore",
    "LRUTTLEviction",
    "NoEviction",
    # Orchestrator
    "Orchestrator",
    "OrchestratorConfig",
    "RequestEnvelope",
    "get_orchestrator",
    "init_orchestrator",
]
