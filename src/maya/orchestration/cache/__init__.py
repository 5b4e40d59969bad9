"""Two-tier result cache and its remote backends."""

from .backends import (
    InMemoryRemoteCache,
    JSONBinCacheBackend,
    JSONBinConfig,
    RedisCacheBackend,
)
from .hybrid_cache import CacheConfig, HybridCache

__all__ = [
    "CacheConfig",
    "HybridCache",
    "InMemoryRemoteCache",
    "JSONBinCacheBackend",
    "JSONBinConfig",
    "RedisCacheBackend",
]
