"""
Remote cache backends.

Durable tiers for the HybridCache. Each backend implements IRemoteCache and
may raise CacheUnavailableError; the hybrid cache turns those into misses.

Backends:
- RedisCacheBackend: any async Redis client (JSON values, SETEX TTL)
- JSONBinCacheBackend: JSONbin.io over aiohttp (one bin per key)
- InMemoryRemoteCache: process-local stand-in for development and tests

Environment Variables:
- JSONBIN_API_KEY: JSONbin access key (backend reports "disabled" without it)
- JSONBIN_BASE_URL: API root (default: https://api.jsonbin.io/v3)
- MAYA_CACHE_REDIS_PREFIX: Key prefix for Redis (default: maya:cache)
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

from ...common.exceptions import CacheUnavailableError
from ..domain.ports import IRedisClient, IRemoteCache

logger = logging.getLogger(__name__)


# ============================================
# Redis
# ============================================


class RedisCacheBackend(IRemoteCache):
    """Remote tier backed by an injected async Redis client.

    Usage:
        import redis.asyncio as redis

        backend = RedisCacheBackend(redis.from_url("redis://localhost:6379"))
        cache = HybridCache(remote=backend)
    """

    def __init__(
        self,
        redis_client: IRedisClient,
        key_prefix: Optional[str] = None,
    ):
        self.redis = redis_client
        self.key_prefix = key_prefix or os.getenv("MAYA_CACHE_REDIS_PREFIX", "maya:cache")

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.redis.get(self._key(key))
        except Exception as e:
            raise CacheUnavailableError(
                f"Redis read failed: {e}", backend="redis", operation="get", cause=e
            )
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.redis.setex(self._key(key), max(1, int(ttl_seconds)), json.dumps(value))
        except Exception as e:
            raise CacheUnavailableError(
                f"Redis write failed: {e}", backend="redis", operation="set", cause=e
            )

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except Exception as e:
            raise CacheUnavailableError(
                f"Redis delete failed: {e}", backend="redis", operation="delete", cause=e
            )

    async def clear(self) -> None:
        try:
            keys = await self.redis.keys(f"{self.key_prefix}:*")
            if keys:
                await self.redis.delete(*keys)
        except Exception as e:
            raise CacheUnavailableError(
                f"Redis clear failed: {e}", backend="redis", operation="clear", cause=e
            )

    async def health_check(self) -> dict[str, Any]:
        try:
            await self.redis.ping()
            return {"status": "healthy", "backend": "redis"}
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return {"status": "unhealthy", "backend": "redis", "message": str(e)}


# ============================================
# JSONbin
# ============================================


@dataclass
class JSONBinConfig:
    """Configuration for the JSONbin backend."""

    api_key: Optional[str] = field(default_factory=lambda: os.getenv("JSONBIN_API_KEY") or None)
    base_url: str = field(
        default_factory=lambda: os.getenv("JSONBIN_BASE_URL", "https://api.jsonbin.io/v3")
    )
    timeout: float = 10.0
    private: bool = True


class JSONBinCacheBackend(IRemoteCache):
    """Remote tier backed by JSONbin.io.

    Each cache key maps to one bin. The key to bin-id mapping is held in
    process; a key this instance has never written is a miss.

    Usage:
        backend = JSONBinCacheBackend(JSONBinConfig(api_key="..."))
        cache = HybridCache(remote=backend)
        ...
        await backend.close()
    """

    def __init__(self, config: Optional[JSONBinConfig] = None):
        self.config = config or JSONBinConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._bins: dict[str, str] = {}

        if not self.config.api_key:
            logger.warning("JSONbin API key not provided - remote caching disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.config.api_key)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _headers(self, bin_name: Optional[str] = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Access-Key": self.config.api_key or "",
        }
        if bin_name:
            headers["X-Bin-Name"] = bin_name[:128]
            headers["X-Bin-Private"] = "true" if self.config.private else "false"
        return headers

    def _require_key(self, operation: str) -> None:
        if not self.enabled:
            raise CacheUnavailableError(
                "JSONbin API key not configured", backend="jsonbin", operation=operation
            )

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        payload: Any = None,
        bin_name: Optional[str] = None,
    ) -> dict[str, Any]:
        session = await self._get_session()
        url = f"{self.config.base_url}{path}"
        try:
            async with session.request(
                method,
                url,
                headers=self._headers(bin_name),
                json=payload,
            ) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise CacheUnavailableError(
                        f"JSONbin API error: {response.status} - {text}",
                        backend="jsonbin",
                        operation=operation,
                    )
                if response.content_type == "application/json":
                    return await response.json()
                return {}
        except aiohttp.ClientError as e:
            raise CacheUnavailableError(
                f"Failed to reach JSONbin: {e}",
                backend="jsonbin",
                operation=operation,
                cause=e,
            )

    async def create_bin(self, name: str, data: Any) -> str:
        """Create a bin and return its id."""
        self._require_key("create")
        result = await self._request("POST", "/b", "create", payload=data, bin_name=name)
        bin_id = result.get("metadata", {}).get("id")
        if not bin_id:
            raise CacheUnavailableError(
                "JSONbin response did not include a bin id",
                backend="jsonbin",
                operation="create",
            )
        logger.debug(f"Created JSONbin {name} ({bin_id})")
        return bin_id

    async def delete_bin(self, bin_id: str) -> None:
        self._require_key("delete")
        await self._request("DELETE", f"/b/{bin_id}", "delete")

    async def get(self, key: str) -> Optional[Any]:
        self._require_key("get")
        bin_id = self._bins.get(key)
        if bin_id is None:
            return None
        result = await self._request("GET", f"/b/{bin_id}/latest", "get")
        record = result.get("record")
        if isinstance(record, dict) and "value" in record:
            return record["value"]
        return record

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._require_key("set")
        record = {"key": key, "value": value, "ttl_seconds": ttl_seconds, "written_at": time.time()}
        bin_id = self._bins.get(key)
        if bin_id is None:
            self._bins[key] = await self.create_bin(key, record)
        else:
            await self._request("PUT", f"/b/{bin_id}", "set", payload=record)

    async def delete(self, key: str) -> None:
        bin_id = self._bins.pop(key, None)
        if bin_id is not None:
            await self.delete_bin(bin_id)

    async def clear(self) -> None:
        bins = list(self._bins.values())
        self._bins.clear()
        for bin_id in bins:
            await self.delete_bin(bin_id)

    async def health_check(self) -> dict[str, Any]:
        if not self.enabled:
            return {"status": "disabled", "backend": "jsonbin", "message": "API key not configured"}
        try:
            bin_id = await self.create_bin("health-check", {"test": True, "timestamp": time.time()})
            await self.delete_bin(bin_id)
            return {"status": "healthy", "backend": "jsonbin"}
        except CacheUnavailableError as e:
            return {"status": "unhealthy", "backend": "jsonbin", "message": e.message}


# ============================================
# In-memory
# ============================================


class InMemoryRemoteCache(IRemoteCache):
    """Process-local remote tier for single-instance deployments and tests.

    Honors TTLs so expiry behaves like the durable backends.
    """

    def __init__(self):
        self._data: dict[str, tuple[Any, float]] = {}

    async def get(self, key: str) -> Optional[Any]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at < time.monotonic():
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._data[key] = (value, time.monotonic() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy", "backend": "memory", "size": len(self._data)}

    def __len__(self) -> int:
        return len(self._data)
