"""
Hybrid Cache - local-first with remote fallback.

Strategy:
1. Reads check the in-process tier first and use it while fresh
2. On a local miss, the remote tier is consulted and the local tier refilled
3. Writes land locally at once and sync to the remote tier in the background
4. Any remote failure degrades to a miss; the cache never raises to callers

At most one background sync is in flight per key. A write that arrives
while its key is already syncing updates the local tier only.

Environment Variables:
- MAYA_CACHE_FRESHNESS_SECONDS: Local freshness window (default: 300)
- MAYA_CACHE_TTL_SECONDS: TTL forwarded to the remote tier (default: 300)
- MAYA_CACHE_REMOTE_SYNC: Enable the remote tier (default: true)
- MAYA_CACHE_REMOTE_TIMEOUT_SECONDS: Budget for remote reads (default: 2)

Example:
    cache = HybridCache(remote=RedisCacheBackend(redis_client))

    await cache.set("capability:flight_search:ab12", {"flights": [...]})
    lookup = await cache.get("capability:flight_search:ab12")
    if lookup.found:
        return lookup.value
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from ...common.settings import env_bool, env_float, env_int
from ..domain.entities import CacheEntry, CacheLookup, CacheSource, CacheWriteResult
from ..domain.ports import IRemoteCache

logger = logging.getLogger(__name__)


@dataclass
class CacheConfig:
    """Configuration for the hybrid cache."""

    # Local entries younger than this are served without touching the remote
    freshness_window_seconds: float = field(
        default_factory=lambda: env_float("MAYA_CACHE_FRESHNESS_SECONDS", 300.0)
    )

    # TTL forwarded to the remote tier when set() gets none
    default_ttl_seconds: int = field(
        default_factory=lambda: env_int("MAYA_CACHE_TTL_SECONDS", 300)
    )

    # Enable/disable the remote tier
    remote_sync_enabled: bool = field(
        default_factory=lambda: env_bool("MAYA_CACHE_REMOTE_SYNC", True)
    )

    # Budget for remote reads, deletes and health checks
    remote_timeout_seconds: float = field(
        default_factory=lambda: env_float("MAYA_CACHE_REMOTE_TIMEOUT_SECONDS", 2.0)
    )


class HybridCache:
    """Two-tier cache: in-process dict plus an optional remote tier.

    Usage:
        cache = HybridCache()                                # local only
        cache = HybridCache(remote=InMemoryRemoteCache())    # two tiers

        result = await cache.set("key", {"a": 1}, ttl=60)
        await result.sync_task  # optional, tests and shutdown only

    Concurrency:
        All bookkeeping happens in synchronous sections between awaits, so
        it is atomic on the event loop. The in-flight map holds a strong
        reference to each sync task until its done-callback removes it.
    """

    def __init__(
        self,
        remote: Optional[IRemoteCache] = None,
        config: Optional[CacheConfig] = None,
        clock=time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the hybrid cache.

        Args:
            remote: Durable tier (None disables remote reads and syncs)
            config: Cache configuration
            clock: Monotonic clock in seconds
            logger: Logger to use (defaults to the module logger)
        """
        self.remote = remote
        self.config = config or CacheConfig()
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._local: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Task] = {}

        self._logger.info(
            f"Hybrid cache initialized (remote_enabled={self.remote_enabled})"
        )

    @property
    def remote_enabled(self) -> bool:
        if self.remote is None or not self.config.remote_sync_enabled:
            return False
        return getattr(self.remote, "enabled", True)

    # ============================================
    # Reads
    # ============================================

    async def get(self, key: str) -> CacheLookup:
        """Look a key up, local tier first.

        Returns:
            CacheLookup with found/value/source/age_ms
        """
        now = self._clock()
        entry = self._local.get(key)
        if entry is not None:
            age = now - entry.written_at_local
            if age < self.config.freshness_window_seconds:
                return CacheLookup(
                    found=True,
                    value=entry.value,
                    source=CacheSource.LOCAL,
                    age_ms=round(age * 1000, 3),
                )

        if self.remote_enabled:
            try:
                value = await asyncio.wait_for(
                    self.remote.get(key),
                    timeout=self.config.remote_timeout_seconds,
                )
            except asyncio.TimeoutError:
                self._logger.warning(f"Remote cache read timed out for {key}")
                value = None
            except Exception as e:
                self._logger.warning(f"Remote cache read failed for {key}: {e}")
                value = None

            if value is not None:
                self._local[key] = CacheEntry(
                    key=key,
                    value=value,
                    written_at_local=self._clock(),
                    source=CacheSource.REMOTE,
                )
                return CacheLookup(
                    found=True,
                    value=value,
                    source=CacheSource.REMOTE,
                    age_ms=0.0,
                )

        return CacheLookup(found=False)

    # ============================================
    # Writes
    # ============================================

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> CacheWriteResult:
        """Write locally and schedule a background remote sync.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Remote TTL in seconds (default from config)

        Returns:
            CacheWriteResult; ``sync_task`` is the scheduled sync, if any
        """
        self._local[key] = CacheEntry(key=key, value=value, written_at_local=self._clock())

        if not self.remote_enabled:
            return CacheWriteResult(success=True, source=CacheSource.LOCAL)

        if key in self._in_flight:
            self._logger.debug(f"Remote sync already in flight for {key}, skipping")
            return CacheWriteResult(success=True, source=CacheSource.LOCAL)

        ttl_seconds = ttl if ttl is not None else self.config.default_ttl_seconds
        task = asyncio.create_task(self._sync_to_remote(key, value, ttl_seconds))
        self._in_flight[key] = task
        task.add_done_callback(lambda t, k=key: self._sync_done(k, t))

        return CacheWriteResult(
            success=True,
            source=CacheSource.LOCAL,
            sync_scheduled=True,
            sync_task=task,
        )

    def _sync_done(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _sync_to_remote(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            await self.remote.set(key, value, ttl_seconds)
        except Exception as e:
            self._logger.warning(f"Remote cache sync failed: {key}: {e}")
            return False
        self._logger.debug(f"Remote cache synced: {key}")
        return True

    async def delete(self, key: str) -> bool:
        """Remove a key from both tiers.

        Returns:
            True if the key was present locally
        """
        existed = self._local.pop(key, None) is not None
        await self._cancel_syncs([key])

        if self.remote_enabled:
            try:
                await asyncio.wait_for(
                    self.remote.delete(key),
                    timeout=self.config.remote_timeout_seconds,
                )
            except Exception as e:
                self._logger.warning(f"Remote cache delete failed: {key}: {e}")

        return existed

    async def clear(self) -> None:
        """Empty both tiers.

        In-flight syncs are cancelled first so a stale value cannot land in
        the remote tier after it was cleared.
        """
        self._local.clear()
        await self._cancel_syncs(list(self._in_flight))

        if self.remote_enabled:
            try:
                await asyncio.wait_for(
                    self.remote.clear(),
                    timeout=self.config.remote_timeout_seconds,
                )
            except Exception as e:
                self._logger.warning(f"Remote cache clear failed: {e}")

    async def _cancel_syncs(self, keys: list[str]) -> None:
        tasks = [self._in_flight.pop(k) for k in keys if k in self._in_flight]
        for task in tasks:
            task.cancel()
        if tasks:
            self._logger.debug(f"Cancelled {len(tasks)} in-flight remote syncs")
            await asyncio.gather(*tasks, return_exceptions=True)

    async def wait_for_pending_syncs(self) -> None:
        """Wait for every in-flight background sync to finish."""
        pending = list(self._in_flight.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ============================================
    # Monitoring
    # ============================================

    def get_stats(self) -> dict[str, Any]:
        return {
            "local_size": len(self._local),
            "sync_in_progress": len(self._in_flight),
            "remote_enabled": self.remote_enabled,
            "freshness_window_seconds": self.config.freshness_window_seconds,
        }

    async def health_check(self) -> dict[str, Any]:
        """Report "healthy", or "degraded" when the remote tier is unhealthy."""
        remote_health = True
        remote_status = "disabled"

        if self.remote_enabled:
            try:
                check = await asyncio.wait_for(
                    self.remote.health_check(),
                    timeout=self.config.remote_timeout_seconds,
                )
                remote_status = check.get("status", "unhealthy")
            except Exception as e:
                self._logger.warning(f"Remote cache health check failed: {e}")
                remote_status = "unhealthy"
            remote_health = remote_status in ("healthy", "disabled")

        return {
            "status": "healthy" if remote_health else "degraded",
            "local": True,
            "remote": remote_health,
            "remote_status": remote_status,
            "stats": self.get_stats(),
        }

    def __len__(self) -> int:
        return len(self._local)
