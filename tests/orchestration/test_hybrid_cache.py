"""
Tests for the hybrid (local + remote) cache and its remote backends.

Tests cover:
    - Local hits and read-your-writes
    - Freshness window and remote fallback with local refill
    - Remote failures and timeouts degrade to misses
    - At most one background sync in flight per key
    - Health reporting ("degraded" when the remote is unhealthy)
    - RedisCacheBackend over a mocked async client
    - JSONBinCacheBackend without an API key
"""
import asyncio
import json
import sys
from unittest.mock import AsyncMock

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])

from src.maya.common.exceptions import CacheUnavailableError
from src.maya.orchestration.cache.backends import (
    InMemoryRemoteCache,
    JSONBinCacheBackend,
    JSONBinConfig,
    RedisCacheBackend,
)
from src.maya.orchestration.cache.hybrid_cache import CacheConfig, HybridCache
from src.maya.orchestration.domain.entities import CacheSource
from src.maya.orchestration.domain.ports import IRemoteCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class GatedRemote(InMemoryRemoteCache):
    """Remote whose writes block until the gate opens."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.writes = []

    async def set(self, key, value, ttl_seconds):
        self.writes.append((key, value, ttl_seconds))
        await self.gate.wait()
        await super().set(key, value, ttl_seconds)


class FailingRemote(IRemoteCache):
    """Remote that fails every operation."""

    async def get(self, key):
        raise CacheUnavailableError("down", backend="test", operation="get")

    async def set(self, key, value, ttl_seconds):
        raise CacheUnavailableError("down", backend="test", operation="set")

    async def delete(self, key):
        raise CacheUnavailableError("down", backend="test", operation="delete")

    async def clear(self):
        raise CacheUnavailableError("down", backend="test", operation="clear")

    async def health_check(self):
        return {"status": "unhealthy"}


class SlowRemote(InMemoryRemoteCache):
    async def get(self, key):
        await asyncio.sleep(1.0)
        return "too late"


def make_config(**overrides):
    values = {
        "freshness_window_seconds": 300.0,
        "default_ttl_seconds": 300,
        "remote_sync_enabled": True,
        "remote_timeout_seconds": 2.0,
    }
    values.update(overrides)
    return CacheConfig(**values)


# ============================================
# Local Tier Tests
# ============================================


class TestLocalTier:
    """Test reads and writes against the in-process tier."""

    @pytest.mark.asyncio
    async def test_read_your_writes_without_remote(self):
        cache = HybridCache(config=make_config())

        result = await cache.set("k", {"a": 1})
        lookup = await cache.get("k")

        assert result.success
        assert not result.sync_scheduled
        assert lookup.found
        assert lookup.value == {"a": 1}
        assert lookup.source == CacheSource.LOCAL

    @pytest.mark.asyncio
    async def test_miss(self):
        cache = HybridCache(config=make_config())
        lookup = await cache.get("missing")

        assert not lookup.found
        assert lookup.value is None
        assert lookup.source == CacheSource.NONE

    @pytest.mark.asyncio
    async def test_age_is_reported(self):
        clock = FakeClock()
        cache = HybridCache(config=make_config(), clock=clock)
        await cache.set("k", 1)

        clock.now += 2.5
        lookup = await cache.get("k")
        assert lookup.age_ms == pytest.approx(2500.0)

    @pytest.mark.asyncio
    async def test_stale_local_entry_without_remote_is_miss(self):
        clock = FakeClock()
        cache = HybridCache(config=make_config(freshness_window_seconds=10), clock=clock)
        await cache.set("k", 1)

        clock.now += 11
        assert not (await cache.get("k")).found

    @pytest.mark.asyncio
    async def test_delete_and_clear(self):
        cache = HybridCache(config=make_config())
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.delete("a") is True
        assert await cache.delete("a") is False
        assert len(cache) == 1

        await cache.clear()
        assert len(cache) == 0


# ============================================
# Remote Tier Tests
# ============================================


class TestRemoteTier:
    """Test fallback to and synchronization with the remote tier."""

    @pytest.mark.asyncio
    async def test_write_syncs_to_remote_with_ttl(self):
        remote = InMemoryRemoteCache()
        cache = HybridCache(remote=remote, config=make_config())

        result = await cache.set("k", {"v": 1}, ttl=60)
        assert result.sync_scheduled
        await result.sync_task

        assert await remote.get("k") == {"v": 1}

    @pytest.mark.asyncio
    async def test_remote_hit_refills_local(self):
        clock = FakeClock()
        remote = InMemoryRemoteCache()
        await remote.set("k", "remote-value", 60)
        cache = HybridCache(remote=remote, config=make_config(), clock=clock)

        first = await cache.get("k")
        assert first.found
        assert first.source == CacheSource.REMOTE

        second = await cache.get("k")
        assert second.source == CacheSource.LOCAL
        assert second.value == "remote-value"

    @pytest.mark.asyncio
    async def test_stale_local_falls_back_to_remote(self):
        clock = FakeClock()
        remote = InMemoryRemoteCache()
        cache = HybridCache(
            remote=remote,
            config=make_config(freshness_window_seconds=10),
            clock=clock,
        )
        result = await cache.set("k", "v1")
        await result.sync_task
        await remote.set("k", "v2", 60)

        clock.now += 11
        lookup = await cache.get("k")
        assert lookup.source == CacheSource.REMOTE
        assert lookup.value == "v2"

    @pytest.mark.asyncio
    async def test_remote_exception_is_a_miss(self):
        cache = HybridCache(remote=FailingRemote(), config=make_config())
        lookup = await cache.get("k")
        assert not lookup.found

    @pytest.mark.asyncio
    async def test_remote_timeout_is_a_miss(self):
        cache = HybridCache(
            remote=SlowRemote(),
            config=make_config(remote_timeout_seconds=0.01),
        )
        lookup = await cache.get("k")
        assert not lookup.found

    @pytest.mark.asyncio
    async def test_failed_sync_does_not_raise(self):
        cache = HybridCache(remote=FailingRemote(), config=make_config())

        result = await cache.set("k", 1)
        assert result.success
        assert await result.sync_task is False
        assert (await cache.get("k")).value == 1

    @pytest.mark.asyncio
    async def test_remote_failures_on_delete_and_clear_are_swallowed(self):
        cache = HybridCache(remote=FailingRemote(), config=make_config())
        await cache.set("k", 1)
        await cache.wait_for_pending_syncs()

        assert await cache.delete("k") is True
        await cache.clear()

    @pytest.mark.asyncio
    async def test_remote_sync_disabled(self):
        remote = InMemoryRemoteCache()
        cache = HybridCache(remote=remote, config=make_config(remote_sync_enabled=False))

        result = await cache.set("k", 1)
        assert not result.sync_scheduled
        assert len(remote) == 0
        assert not cache.remote_enabled


# ============================================
# In-flight Sync Tests
# ============================================


class TestInFlightSync:
    """Test the single-sync-per-key rule."""

    @pytest.mark.asyncio
    async def test_second_write_while_syncing_is_local_only(self):
        remote = GatedRemote()
        cache = HybridCache(remote=remote, config=make_config())

        first = await cache.set("k", "v1")
        await asyncio.sleep(0)
        second = await cache.set("k", "v2")

        assert first.sync_scheduled
        assert not second.sync_scheduled
        assert cache.get_stats()["sync_in_progress"] == 1
        assert (await cache.get("k")).value == "v2"

        remote.gate.set()
        await cache.wait_for_pending_syncs()

        assert remote.writes == [("k", "v1", 300)]
        assert cache.get_stats()["sync_in_progress"] == 0

    @pytest.mark.asyncio
    async def test_new_sync_after_previous_completes(self):
        remote = GatedRemote()
        remote.gate.set()
        cache = HybridCache(remote=remote, config=make_config())

        first = await cache.set("k", "v1")
        await first.sync_task
        await asyncio.sleep(0)
        second = await cache.set("k", "v2")
        await second.sync_task

        assert second.sync_scheduled
        assert [w[1] for w in remote.writes] == ["v1", "v2"]

    @pytest.mark.asyncio
    async def test_different_keys_sync_independently(self):
        remote = GatedRemote()
        cache = HybridCache(remote=remote, config=make_config())

        a = await cache.set("a", 1)
        b = await cache.set("b", 2)
        assert a.sync_scheduled and b.sync_scheduled

        remote.gate.set()
        await cache.wait_for_pending_syncs()
        assert len(remote) == 2

    @pytest.mark.asyncio
    async def test_clear_drops_in_flight_syncs(self):
        remote = GatedRemote()
        cache = HybridCache(remote=remote, config=make_config())

        write = await cache.set("k", "stale")
        await asyncio.sleep(0)
        assert remote.writes == [("k", "stale", 300)]

        await cache.clear()
        remote.gate.set()
        await cache.wait_for_pending_syncs()
        await asyncio.sleep(0)

        assert write.sync_task.cancelled()
        assert len(remote) == 0
        assert not (await cache.get("k")).found
        assert cache.get_stats()["sync_in_progress"] == 0

    @pytest.mark.asyncio
    async def test_delete_drops_in_flight_sync_for_key(self):
        remote = GatedRemote()
        cache = HybridCache(remote=remote, config=make_config())

        await cache.set("gone", 1)
        await cache.set("kept", 2)
        await asyncio.sleep(0)

        assert await cache.delete("gone") is True
        remote.gate.set()
        await cache.wait_for_pending_syncs()

        assert await remote.get("gone") is None
        assert await remote.get("kept") == 2
        assert cache.get_stats()["sync_in_progress"] == 0


# ============================================
# Health Tests
# ============================================


class TestHealth:
    """Test health reporting."""

    @pytest.mark.asyncio
    async def test_healthy_without_remote(self):
        health = await HybridCache(config=make_config()).health_check()
        assert health["status"] == "healthy"
        assert health["remote_status"] == "disabled"

    @pytest.mark.asyncio
    async def test_healthy_with_remote(self):
        health = await HybridCache(
            remote=InMemoryRemoteCache(), config=make_config()
        ).health_check()
        assert health["status"] == "healthy"
        assert health["remote"] is True

    @pytest.mark.asyncio
    async def test_degraded_when_remote_unhealthy(self):
        health = await HybridCache(remote=FailingRemote(), config=make_config()).health_check()
        assert health["status"] == "degraded"
        assert health["local"] is True
        assert health["remote"] is False


# ============================================
# Backend Tests
# ============================================


class TestRedisBackend:
    """Test the Redis backend over a mocked client."""

    @pytest.fixture
    def redis_client(self):
        client = AsyncMock()
        client.get.return_value = None
        client.keys.return_value = []
        return client

    @pytest.mark.asyncio
    async def test_set_serializes_with_ttl(self, redis_client):
        backend = RedisCacheBackend(redis_client, key_prefix="test")
        await backend.set("k", {"a": 1}, 60)

        redis_client.setex.assert_awaited_once_with("test:k", 60, json.dumps({"a": 1}))

    @pytest.mark.asyncio
    async def test_ttl_floor_is_one_second(self, redis_client):
        backend = RedisCacheBackend(redis_client, key_prefix="test")
        await backend.set("k", 1, 0)
        assert redis_client.setex.await_args.args[1] == 1

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, redis_client):
        redis_client.get.return_value = b'{"a": 1}'
        backend = RedisCacheBackend(redis_client, key_prefix="test")

        assert await backend.get("k") == {"a": 1}
        redis_client.get.assert_awaited_once_with("test:k")

    @pytest.mark.asyncio
    async def test_get_miss(self, redis_client):
        backend = RedisCacheBackend(redis_client, key_prefix="test")
        assert await backend.get("k") is None

    @pytest.mark.asyncio
    async def test_errors_become_cache_unavailable(self, redis_client):
        redis_client.get.side_effect = ConnectionError("refused")
        backend = RedisCacheBackend(redis_client, key_prefix="test")

        with pytest.raises(CacheUnavailableError) as exc_info:
            await backend.get("k")
        assert exc_info.value.details["operation"] == "get"

    @pytest.mark.asyncio
    async def test_clear_deletes_prefixed_keys(self, redis_client):
        redis_client.keys.return_value = ["test:a", "test:b"]
        backend = RedisCacheBackend(redis_client, key_prefix="test")

        await backend.clear()
        redis_client.keys.assert_awaited_once_with("test:*")
        redis_client.delete.assert_awaited_once_with("test:a", "test:b")

    @pytest.mark.asyncio
    async def test_health(self, redis_client):
        backend = RedisCacheBackend(redis_client, key_prefix="test")
        assert (await backend.health_check())["status"] == "healthy"

        redis_client.ping.side_effect = ConnectionError("refused")
        assert (await backend.health_check())["status"] == "unhealthy"

    def test_prefix_from_environment(self, redis_client, monkeypatch):
        monkeypatch.setenv("MAYA_CACHE_REDIS_PREFIX", "envprefix")
        assert RedisCacheBackend(redis_client).key_prefix == "envprefix"


class TestJSONBinBackend:
    """Test JSONbin behavior that needs no network."""

    @pytest.mark.asyncio
    async def test_disabled_without_api_key(self):
        backend = JSONBinCacheBackend(JSONBinConfig(api_key=None))

        assert not backend.enabled
        assert (await backend.health_check())["status"] == "disabled"
        with pytest.raises(CacheUnavailableError):
            await backend.get("k")

    @pytest.mark.asyncio
    async def test_hybrid_cache_treats_disabled_backend_as_local_only(self):
        backend = JSONBinCacheBackend(JSONBinConfig(api_key=None))
        cache = HybridCache(remote=backend, config=make_config())

        result = await cache.set("k", 1)
        assert not result.sync_scheduled
        assert (await cache.health_check())["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_unknown_key_is_a_miss(self):
        backend = JSONBinCacheBackend(JSONBinConfig(api_key="secret"))
        assert await backend.get("never-written") is None
        await backend.close()
