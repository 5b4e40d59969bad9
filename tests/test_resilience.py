#!/usr/bin/env python3
"""Tests for resilience primitives and the exception hierarchy.

Tests cover:
    - RetryPolicy attempt accounting, backoff growth, jitter bounds
    - Deadline budget accounting and per-call clamping
    - with_timeout behavior on slow and already-expired budgets
    - call_maybe_async keeps blocking callables off the event loop
    - MayaError serialization and error codes
"""
import asyncio
import sys
import threading
import time
from unittest.mock import patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.maya.common.resilience import (
    Deadline,
    RetryPolicy,
    call_maybe_async,
    elapsed_ms,
    with_timeout,
)
from src.maya.common.exceptions import (
    CacheUnavailableError,
    MayaError,
    ProviderError,
    ProviderTimeoutError,
    SkillNotFoundError,
    ValidationError,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# ============================================
# RetryPolicy Tests
# ============================================

class TestRetryPolicy:
    """Test bounded retry configuration."""

    def test_max_attempts_includes_first_try(self):
        """max_retries=2 allows three attempts in total."""
        policy = RetryPolicy(max_retries=2)
        assert policy.max_attempts == 3

    def test_should_retry_until_attempts_exhausted(self):
        """Retries are allowed only while attempts remain."""
        policy = RetryPolicy(max_retries=2)
        assert policy.should_retry(1)
        assert policy.should_retry(2)
        assert not policy.should_retry(3)

    def test_zero_retries_never_retries(self):
        policy = RetryPolicy(max_retries=0)
        assert not policy.should_retry(1)

    def test_should_not_retry_after_deadline(self):
        """An expired deadline stops retries even with attempts left."""
        clock = FakeClock()
        deadline = Deadline(1.0, clock=clock)
        policy = RetryPolicy(max_retries=5)

        clock.now += 2.0
        assert not policy.should_retry(1, deadline)

    def test_default_delay_is_zero(self):
        """Immediate retry is the default strategy."""
        policy = RetryPolicy(max_retries=2, initial_delay=0)
        assert policy.delay_for(1) == 0.0
        assert policy.delay_for(5) == 0.0

    def test_exponential_backoff_without_jitter(self):
        """Delays double per attempt and are capped by max_delay."""
        policy = RetryPolicy(
            max_retries=5,
            initial_delay=0.1,
            backoff_factor=2.0,
            max_delay=0.5,
            jitter=False,
        )
        assert policy.delay_for(1) == pytest.approx(0.1)
        assert policy.delay_for(2) == pytest.approx(0.2)
        assert policy.delay_for(3) == pytest.approx(0.4)
        assert policy.delay_for(4) == pytest.approx(0.5)

    def test_jitter_stays_within_bounds(self):
        """Jitter scales the delay by a factor in [0.5, 1.5)."""
        policy = RetryPolicy(max_retries=3, initial_delay=1.0, jitter=True)
        for _ in range(50):
            delay = policy.delay_for(1)
            assert 0.5 <= delay < 1.5

    def test_rejects_negative_values(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=1, initial_delay=-0.1)

    def test_reads_max_retries_from_environment(self, monkeypatch):
        monkeypatch.setenv("MAYA_ORCHESTRATOR_MAX_RETRIES", "4")
        assert RetryPolicy().max_retries == 4

    @pytest.mark.asyncio
    async def test_sleep_is_capped_by_deadline(self):
        """Backoff never sleeps past the remaining budget."""
        policy = RetryPolicy(max_retries=3, initial_delay=5.0, jitter=False)
        deadline = Deadline(0.05)

        start = time.monotonic()
        await policy.sleep_before_retry(1, deadline)
        assert time.monotonic() - start < 1.0

    @pytest.mark.asyncio
    async def test_zero_delay_does_not_sleep(self):
        policy = RetryPolicy(max_retries=1, initial_delay=0)
        with patch("src.maya.common.resilience.asyncio.sleep") as mock_sleep:
            await policy.sleep_before_retry(1)
        mock_sleep.assert_not_called()


# ============================================
# Deadline Tests
# ============================================

class TestDeadline:
    """Test global time budget accounting."""

    def test_remaining_decreases_with_time(self):
        clock = FakeClock()
        deadline = Deadline(10.0, clock=clock)
        assert deadline.remaining == pytest.approx(10.0)

        clock.now += 4.0
        assert deadline.remaining == pytest.approx(6.0)
        assert deadline.elapsed == pytest.approx(4.0)
        assert not deadline.expired

    def test_remaining_never_negative(self):
        clock = FakeClock()
        deadline = Deadline(1.0, clock=clock)
        clock.now += 5.0
        assert deadline.remaining == 0.0
        assert deadline.expired

    def test_clamp_uses_smaller_of_budget_and_timeout(self):
        """Per-call timeout is min(remaining budget, provider timeout)."""
        clock = FakeClock()
        deadline = Deadline(10.0, clock=clock)
        assert deadline.clamp(2.0) == pytest.approx(2.0)

        clock.now += 9.0
        assert deadline.clamp(2.0) == pytest.approx(1.0)

    def test_clamp_without_timeout_uses_budget(self):
        clock = FakeClock()
        deadline = Deadline(3.0, clock=clock)
        assert deadline.clamp(None) == pytest.approx(3.0)
        assert deadline.clamp(0) == pytest.approx(3.0)


# ============================================
# Timeout Tests
# ============================================

class TestWithTimeout:
    """Test the per-call timeout helper."""

    @pytest.mark.asyncio
    async def test_returns_result_within_budget(self):
        async def quick(value):
            return value * 2

        assert await with_timeout(quick, 1.0, 21) == 42

    @pytest.mark.asyncio
    async def test_raises_on_slow_call(self):
        async def slow():
            await asyncio.sleep(0.5)

        start = time.monotonic()
        with pytest.raises(asyncio.TimeoutError):
            await with_timeout(slow, 0.01)
        assert time.monotonic() - start < 0.3

    @pytest.mark.asyncio
    async def test_expired_budget_raises_without_calling(self):
        called = False

        async def func():
            nonlocal called
            called = True

        with pytest.raises(asyncio.TimeoutError):
            await with_timeout(func, 0)
        assert not called

    def test_elapsed_ms_is_positive(self):
        started = time.monotonic() - 0.01
        assert elapsed_ms(started) >= 10.0


# ============================================
# Sync/Async Call Tests
# ============================================

class TestCallMaybeAsync:
    """Test dispatching sync and async callables."""

    @pytest.mark.asyncio
    async def test_async_function_is_awaited(self):
        async def double(x):
            return x * 2

        assert await call_maybe_async(double, 21) == 42

    @pytest.mark.asyncio
    async def test_sync_function_runs_in_worker_thread(self):
        loop_thread = threading.get_ident()

        def where():
            return threading.get_ident()

        assert await call_maybe_async(where) != loop_thread

    @pytest.mark.asyncio
    async def test_sync_function_returning_awaitable(self):
        async def inner():
            return "inner"

        assert await call_maybe_async(lambda: inner()) == "inner"

    @pytest.mark.asyncio
    async def test_sync_exception_propagates(self):
        def boom():
            raise ConnectionError("reset")

        with pytest.raises(ConnectionError):
            await call_maybe_async(boom)

    @pytest.mark.asyncio
    async def test_blocking_call_can_be_timed_out(self):
        started = time.monotonic()
        with pytest.raises(asyncio.TimeoutError):
            await with_timeout(call_maybe_async, 0.01, time.sleep, 0.5)
        assert time.monotonic() - started < 0.2


# ============================================
# Exception Tests
# ============================================

class TestExceptions:
    """Test exception codes and serialization."""

    def test_base_error_to_dict(self):
        cause = ValueError("boom")
        error = MayaError("Something broke", code="TEST", details={"a": 1}, cause=cause)

        data = error.to_dict()
        assert data["error_type"] == "MayaError"
        assert data["code"] == "TEST"
        assert data["details"] == {"a": 1}
        assert data["cause"] == "boom"
        assert error.__cause__ is cause

    def test_str_includes_code_and_details(self):
        error = ValidationError("Message is required", field="message")
        assert str(error) == "[VALIDATION_ERROR] Message is required (field=message)"

    def test_timeout_is_a_provider_error(self):
        error = ProviderTimeoutError("too slow", timeout_seconds=1.5, provider_name="flights")
        assert isinstance(error, ProviderError)
        assert error.code == "PROVIDER_TIMEOUT"
        assert error.details["timeout_seconds"] == 1.5
        assert error.details["provider"] == "flights"
        assert not error.recoverable

    def test_skill_not_found_lists_available(self):
        error = SkillNotFoundError("fly", available=["weather"])
        assert error.message == "skill not found"
        assert error.code == "SKILL_NOT_FOUND"
        assert error.available == ["weather"]

    def test_cache_unavailable_is_recoverable(self):
        error = CacheUnavailableError("down", backend="redis", operation="get")
        assert error.recoverable
        assert error.details == {"backend": "redis", "operation": "get"}
