#!/usr/bin/env python3
"""Resilience Patterns for the Maya orchestration core.

This module provides the time and retry primitives the dispatcher builds on:
    - RetryPolicy: bounded retries with optional exponential backoff + jitter
    - Deadline: a monotonic global time budget shared by every attempt
    - with_timeout: run a coroutine against a per-call budget

Retries and timeouts are deliberately separate. A call that times out is
never retried; a call that fails quickly is retried while budget remains.

Example:
    policy = RetryPolicy(max_retries=2, initial_delay=0.1, backoff_factor=2.0)
    deadline = Deadline(30.0)

    for attempt in range(1, policy.max_attempts + 1):
        budget = deadline.clamp(provider_timeout)
        result = await with_timeout(call, budget)
        if ok(result) or not policy.should_retry(attempt, deadline):
            break
        await policy.sleep_before_retry(attempt, deadline)
"""
import asyncio
import functools
import inspect
import logging
import os
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

import anyio

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================
# Retry Policy
# ============================================

@dataclass
class RetryPolicy:
    """Bounded retry configuration.

    The default is immediate retry (zero delay). Set ``initial_delay`` to
    enable exponential backoff; every delay is capped by ``max_delay`` and by
    the remaining global budget.

    Attributes:
        max_retries: Retries after the first attempt (total = max_retries + 1)
        initial_delay: Delay in seconds before the first retry
        backoff_factor: Multiplier applied per subsequent retry
        max_delay: Upper bound on any single delay
        jitter: Scale each delay by a random factor in [0.5, 1.5)
    """
    max_retries: int = field(
        default_factory=lambda: int(os.getenv("MAYA_ORCHESTRATOR_MAX_RETRIES", "2"))
    )
    initial_delay: float = field(
        default_factory=lambda: float(os.getenv("MAYA_RETRY_INITIAL_DELAY", "0"))
    )
    backoff_factor: float = 2.0
    max_delay: float = 5.0
    jitter: bool = True

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.initial_delay < 0:
            raise ValueError("initial_delay cannot be negative")

    @property
    def max_attempts(self) -> int:
        """Total number of attempts including the first one."""
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after ``attempt`` (1-based) failed."""
        if self.initial_delay <= 0:
            return 0.0
        delay = min(
            self.initial_delay * (self.backoff_factor ** (attempt - 1)),
            self.max_delay,
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay

    def should_retry(self, attempt: int, deadline: Optional["Deadline"] = None) -> bool:
        """Whether another attempt is allowed after ``attempt`` failed."""
        if attempt >= self.max_attempts:
            return False
        if deadline is not None and deadline.expired:
            return False
        return True

    async def sleep_before_retry(
        self,
        attempt: int,
        deadline: Optional["Deadline"] = None,
    ) -> None:
        """Sleep the backoff delay, never past the deadline."""
        delay = self.delay_for(attempt)
        if deadline is not None:
            delay = min(delay, deadline.remaining)
        if delay > 0:
            logger.debug(f"Retrying after attempt {attempt} in {delay:.3f}s")
            await asyncio.sleep(delay)


# ============================================
# Global Deadline
# ============================================

class Deadline:
    """A monotonic time budget shared by all work for one request.

    Example:
        deadline = Deadline(30.0)
        per_call = deadline.clamp(provider.timeout)
    """

    def __init__(self, budget_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.budget_seconds = max(0.0, float(budget_seconds))
        self._clock = clock
        self._started_at = clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started_at

    @property
    def remaining(self) -> float:
        return max(0.0, self.budget_seconds - self.elapsed)

    @property
    def expired(self) -> bool:
        return self.remaining <= 0

    def clamp(self, timeout: Optional[float]) -> float:
        """Per-call timeout: min(remaining budget, timeout)."""
        if timeout is None or timeout <= 0:
            return self.remaining
        return min(self.remaining, timeout)


# ============================================
# Timeouts
# ============================================

async def with_timeout(
    func: Callable[..., Awaitable[T]],
    timeout_seconds: float,
    *args,
    **kwargs,
) -> T:
    """Execute async function with timeout.

    Raises:
        asyncio.TimeoutError: If the call did not complete in time
    """
    if timeout_seconds <= 0:
        raise asyncio.TimeoutError()
    return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout_seconds)


async def call_maybe_async(func: Callable[..., Any], *args) -> Any:
    """Call a sync or async callable without blocking the event loop.

    Coroutine functions are awaited directly. Anything else runs in a worker
    thread through anyio.to_thread, so timeouts and cancellation still apply
    to the caller; an abandoned thread finishes in the background and its
    result is dropped.
    """
    if inspect.iscoroutinefunction(func):
        result = await func(*args)
    else:
        result = await anyio.to_thread.run_sync(
            functools.partial(func, *args),
            abandon_on_cancel=True,
        )
    if inspect.isawaitable(result):
        result = await result
    return result


def elapsed_ms(started_at: float) -> float:
    """Milliseconds since a ``time.monotonic()`` reading."""
    return round((time.monotonic() - started_at) * 1000, 3)


# ============================================
# Exports
# ============================================

__all__ = [
    "RetryPolicy",
    "Deadline",
    "with_timeout",
    "call_maybe_async",
    "elapsed_ms",
]
