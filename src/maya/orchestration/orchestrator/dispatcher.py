"""
Capability Dispatcher.

Fans one request out to its capabilities in parallel. For every capability:
1. Resolve a target: registered provider, then skill, then NullProvider
2. Serve from the hybrid cache when a fresh result exists
3. Invoke with a per-call timeout of min(remaining global budget, provider timeout)
4. Retry failed (not timed-out) calls per the RetryPolicy, inside the same budget
5. Cache successful, non-stub results under the provider's TTL

Failures never escape: each capability produces exactly one ProviderResult.
"""

from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ...common.exceptions import (
    InfrastructureError,
    ProviderError,
    ProviderTimeoutError,
    SkillNotFoundError,
)
from ...common.resilience import Deadline, RetryPolicy, elapsed_ms, with_timeout
from ..cache.hybrid_cache import HybridCache
from ..domain.entities import ProviderResult
from ..providers.base import (
    NullProvider,
    call_provider,
    normalize_output,
    provider_cache_ttl,
    provider_name,
    provider_timeout,
)
from ..providers.registry import ProviderRegistry
from ..skills.executor import SkillExecutor

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_GRACE_SECONDS = 0.05


@dataclass
class DispatchTarget:
    """A resolved capability, ready to invoke.

    Attributes:
        capability: Requested capability name
        name: Provider or skill name reported in results
        kind: "provider", "skill" or "null"
        invoke: Coroutine function producing a ProviderResult
        timeout: Per-call budget in seconds (None = global budget only)
        cache_ttl: Seconds to cache successful results (0 = never)
    """

    capability: str
    name: str
    kind: str
    invoke: Callable[[dict[str, Any], dict[str, Any]], Awaitable[ProviderResult]]
    timeout: Optional[float] = None
    cache_ttl: int = 0

    @property
    def stub(self) -> bool:
        return self.kind == "null"


def cache_key(capability: str, message: str, params: dict[str, Any]) -> str:
    """``capability:<name>:<sha256(message + params)[:16]>``"""
    material = message + json.dumps(params, sort_keys=True, default=str)
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]
    return f"capability:{capability}:{digest}"


def unresolved_result(capability: str, available: list[str]) -> ProviderResult:
    error = SkillNotFoundError(capability, available)
    return ProviderResult(
        provider_name="none",
        capability=capability,
        success=False,
        payload={"available": error.available},
        error=error.message,
        attempts=0,
        error_code=error.code,
    )


def timeout_result(
    target: DispatchTarget,
    attempts: int,
    elapsed: float,
    timeout_seconds: Optional[float] = None,
) -> ProviderResult:
    error = ProviderTimeoutError(
        "timeout",
        timeout_seconds=timeout_seconds,
        provider_name=target.name,
        capability=target.capability,
    )
    return ProviderResult(
        provider_name=target.name,
        capability=target.capability,
        success=False,
        error=error.message,
        elapsed_ms=elapsed,
        timed_out=True,
        attempts=attempts,
        stub=target.stub,
        error_code=error.code,
    )


class CapabilityDispatcher:
    """Parallel, deadline-bounded capability invocation.

    Usage:
        dispatcher = CapabilityDispatcher(registry, skills, cache)
        targets, unresolved = dispatcher.plan(["flight_search", "hotel_search"])
        results = await dispatcher.dispatch(targets, context, Deadline(30))
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        skills: SkillExecutor,
        cache: Optional[HybridCache] = None,
        retry_policy: Optional[RetryPolicy] = None,
        stub_unregistered: bool = True,
        enable_result_cache: bool = True,
        cancel_grace_seconds: float = DEFAULT_CANCEL_GRACE_SECONDS,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.skills = skills
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.stub_unregistered = stub_unregistered
        self.enable_result_cache = enable_result_cache
        self.cancel_grace_seconds = cancel_grace_seconds
        self._logger = logger or logging.getLogger(__name__)

    # ============================================
    # Resolution
    # ============================================

    def resolve(self, capability: str) -> Optional[DispatchTarget]:
        """Resolve a capability to a provider, a skill or a NullProvider."""
        provider = self.registry.get(capability)
        if provider is not None:
            return self._provider_target(capability, provider, kind="provider")

        if self.skills.has_skill(capability):
            return self._skill_target(capability)

        if self.stub_unregistered:
            return self._provider_target(capability, self.registry.resolve(capability), kind="null")

        return None

    def plan(self, capabilities) -> tuple[list[DispatchTarget], list[str]]:
        """Split capabilities into resolved targets and unresolvable names."""
        targets: list[DispatchTarget] = []
        unresolved: list[str] = []
        for capability in capabilities:
            target = self.resolve(capability)
            if target is None:
                unresolved.append(capability)
            else:
                targets.append(target)
        return targets, unresolved

    def _provider_target(self, capability: str, provider: Any, kind: str) -> DispatchTarget:
        name = provider_name(provider)

        async def handler(context: dict[str, Any], shared_state: dict[str, Any]) -> Any:
            return await call_provider(provider, context)

        async def invoke(context: dict[str, Any], shared_state: dict[str, Any]) -> ProviderResult:
            outcome = await self.skills.run_handler(name, handler, context, shared_state)
            if not outcome.success:
                error = ProviderError(outcome.error, provider_name=name, capability=capability)
                return ProviderResult(
                    provider_name=name,
                    capability=capability,
                    success=False,
                    error=error.message,
                    error_code=error.code,
                )
            return dataclasses.replace(normalize_output(outcome.result, name, capability))

        return DispatchTarget(
            capability=capability,
            name=name,
            kind=kind,
            invoke=invoke,
            timeout=provider_timeout(provider),
            cache_ttl=0 if isinstance(provider, NullProvider) else provider_cache_ttl(provider),
        )

    def _skill_target(self, capability: str) -> DispatchTarget:
        async def invoke(context: dict[str, Any], shared_state: dict[str, Any]) -> ProviderResult:
            outcome = await self.skills.execute(capability, context, shared_state)
            if not outcome.success:
                return ProviderResult(
                    provider_name=capability,
                    capability=capability,
                    success=False,
                    error=outcome.error,
                    error_code=outcome.error_code,
                )
            return dataclasses.replace(normalize_output(outcome.result, capability, capability))

        return DispatchTarget(
            capability=capability,
            name=capability,
            kind="skill",
            invoke=invoke,
            timeout=None,
            cache_ttl=0,
        )

    # ============================================
    # Dispatch
    # ============================================

    async def dispatch(
        self,
        targets: list[DispatchTarget],
        context: dict[str, Any],
        deadline: Deadline,
    ) -> dict[str, ProviderResult]:
        """Invoke every target in parallel under the global deadline.

        Args:
            targets: Resolved capabilities
            context: Request context handed to each provider
            deadline: Global budget shared by all attempts

        Returns:
            One ProviderResult per target capability
        """
        shared_state: dict[str, Any] = {}
        tasks: dict[asyncio.Task, DispatchTarget] = {}
        for target in targets:
            capability_context = dict(context, capability=target.capability)
            task = asyncio.create_task(
                self._run_capability(target, capability_context, shared_state, deadline)
            )
            tasks[task] = target

        results: dict[str, ProviderResult] = {}
        if not tasks:
            return results

        done, pending = await asyncio.wait(tasks, timeout=deadline.remaining)

        if pending:
            self._logger.warning(
                f"Global deadline reached with {len(pending)} capabilities pending"
            )
            for task in pending:
                task.cancel()
            await asyncio.wait(pending, timeout=self.cancel_grace_seconds)
            for task in pending:
                task.add_done_callback(_discard_outcome)
                target = tasks[task]
                results[target.capability] = timeout_result(
                    target,
                    attempts=1,
                    elapsed=round(deadline.elapsed * 1000, 3),
                )
                self._record(target, results[target.capability])

        for task in done:
            target = tasks[task]
            results[target.capability] = self._task_result(task, target)

        return {t.capability: results[t.capability] for t in targets}

    def _task_result(self, task: asyncio.Task, target: DispatchTarget) -> ProviderResult:
        if task.cancelled():
            return timeout_result(target, attempts=1, elapsed=0.0)
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                f"Capability {target.capability} crashed: {exc}", exc_info=exc
            )
            error = InfrastructureError(str(exc) or exc.__class__.__name__, cause=exc)
            return ProviderResult(
                provider_name=target.name,
                capability=target.capability,
                success=False,
                error=error.message,
                error_code=error.code,
                stub=target.stub,
            )
        return task.result()

    async def _run_capability(
        self,
        target: DispatchTarget,
        context: dict[str, Any],
        shared_state: dict[str, Any],
        deadline: Deadline,
    ) -> ProviderResult:
        started = time.monotonic()
        key = None
        if self._cacheable(target):
            key = cache_key(target.capability, context.get("message", ""), context.get("params", {}))
            lookup = await self.cache.get(key)
            if lookup.found:
                self._logger.debug(f"Cache hit for {target.capability} ({lookup.source.value})")
                return ProviderResult(
                    provider_name=target.name,
                    capability=target.capability,
                    success=True,
                    payload=lookup.value,
                    elapsed_ms=elapsed_ms(started),
                    attempts=0,
                    cached=True,
                )

        attempt = 0
        while True:
            attempt += 1
            budget = deadline.clamp(target.timeout)
            try:
                result = await with_timeout(
                    target.invoke,
                    budget,
                    context,
                    shared_state,
                )
            except asyncio.TimeoutError:
                self._logger.warning(
                    f"Capability {target.capability} timed out on attempt {attempt} "
                    f"(budget {budget:.3f}s)"
                )
                result = timeout_result(
                    target,
                    attempt,
                    elapsed_ms(started),
                    timeout_seconds=round(budget, 3),
                )
                break

            if result.success or not self.retry_policy.should_retry(attempt, deadline):
                break

            self._logger.warning(
                f"Capability {target.capability} attempt {attempt}/"
                f"{self.retry_policy.max_attempts} failed: {result.error}"
            )
            await self.retry_policy.sleep_before_retry(attempt, deadline)

        result.attempts = attempt
        result.elapsed_ms = elapsed_ms(started)
        result.stub = target.stub
        self._record(target, result)

        if key is not None and result.success and not result.stub:
            await self.cache.set(key, result.payload, ttl=target.cache_ttl)

        return result

    def _cacheable(self, target: DispatchTarget) -> bool:
        return (
            self.enable_result_cache
            and self.cache is not None
            and not target.stub
            and target.cache_ttl > 0
        )

    def _record(self, target: DispatchTarget, result: ProviderResult) -> None:
        if target.stub:
            return
        self.registry.record_execution(
            target.name,
            result.success,
            result.elapsed_ms,
            timed_out=result.timed_out,
        )


def _discard_outcome(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()
