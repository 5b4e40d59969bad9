"""
Capability provider contract.

A capability provider answers one or more named capabilities
(e.g. ``flight_search``). Providers are registered with the
ProviderRegistry and dispatched in parallel by the orchestrator.

Contract:
    execute(context: dict) -> {"success": bool, "results"|"data": ..., "error"?: str}
                               or a ProviderResult
    capabilities: sequence of capability names (read-only)
    priority: number, higher wins when several providers share a capability
    timeout: optional per-call budget in seconds
    cache_ttl: seconds to cache successful results (0 disables caching)

Duck-typed providers that satisfy the contract are accepted by the
registry; subclassing CapabilityProvider is the convenient route.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from ...common.exceptions import ProviderError
from ...common.resilience import call_maybe_async
from ..domain.entities import ProviderResult

logger = logging.getLogger(__name__)

ProviderOutput = Union[dict[str, Any], ProviderResult]

DEFAULT_PROVIDER_TIMEOUT = 10.0
DEFAULT_PROVIDER_CACHE_TTL = 300


class CapabilityProvider(ABC):
    """Base class for capability providers.

    Usage:
        class FlightSearchProvider(CapabilityProvider):
            name = "flights"
            capabilities = ("flight_search",)
            priority = 10
            timeout = 5.0

            async def execute(self, context):
                return {"success": True, "results": [...]}
    """

    name: str = ""
    capabilities: Sequence[str] = ()
    priority: float = 0
    timeout: Optional[float] = DEFAULT_PROVIDER_TIMEOUT
    cache_ttl: int = DEFAULT_PROVIDER_CACHE_TTL

    @abstractmethod
    async def execute(self, context: dict[str, Any]) -> ProviderOutput:
        """Run the capability.

        Args:
            context: message, params, capability, user_id, conversation_id,
                tier and request_id for the current request

        Returns:
            Result mapping or ProviderResult
        """
        pass

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(name={provider_name(self)!r}, "
            f"capabilities={list(self.capabilities)!r}, priority={self.priority})"
        )


class NullProvider(CapabilityProvider):
    """Explicit stand-in for capabilities with no registered provider.

    Its output is flagged as a stub so callers can tell it apart from a
    real answer.
    """

    name = "null"
    priority = float("-inf")
    timeout = None
    cache_ttl = 0

    def __init__(self, capability: str):
        self.capability = capability
        self.capabilities = (capability,)

    async def execute(self, context: dict[str, Any]) -> ProviderOutput:
        return {
            "success": True,
            "results": {"stub": True, "capability": self.capability},
        }


class FunctionProvider(CapabilityProvider):
    """Adapts a plain (sync or async) callable into a provider.

    Usage:
        provider = FunctionProvider(
            "weather",
            ["get_weather"],
            lambda ctx: {"success": True, "results": {"temp_c": 31}},
            priority=5,
        )
    """

    def __init__(
        self,
        name: str,
        capabilities: Sequence[str],
        func: Callable[[dict[str, Any]], Union[ProviderOutput, Awaitable[ProviderOutput]]],
        priority: float = 0,
        timeout: Optional[float] = DEFAULT_PROVIDER_TIMEOUT,
        cache_ttl: int = DEFAULT_PROVIDER_CACHE_TTL,
    ):
        self.name = name
        self.capabilities = tuple(capabilities)
        self.priority = priority
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self._func = func

    async def execute(self, context: dict[str, Any]) -> ProviderOutput:
        return await call_maybe_async(self._func, context)


# ============================================
# Contract helpers
# ============================================


def provider_name(provider: Any) -> str:
    """Display name of a provider (falls back to its class name)."""
    return getattr(provider, "name", None) or provider.__class__.__name__


def provider_timeout(provider: Any) -> Optional[float]:
    timeout = getattr(provider, "timeout", DEFAULT_PROVIDER_TIMEOUT)
    if timeout is None:
        return None
    try:
        timeout = float(timeout)
    except (TypeError, ValueError):
        return DEFAULT_PROVIDER_TIMEOUT
    return timeout if timeout > 0 else None


def provider_cache_ttl(provider: Any) -> int:
    try:
        return max(0, int(getattr(provider, "cache_ttl", DEFAULT_PROVIDER_CACHE_TTL)))
    except (TypeError, ValueError):
        return 0


def validate_provider(provider: Any) -> list[str]:
    """Return contract violations for a provider (empty when valid)."""
    problems = []
    execute = getattr(provider, "execute", None)
    if execute is None or not callable(execute):
        problems.append("execute is not callable")
    capabilities = getattr(provider, "capabilities", None)
    if isinstance(capabilities, (str, bytes)) or not isinstance(capabilities, (list, tuple)):
        problems.append("capabilities must be a list of names")
    elif not all(isinstance(c, str) and c for c in capabilities):
        problems.append("capabilities must be non-empty strings")
    priority = getattr(provider, "priority", None)
    if isinstance(priority, bool) or not isinstance(priority, (int, float)):
        problems.append("priority must be a number")
    return problems


def normalize_output(
    raw: Any,
    provider_name: str,
    capability: str,
) -> ProviderResult:
    """Convert a provider's raw return value into a ProviderResult.

    A mapping is successful when ``success`` is truthy, or when it has no
    ``success`` key and no ``error``. The payload is ``results``, then
    ``data``, then the remaining keys. Any other value is a successful
    payload as-is.
    """
    if isinstance(raw, ProviderResult):
        return raw

    if isinstance(raw, dict):
        if "success" in raw:
            success = bool(raw["success"])
        else:
            success = "error" not in raw

        if "results" in raw:
            payload = raw["results"]
        elif "data" in raw:
            payload = raw["data"]
        else:
            payload = {k: v for k, v in raw.items() if k not in ("success", "error")}

        if success:
            return ProviderResult(
                provider_name=provider_name,
                capability=capability,
                success=True,
                payload=payload,
            )

        failure = ProviderError(
            str(raw.get("error") or "provider reported failure"),
            provider_name=provider_name,
            capability=capability,
        )
        return ProviderResult(
            provider_name=provider_name,
            capability=capability,
            success=False,
            error=failure.message,
            error_code=failure.code,
        )

    return ProviderResult(
        provider_name=provider_name,
        capability=capability,
        success=True,
        payload=raw,
    )


async def call_provider(provider: Any, context: dict[str, Any]) -> Any:
    """Invoke ``provider.execute`` whether it is sync or async.

    A sync ``execute`` runs in a worker thread so it cannot stall the loop.
    """
    return await call_maybe_async(provider.execute, context)


__all__ = [
    "CapabilityProvider",
    "FunctionProvider",
    "NullProvider",
    "ProviderOutput",
    "DEFAULT_PROVIDER_TIMEOUT",
    "DEFAULT_PROVIDER_CACHE_TTL",
    "call_provider",
    "normalize_output",
    "provider_cache_ttl",
    "provider_name",
    "provider_timeout",
    "validate_provider",
]
