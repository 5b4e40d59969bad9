"""
Provider Registry.

Maps capability names to the providers that answer them. Handles
registration, priority-based resolution, and per-provider execution
statistics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ...common.exceptions import ProviderRegistrationError
from .base import NullProvider, provider_name, validate_provider

logger = logging.getLogger(__name__)


@dataclass
class _Registration:
    provider: Any
    order: int


@dataclass
class ProviderStats:
    """Execution counters for one provider."""

    executions: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    total_time_ms: float = 0.0

    @property
    def average_time_ms(self) -> float:
        if not self.executions:
            return 0.0
        return self.total_time_ms / self.executions

    @property
    def success_rate(self) -> float:
        if not self.executions:
            return 0.0
        return self.successes / self.executions

    def to_dict(self) -> dict[str, Any]:
        return {
            "executions": self.executions,
            "successes": self.successes,
            "failures": self.failures,
            "timeouts": self.timeouts,
            "average_time_ms": round(self.average_time_ms, 3),
            "success_rate": round(self.success_rate, 4),
        }


class ProviderRegistry:
    """Registry of capability providers.

    Several providers may serve one capability; ``resolve`` returns the one
    with the highest priority, the first registered on ties, and a
    NullProvider when nothing is registered.

    Usage:
        registry = ProviderRegistry()
        registry.register("flight_search", flight_provider)
        registry.register_provider(hotel_provider)  # all its capabilities

        provider = registry.resolve("flight_search")

    Registration never raises: a provider that breaks the contract is
    logged and skipped, and the other registrations are unaffected.
    The registry is expected to be populated at startup and read-only
    while requests are in flight.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(__name__)
        self._providers: dict[str, list[_Registration]] = {}
        self._stats: dict[str, ProviderStats] = {}
        self._counter = 0

    def register(self, capability: str, provider: Any) -> bool:
        """Register a provider for one capability.

        Args:
            capability: Capability name
            provider: Object satisfying the provider contract

        Returns:
            True if registered, False if the provider was rejected
        """
        try:
            self._validate(capability, provider)
        except ProviderRegistrationError as e:
            self._logger.warning(f"Rejected provider registration: {e}")
            return False

        name = provider_name(provider)
        registrations = self._providers.setdefault(capability, [])

        for i, existing in enumerate(registrations):
            if provider_name(existing.provider) == name:
                self._logger.warning(
                    f"Replacing provider '{name}' for capability '{capability}'"
                )
                registrations[i] = _Registration(provider, existing.order)
                return True

        self._counter += 1
        registrations.append(_Registration(provider, self._counter))
        self._stats.setdefault(name, ProviderStats())
        self._logger.info(
            f"Registered provider '{name}' for capability '{capability}' "
            f"(priority={provider.priority})"
        )
        return True

    def register_provider(self, provider: Any) -> bool:
        """Register a provider under every capability it declares.

        Returns:
            True only if every capability was registered
        """
        problems = validate_provider(provider)
        if problems:
            self._logger.warning(
                f"Rejected provider '{provider_name(provider)}': {'; '.join(problems)}"
            )
            return False
        return all([self.register(c, provider) for c in provider.capabilities])

    def _validate(self, capability: str, provider: Any) -> None:
        name = provider_name(provider)
        if not isinstance(capability, str) or not capability:
            raise ProviderRegistrationError(
                "capability name must be a non-empty string",
                provider_name=name,
            )
        problems = validate_provider(provider)
        if problems:
            raise ProviderRegistrationError(
                "; ".join(problems),
                provider_name=name,
                capability=capability,
            )

    def unregister(self, capability: str, name: str) -> bool:
        """Remove a named provider from a capability."""
        registrations = self._providers.get(capability, [])
        for i, registration in enumerate(registrations):
            if provider_name(registration.provider) == name:
                del registrations[i]
                if not registrations:
                    del self._providers[capability]
                self._logger.info(f"Unregistered provider '{name}' from '{capability}'")
                return True
        return False

    def resolve(self, capability: str) -> Any:
        """Return the best provider for a capability, or a NullProvider."""
        provider = self.get(capability)
        if provider is None:
            self._logger.debug(f"No provider for '{capability}', using NullProvider")
            return NullProvider(capability)
        return provider

    def get(self, capability: str) -> Optional[Any]:
        """Return the best provider for a capability, or None."""
        registrations = self._providers.get(capability)
        if not registrations:
            return None
        best = max(
            registrations,
            key=lambda r: (r.provider.priority, -r.order),
        )
        return best.provider

    def has_provider(self, capability: str) -> bool:
        return bool(self._providers.get(capability))

    def list_capabilities(self) -> list[str]:
        return sorted(self._providers)

    def list_providers(self) -> list[dict[str, Any]]:
        """Describe every registration."""
        listing = []
        for capability in sorted(self._providers):
            for registration in self._providers[capability]:
                listing.append({
                    "capability": capability,
                    "name": provider_name(registration.provider),
                    "priority": registration.provider.priority,
                })
        return listing

    def record_execution(
        self,
        name: str,
        success: bool,
        elapsed_ms: float,
        timed_out: bool = False,
    ) -> None:
        """Update execution statistics for a provider."""
        stats = self._stats.setdefault(name, ProviderStats())
        stats.executions += 1
        stats.total_time_ms += elapsed_ms
        if success:
            stats.successes += 1
        else:
            stats.failures += 1
        if timed_out:
            stats.timeouts += 1

    def get_stats(self, name: Optional[str] = None) -> dict[str, Any]:
        """Statistics for one provider, or for all of them by name."""
        if name is not None:
            stats = self._stats.get(name)
            return stats.to_dict() if stats else {}
        return {n: s.to_dict() for n, s in self._stats.items()}

    def __len__(self) -> int:
        return sum(len(r) for r in self._providers.values())

    def __contains__(self, capability: str) -> bool:
        return self.has_provider(capability)
