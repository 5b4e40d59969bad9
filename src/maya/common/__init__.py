"""Shared infrastructure: exceptions, resilience helpers and settings.

Exceptions:
    MayaError: Base exception for all orchestration errors
    ConfigurationError: Missing or invalid configuration
    ValidationError: Malformed or empty request
    ProviderError: Capability provider failure
    ProviderTimeoutError: Provider exceeded its time budget
    SkillNotFoundError: No handler registered for a skill
    CacheUnavailableError: Remote cache tier unreachable
    InfrastructureError: Unexpected failure inside the orchestrator

Resilience:
    RetryPolicy: Bounded retries with optional backoff
    Deadline: Global time budget
    call_maybe_async: Await a callable, running sync ones in a worker thread
"""
from .exceptions import (
    CacheUnavailableError,
    ConfigurationError,
    InfrastructureError,
    MayaError,
    ProviderError,
    ProviderRegistrationError,
    ProviderTimeoutError,
    SkillNotFoundError,
    ValidationError,
)
from .resilience import Deadline, RetryPolicy, call_maybe_async, with_timeout
from .settings import Settings, configure_logging, load_settings

__all__ = [
    # Exceptions
    "CacheUnavailableError",
    "ConfigurationError",
    "InfrastructureError",
    "MayaError",
    "ProviderError",
    "ProviderRegistrationError",
    "ProviderTimeoutError",
    "SkillNotFoundError",
    "ValidationError",
    # Resilience
    "Deadline",
    "RetryPolicy",
    "with_timeout",
    "call_maybe_async",
    # Settings
    "Settings",
    "configure_logging",
    "load_settings",
]
