#!/usr/bin/env python3
"""Exception Hierarchy for the Maya orchestration core.

This module provides a structured exception hierarchy for the request
orchestration engine: request validation, capability providers, skills,
the hybrid cache, and the orchestrator itself.

Design Principles:
    - All exceptions inherit from MayaError base class
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability
    - Every exception carries a machine-readable code that is copied into
      result envelopes, so callers can branch without isinstance checks

Exception Hierarchy:
    MayaError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    ├── ValidationError (unrecoverable - fix the request)
    ├── ProviderError (absorbed into partial success)
    │   ├── ProviderTimeoutError
    │   └── ProviderRegistrationError
    ├── SkillNotFoundError (reported as data, lists available skills)
    ├── CacheUnavailableError (degrades to cache miss)
    └── InfrastructureError (caught at the orchestrator boundary)

Only ValidationError and an empty capability plan ever surface as a failed
OrchestrationResult. Everything else is recovered locally.
"""
from datetime import datetime
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class MayaError(Exception):
    """Base exception for all orchestration errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "PROVIDER_TIMEOUT")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether this error might be recoverable with retry
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.utcnow()
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors (Unrecoverable)
# ============================================

class ConfigurationError(MayaError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


# ============================================
# Request Validation
# ============================================

class ValidationError(MayaError):
    """Raised when an inbound request is malformed or empty.

    Surfaced immediately as a failed envelope; no provider is dispatched.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[list[str]] = None,
        field: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        self.errors = errors or [message]
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


# ============================================
# Provider Errors (Absorbed into partial success)
# ============================================

class ProviderError(MayaError):
    """Raised when a capability provider fails.

    The orchestrator never lets this escape; it becomes a per-capability
    ProviderResult with success=False.
    """

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        capability: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if provider_name:
            details["provider"] = provider_name
        if capability:
            details["capability"] = capability
        self.provider_name = provider_name
        self.capability = capability
        kwargs.setdefault("code", "PROVIDER_ERROR")
        kwargs.setdefault("recoverable", True)
        super().__init__(message, details=details, **kwargs)


class ProviderTimeoutError(ProviderError):
    """Raised when a provider exceeds its allotted time.

    Aggregated exactly like ProviderError but tagged distinctly.
    """

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        self.timeout_seconds = timeout_seconds
        super().__init__(
            message,
            code="PROVIDER_TIMEOUT",
            details=details,
            recoverable=False,
            **kwargs,
        )


class ProviderRegistrationError(ProviderError):
    """Raised when a provider does not satisfy the capability contract.

    The registry logs it as a warning and keeps going.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            code="PROVIDER_REGISTRATION_ERROR",
            recoverable=False,
            **kwargs,
        )


# ============================================
# Skill Errors
# ============================================

class SkillNotFoundError(MayaError):
    """Raised when a requested skill has no registered handler."""

    def __init__(
        self,
        skill_name: str,
        available: Optional[list[str]] = None,
        **kwargs,
    ):
        self.skill_name = skill_name
        self.available = list(available or [])
        super().__init__(
            "skill not found",
            code="SKILL_NOT_FOUND",
            details={"skill": skill_name, "available": self.available},
            recoverable=False,
            **kwargs,
        )


# ============================================
# Cache Errors (Degrade to miss)
# ============================================

class CacheUnavailableError(MayaError):
    """Raised by remote cache backends when the durable tier is unreachable.

    The hybrid cache catches this and treats it as a miss.
    """

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if backend:
            details["backend"] = backend
        if operation:
            details["operation"] = operation
        super().__init__(
            message,
            code="CACHE_UNAVAILABLE",
            details=details,
            recoverable=True,
            **kwargs,
        )


# ============================================
# Infrastructure Errors
# ============================================

class InfrastructureError(MayaError):
    """Wraps any otherwise-unhandled exception inside the orchestrator."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            code="INFRASTRUCTURE_ERROR",
            recoverable=False,
            **kwargs,
        )


# ============================================
# Exports
# ============================================

__all__ = [
    "MayaError",
    "ConfigurationError",
    "ValidationError",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderRegistrationError",
    "SkillNotFoundError",
    "CacheUnavailableError",
    "InfrastructureError",
]
