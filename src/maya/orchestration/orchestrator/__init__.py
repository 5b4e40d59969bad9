"""Request validation, capability dispatch and the orchestrator."""

from .dispatcher import CapabilityDispatcher, DispatchTarget, cache_key
from .engine import (
    Orchestrator,
    OrchestratorConfig,
    generate_request_id,
    get_orchestrator,
    init_orchestrator,
)
from .validation import RequestEnvelope, ValidationRules, sanitize_request

__all__ = [
    "CapabilityDispatcher",
    "DispatchTarget",
    "Orchestrator",
    "OrchestratorConfig",
    "RequestEnvelope",
    "ValidationRules",
    "cache_key",
    "generate_request_id",
    "get_orchestrator",
    "init_orchestrator",
    "sanitize_request",
]
