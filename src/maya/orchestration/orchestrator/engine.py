"""
Orchestrator.

Root of the request flow. For each inbound utterance:
1. Validate and sanitize the request (failures never reach dispatch)
2. Resolve capabilities: explicit list, else one Intent Router call
3. Dispatch all capabilities in parallel under a global deadline
4. Aggregate with partial-success semantics
5. Commit the turn to the conversation store in arrival order
6. Stamp request_id and response_time_ms and return the envelope

``orchestrate`` never raises; every failure becomes a result envelope.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional

from ...common.exceptions import (
    InfrastructureError,
    ProviderError,
    SkillNotFoundError,
    ValidationError,
)
from ...common.resilience import Deadline, RetryPolicy, elapsed_ms
from ...common.settings import Settings, env_bool, env_float, env_int, load_settings
from ..cache.backends import JSONBinCacheBackend, JSONBinConfig
from ..cache.hybrid_cache import HybridCache
from ..domain.entities import (
    OrchestrationResult,
    OrchestrationStage,
    ProviderResult,
    Turn,
)
from ..domain.ports import IIntentRouter, IRemoteCache
from ..memory.conversation_store import ConversationStore
from ..providers.registry import ProviderRegistry
from ..routing.intent_router import KeywordIntentRouter
from ..skills.executor import SkillExecutor
from .dispatcher import DEFAULT_CANCEL_GRACE_SECONDS, CapabilityDispatcher, unresolved_result
from .validation import (
    DEFAULT_MAX_MESSAGE_LENGTH,
    DEFAULT_MIN_MESSAGE_LENGTH,
    RequestEnvelope,
    ValidationRules,
    sanitize_request,
)

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Configuration for the orchestrator.

    Attributes:
        timeout_seconds: Global budget per request
        max_retries: Retries per failed (not timed-out) capability
        stub_unregistered: Answer unknown capabilities with the NullProvider
        enable_result_cache: Consult and fill the hybrid cache
        cancel_grace_seconds: Time given to cancelled capabilities to unwind
        min_message_length: Shortest accepted message after trimming
        max_message_length: Longest accepted message after trimming
        response_time_window: Requests kept for the rolling average
        retry_policy: Backoff strategy (default: immediate retry). When given,
            its max_retries wins and is copied back onto max_retries
    """

    timeout_seconds: float = field(
        default_factory=lambda: env_float("MAYA_ORCHESTRATOR_TIMEOUT_SECONDS", 30.0)
    )
    max_retries: int = field(
        default_factory=lambda: env_int("MAYA_ORCHESTRATOR_MAX_RETRIES", 2)
    )
    stub_unregistered: bool = field(
        default_factory=lambda: env_bool("MAYA_STUB_UNREGISTERED", True)
    )
    enable_result_cache: bool = field(
        default_factory=lambda: env_bool("MAYA_ENABLE_RESULT_CACHE", True)
    )
    cancel_grace_seconds: float = DEFAULT_CANCEL_GRACE_SECONDS
    min_message_length: int = DEFAULT_MIN_MESSAGE_LENGTH
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH
    response_time_window: int = 100
    retry_policy: Optional[RetryPolicy] = None

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.retry_policy is None:
            self.retry_policy = RetryPolicy(max_retries=self.max_retries)
        elif self.retry_policy.max_retries != self.max_retries:
            logger.debug(
                f"retry_policy.max_retries={self.retry_policy.max_retries} "
                f"overrides max_retries={self.max_retries}"
            )
            self.max_retries = self.retry_policy.max_retries


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class Orchestrator:
    """Coordinates validation, routing, dispatch, caching and state.

    Usage:
        registry = ProviderRegistry()
        registry.register_provider(FlightSearchProvider())
        registry.register_provider(HotelSearchProvider())

        orchestrator = Orchestrator(registry=registry)
        result = await orchestrator.orchestrate(
            {"message": "Plan a trip to Dubai", "params": {"travelers": 2}},
            {"user_id": "u1", "conversation_id": "c1"},
        )
        if result.success:
            flights = result.data["flight_search"].payload
    """

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        skills: Optional[SkillExecutor] = None,
        cache: Optional[HybridCache] = None,
        conversations: Optional[ConversationStore] = None,
        router: Optional[IIntentRouter] = None,
        config: Optional[OrchestratorConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the orchestrator.

        Args:
            registry: Capability providers (default: empty registry)
            skills: Skill executor (default: built-in skills only)
            cache: Hybrid cache (default: local tier only)
            conversations: Conversation store (default: no eviction)
            router: Intent router (default: keyword rule table)
            config: Orchestrator configuration
            logger: Logger to use (defaults to the module logger)
        """
        self.config = config or OrchestratorConfig()
        self._logger = logger or logging.getLogger(__name__)
        self.registry = registry if registry is not None else ProviderRegistry(logger=self._logger)
        self.skills = skills if skills is not None else SkillExecutor(logger=self._logger)
        self.cache = cache if cache is not None else HybridCache(logger=self._logger)
        self.conversations = (
            conversations if conversations is not None else ConversationStore(logger=self._logger)
        )
        self.router = router if router is not None else KeywordIntentRouter(logger=self._logger)
        self.dispatcher = CapabilityDispatcher(
            registry=self.registry,
            skills=self.skills,
            cache=self.cache,
            retry_policy=self.config.retry_policy,
            stub_unregistered=self.config.stub_unregistered,
            enable_result_cache=self.config.enable_result_cache,
            cancel_grace_seconds=self.config.cancel_grace_seconds,
            logger=self._logger,
        )
        self._rules = ValidationRules(
            min_message_length=self.config.min_message_length,
            max_message_length=self.config.max_message_length,
        )
        self._metrics = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "partial_requests": 0,
            "validation_failures": 0,
        }
        self._response_times: deque[float] = deque(maxlen=self.config.response_time_window)

    async def orchestrate(
        self,
        request: Any,
        call_context: Any = None,
    ) -> OrchestrationResult:
        """Handle one inbound utterance.

        Args:
            request: RequestEnvelope or mapping (message/query, params, ...)
            call_context: CallContext or mapping with fallback identity fields

        Returns:
            OrchestrationResult (never raises)
        """
        started = time.monotonic()
        request_id = generate_request_id()
        self._metrics["total_requests"] += 1
        stage = OrchestrationStage.RECEIVED
        ticket = None

        try:
            try:
                envelope = sanitize_request(request, call_context, self._rules)
            except ValidationError as e:
                self._metrics["validation_failures"] += 1
                self._logger.info(f"Request {request_id} rejected: {e.message}")
                return self._failure(request_id, started, stage, e.message, e.code)

            stage = OrchestrationStage.VALIDATED
            deadline = Deadline(self.config.timeout_seconds)
            conversation_id = envelope.conversation_id
            conversation = self.conversations.get_or_create(conversation_id, envelope.user_id)
            ticket = self.conversations.reserve_turn(conversation_id)

            intent, capabilities = self._resolve_capabilities(envelope)
            stage = OrchestrationStage.INTENT_RESOLVED

            targets, unresolved = self.dispatcher.plan(capabilities)
            if not targets:
                self._logger.warning(
                    f"Request {request_id}: no providers for {list(capabilities)}"
                )
                missing = SkillNotFoundError(
                    ", ".join(capabilities), self.skills.available_skills()
                )
                return self._failure(
                    request_id,
                    started,
                    stage,
                    "no providers could be resolved",
                    missing.code,
                    conversation_id=conversation_id,
                    intent=intent,
                    capabilities=list(capabilities),
                )

            stage = OrchestrationStage.DISPATCHING
            context = {
                "message": envelope.raw_message,
                "params": dict(envelope.structured_params),
                "intent": intent,
                "user_id": envelope.user_id,
                "conversation_id": conversation_id,
                "tier": envelope.tier.value,
                "request_id": request_id,
                "derived_context": dict(conversation.derived_context),
            }
            results = await self.dispatcher.dispatch(targets, context, deadline)

            stage = OrchestrationStage.AGGREGATING
            available = self.skills.available_skills()
            data: dict[str, ProviderResult] = {}
            for capability in capabilities:
                if capability in results:
                    data[capability] = results[capability]
                elif capability in unresolved:
                    data[capability] = unresolved_result(capability, available)

            succeeded = [r for r in data.values() if r.success]
            if envelope.require_all:
                success = len(succeeded) == len(data)
            else:
                success = bool(succeeded)
            partial = success and len(succeeded) < len(data)

            state = await self.conversations.append(
                conversation_id,
                Turn(message=envelope.raw_message, request_id=request_id, intent=intent),
                ticket,
                user_id=envelope.user_id,
            )
            ticket = None

            stage = OrchestrationStage.COMPLETED
            response_time = elapsed_ms(started)
            self._record_outcome(success, partial, response_time)

            error = None
            error_code = None
            if not success:
                failure = ProviderError(
                    "not all capabilities succeeded" if succeeded else "all capabilities failed"
                )
                error = failure.message
                error_code = failure.code

            return OrchestrationResult(
                success=success,
                data=data,
                metadata={
                    "request_id": request_id,
                    "response_time_ms": response_time,
                    "conversation_id": conversation_id,
                    "intent": intent,
                    "capabilities": list(capabilities),
                    "interaction_count": state.interaction_count,
                    "partial": partial,
                    "stage": stage.value,
                },
                error=error,
                error_code=error_code,
            )

        except Exception as e:
            wrapped = InfrastructureError(f"Orchestration failed: {e}", cause=e)
            self._logger.exception(f"Request {request_id} failed at stage {stage.value}")
            return self._failure(request_id, started, stage, wrapped.message, wrapped.code)

        finally:
            if ticket is not None:
                self.conversations.release_turn(ticket)

    def _resolve_capabilities(self, envelope: RequestEnvelope) -> tuple[str, tuple[str, ...]]:
        if envelope.capabilities:
            return envelope.capabilities[0], tuple(envelope.capabilities)
        match = self.router.route(envelope.raw_message)
        return match.intent, tuple(match.capabilities)

    def _failure(
        self,
        request_id: str,
        started: float,
        stage: OrchestrationStage,
        error: str,
        error_code: Optional[str],
        **metadata: Any,
    ) -> OrchestrationResult:
        response_time = elapsed_ms(started)
        self._record_outcome(False, False, response_time)
        return OrchestrationResult(
            success=False,
            metadata={
                "request_id": request_id,
                "response_time_ms": response_time,
                "stage": OrchestrationStage.FAILED.value,
                "failed_at": stage.value,
                **metadata,
            },
            error=error,
            error_code=error_code,
        )

    def _record_outcome(self, success: bool, partial: bool, response_time: float) -> None:
        if success:
            self._metrics["successful_requests"] += 1
        else:
            self._metrics["failed_requests"] += 1
        if partial:
            self._metrics["partial_requests"] += 1
        self._response_times.append(response_time)

    # ============================================
    # Monitoring
    # ============================================

    def get_metrics(self) -> dict[str, Any]:
        """Request totals, success rate, rolling latency and provider stats."""
        total = self._metrics["total_requests"]
        average = (
            sum(self._response_times) / len(self._response_times)
            if self._response_times
            else 0.0
        )
        return {
            **self._metrics,
            "success_rate": round(self._metrics["successful_requests"] / total, 4) if total else 0.0,
            "average_response_time_ms": round(average, 3),
            "active_conversations": len(self.conversations),
            "providers": self.registry.get_stats(),
            "cache": self.cache.get_stats(),
        }

    async def health_check(self) -> dict[str, Any]:
        cache_health = await self.cache.health_check()
        return {
            "status": cache_health["status"],
            "cache": cache_health,
            "providers": {
                "registered": len(self.registry),
                "capabilities": self.registry.list_capabilities(),
            },
            "skills": self.skills.available_skills(),
            "conversations": self.conversations.get_stats(),
        }

    def get_conversation_state(self, conversation_id: str) -> Optional[dict[str, Any]]:
        state = self.conversations.get_by_id(conversation_id)
        return state.to_dict() if state else None

    async def shutdown(self) -> None:
        """Wait for background cache syncs to finish."""
        await self.cache.wait_for_pending_syncs()


# Module-level default orchestrator (lazy initialization)
_default_orchestrator: Optional[Orchestrator] = None


def init_orchestrator(
    settings: Optional[Settings] = None,
    registry: Optional[ProviderRegistry] = None,
    remote: Optional[IRemoteCache] = None,
    config: Optional[OrchestratorConfig] = None,
) -> Orchestrator:
    """Initialize the default orchestrator from settings.

    The JSONbin remote tier is used when an API key is configured and no
    other remote is passed.

    Args:
        settings: Process settings (default: load_settings())
        registry: Capability providers
        remote: Remote cache tier
        config: Orchestrator configuration

    Returns:
        Configured Orchestrator
    """
    global _default_orchestrator
    settings = settings or load_settings()
    if remote is None and settings.jsonbin_api_key:
        remote = JSONBinCacheBackend(
            JSONBinConfig(api_key=settings.jsonbin_api_key, base_url=settings.jsonbin_base_url)
        )
    _default_orchestrator = Orchestrator(
        registry=registry,
        cache=HybridCache(remote=remote),
        config=config,
    )
    return _default_orchestrator


def get_orchestrator() -> Orchestrator:
    """Get the default orchestrator.

    Returns:
        Orchestrator instance (local cache only if not initialized)
    """
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = Orchestrator()
    return _default_orchestrator
