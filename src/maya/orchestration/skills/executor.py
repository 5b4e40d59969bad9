"""
Skill Executor.

Runs named skill handlers with a uniform failure boundary. A handler may
be sync or async; whatever it raises or reports is converted into a
SkillResult, so callers never see an exception from a skill.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ...common.exceptions import MayaError, SkillNotFoundError
from ...common.resilience import call_maybe_async, elapsed_ms
from ..domain.entities import SkillResult

logger = logging.getLogger(__name__)

SkillHandler = Callable[[dict[str, Any], dict[str, Any]], Any]


@dataclass
class _Skill:
    name: str
    handler: SkillHandler
    metadata: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    executions: int = 0
    failures: int = 0


def _simple_response(params: dict[str, Any], shared_state: dict[str, Any]) -> dict[str, Any]:
    message = params.get("message") or params.get("query") or ""
    return {
        "success": True,
        "response": message,
        "type": "simple_response",
    }


class SkillExecutor:
    """Executes registered skills with error handling.

    Usage:
        executor = SkillExecutor()
        executor.register("get_weather", weather_handler, {"description": "..."})

        result = await executor.execute("get_weather", {"city": "Dubai"}, {})
        if not result.success:
            logger.warning(result.error)

    Architecture:
        - Unknown skills return a SKILL_NOT_FOUND result listing what exists
        - Handler exceptions become failed results, never propagate
        - Cancellation is not caught, so deadlines still apply
    """

    def __init__(
        self,
        register_defaults: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the skill executor.

        Args:
            register_defaults: Register the built-in simple_response skill
            logger: Logger to use (defaults to the module logger)
        """
        self._logger = logger or logging.getLogger(__name__)
        self._skills: dict[str, _Skill] = {}
        if register_defaults:
            self.register(
                "simple_response",
                _simple_response,
                {"description": "Echo the message back as a plain response"},
            )

    def register(
        self,
        name: str,
        handler: SkillHandler,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Register (or replace) a skill handler.

        Raises:
            TypeError: If handler is not callable
        """
        if not callable(handler):
            raise TypeError(f"Skill handler for '{name}' must be callable")
        if name in self._skills:
            self._logger.warning(f"Replacing skill '{name}'")
        self._skills[name] = _Skill(name=name, handler=handler, metadata=dict(metadata or {}))
        self._logger.debug(f"Registered skill '{name}'")

    def unregister(self, name: str) -> bool:
        return self._skills.pop(name, None) is not None

    def has_skill(self, name: str) -> bool:
        return name in self._skills

    def available_skills(self) -> list[str]:
        """Names of registered, enabled skills."""
        return sorted(name for name, skill in self._skills.items() if skill.enabled)

    def list_skills(self) -> list[dict[str, Any]]:
        """Describe every registered skill with its counters."""
        return [
            {
                "name": skill.name,
                "enabled": skill.enabled,
                "executions": skill.executions,
                "failures": skill.failures,
                "metadata": dict(skill.metadata),
            }
            for skill in sorted(self._skills.values(), key=lambda s: s.name)
        ]

    def set_enabled(self, name: str, enabled: bool) -> None:
        """Enable or disable a skill.

        Raises:
            SkillNotFoundError: If no such skill is registered
        """
        skill = self._skills.get(name)
        if skill is None:
            raise SkillNotFoundError(name, available=self.available_skills())
        skill.enabled = enabled

    async def execute(
        self,
        skill_name: str,
        params: Optional[dict[str, Any]] = None,
        shared_state: Optional[dict[str, Any]] = None,
    ) -> SkillResult:
        """Execute a registered skill.

        Args:
            skill_name: Skill to run
            params: Parameters for the handler
            shared_state: State shared across skills within one request

        Returns:
            SkillResult (never raises, cancellation excepted)
        """
        skill = self._skills.get(skill_name)
        if skill is None:
            error = SkillNotFoundError(skill_name, available=self.available_skills())
            self._logger.warning(f"Skill not found: {skill_name}")
            return SkillResult(
                skill_name=skill_name,
                success=False,
                error=error.message,
                error_code=error.code,
                available=error.available,
            )

        if not skill.enabled:
            return SkillResult(
                skill_name=skill_name,
                success=False,
                error="skill disabled",
                error_code="SKILL_DISABLED",
            )

        skill.executions += 1
        result = await self.run_handler(skill_name, skill.handler, params, shared_state)
        if not result.success:
            skill.failures += 1
        return result

    async def run_handler(
        self,
        name: str,
        handler: Callable[..., Any],
        params: Optional[dict[str, Any]] = None,
        shared_state: Optional[dict[str, Any]] = None,
    ) -> SkillResult:
        """Run any handler inside the skill failure boundary.

        Args:
            name: Name reported in the result and logs
            handler: Sync or async callable taking (params, shared_state);
                sync handlers run in a worker thread
            params: Parameters for the handler
            shared_state: Shared request state

        Returns:
            SkillResult with success or error populated
        """
        params = params if params is not None else {}
        shared_state = shared_state if shared_state is not None else {}
        started = time.monotonic()

        self._logger.debug(f"Executing skill: {name}")
        try:
            value = await call_maybe_async(handler, params, shared_state)
        except Exception as e:
            self._logger.error(f"Skill {name} failed: {e}")
            return SkillResult(
                skill_name=name,
                success=False,
                error=str(e) or e.__class__.__name__,
                error_code=e.code if isinstance(e, MayaError) else "SKILL_ERROR",
                execution_time_ms=elapsed_ms(started),
            )

        elapsed = elapsed_ms(started)
        if isinstance(value, dict) and _reports_failure(value):
            error = value.get("error") or "skill reported failure"
            self._logger.warning(f"Skill {name} reported failure: {error}")
            return SkillResult(
                skill_name=name,
                success=False,
                error=str(error),
                error_code=value.get("error_code") or "SKILL_ERROR",
                execution_time_ms=elapsed,
            )

        return SkillResult(
            skill_name=name,
            success=True,
            result=value,
            execution_time_ms=elapsed,
        )


def _reports_failure(value: dict[str, Any]) -> bool:
    if "success" in value:
        return not value["success"]
    return bool(value.get("error"))


