"""
Request validation and sanitization.

Turns a caller's raw request (mapping or RequestEnvelope) into an immutable,
sanitized RequestEnvelope, or raises ValidationError. A request that fails
here never reaches dispatch.

Rules:
- message (``raw_message``, ``message`` or ``query``) is trimmed and must be
  between min_message_length and max_message_length characters
- ``travelers`` is coerced to an int >= 1 (default 1)
- ``budget`` is coerced to a float >= 0 (default 0)
- user id falls back to the call context, then "guest"
- conversation id falls back to the call context, then a generated id
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...common.exceptions import ValidationError
from ..domain.entities import CallContext, UserTier

logger = logging.getLogger(__name__)

DEFAULT_MIN_MESSAGE_LENGTH = 1
DEFAULT_MAX_MESSAGE_LENGTH = 2000


class RequestEnvelope(BaseModel):
    """Sanitized inbound request. Immutable."""

    model_config = ConfigDict(frozen=True)

    raw_message: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    conversation_id: Optional[str] = None
    structured_params: dict[str, Any] = Field(default_factory=dict)
    tier: UserTier = UserTier.GUEST
    capabilities: Optional[tuple[str, ...]] = None
    require_all: bool = False

    @field_validator("capabilities")
    @classmethod
    def _unique_capabilities(cls, value):
        if value is None:
            return None
        seen = []
        for capability in value:
            if capability and capability not in seen:
                seen.append(capability)
        return tuple(seen)


@dataclass(frozen=True)
class ValidationRules:
    """Limits applied during sanitization."""

    min_message_length: int = DEFAULT_MIN_MESSAGE_LENGTH
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH


RequestLike = Union[RequestEnvelope, Mapping[str, Any]]


def generate_conversation_id(user_id: str) -> str:
    return f"conv_{user_id}_{uuid.uuid4().hex[:12]}"


def _coerce_travelers(value: Any) -> int:
    if value is None or value == "":
        return 1
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"travelers must be a number, got {value!r}",
            field="travelers",
        )
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"travelers must be finite, got {value!r}", field="travelers")
    return max(1, int(number))


def _coerce_budget(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"budget must be a number, got {value!r}",
            field="budget",
        )
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"budget must be finite, got {value!r}", field="budget")
    return max(0.0, number)


def _coerce_tier(value: Any) -> UserTier:
    if value is None or value == "":
        return UserTier.GUEST
    if isinstance(value, UserTier):
        return value
    try:
        return UserTier(str(value).lower())
    except ValueError:
        raise ValidationError(f"unknown tier {value!r}", field="tier")


_TRUE_FLAGS = ("1", "true", "yes", "on")
_FALSE_FLAGS = ("", "0", "false", "no", "off")


def _coerce_flag(value: Any, field: str) -> bool:
    """Booleans pass through; "true"/"false" style strings and 0/1 are parsed."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        flag = value.strip().lower()
        if flag in _TRUE_FLAGS:
            return True
        if flag in _FALSE_FLAGS:
            return False
    raise ValidationError(f"{field} must be a boolean, got {value!r}", field=field)


def _coerce_capabilities(value: Any) -> Optional[tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        raise ValidationError("capabilities must be a list of names", field="capabilities")
    names = tuple(str(c).strip() for c in value if str(c).strip())
    return names or None


def sanitize_request(
    request: Optional[RequestLike],
    call_context: Any = None,
    rules: Optional[ValidationRules] = None,
) -> RequestEnvelope:
    """Validate and sanitize an inbound request.

    Args:
        request: RequestEnvelope or mapping with message/query and params
        call_context: CallContext or mapping with fallback identity fields
        rules: Message length limits

    Returns:
        A new, immutable RequestEnvelope

    Raises:
        ValidationError: If the request is empty, malformed or out of bounds
    """
    rules = rules or ValidationRules()
    context = CallContext.from_value(call_context)

    if request is None:
        raise ValidationError("Request is required", field="message")

    if isinstance(request, RequestEnvelope):
        data: dict[str, Any] = request.model_dump()
    elif isinstance(request, Mapping):
        data = dict(request)
    else:
        raise ValidationError(
            f"Request must be a mapping, got {type(request).__name__}",
        )

    message = data.get("raw_message")
    if message is None:
        message = data.get("message")
    if message is None:
        message = data.get("query")
    if not isinstance(message, str):
        raise ValidationError("Message or query is required", field="message")

    message = message.strip()
    if len(message) < max(1, rules.min_message_length):
        raise ValidationError(
            f"Message must be at least {max(1, rules.min_message_length)} characters",
            field="message",
        )
    if len(message) > rules.max_message_length:
        raise ValidationError(
            f"Message exceeds {rules.max_message_length} characters",
            field="message",
        )

    params = data.get("structured_params")
    if params is None:
        params = data.get("params") or {}
    if not isinstance(params, Mapping):
        raise ValidationError("structured_params must be a mapping", field="structured_params")
    params = dict(params)
    for key in ("travelers", "budget", "destination", "dates"):
        if key not in params and key in data:
            params[key] = data[key]
    params["travelers"] = _coerce_travelers(params.get("travelers"))
    params["budget"] = _coerce_budget(params.get("budget"))

    user_id = str(data.get("user_id") or data.get("userId") or context.user_id or "guest").strip()
    user_id = user_id or "guest"

    conversation_id = (
        data.get("conversation_id")
        or data.get("conversationId")
        or context.conversation_id
        or generate_conversation_id(user_id)
    )

    return RequestEnvelope(
        raw_message=message,
        user_id=user_id,
        conversation_id=str(conversation_id),
        structured_params=params,
        tier=_coerce_tier(data.get("tier") or context.tier),
        capabilities=_coerce_capabilities(data.get("capabilities")),
        require_all=_coerce_flag(
            data["require_all"] if "require_all" in data else data.get("requireAll"),
            "require_all",
        ),
    )
