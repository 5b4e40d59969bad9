"""Intent routing."""

from .intent_router import DEFAULT_INTENT, DEFAULT_RULES, IntentRule, KeywordIntentRouter

__all__ = [
    "DEFAULT_INTENT",
    "DEFAULT_RULES",
    "IntentRule",
    "KeywordIntentRouter",
]
