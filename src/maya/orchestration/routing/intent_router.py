"""
Intent Router.

Maps a raw message to an intent with an ordered keyword rule table.
Matching is a case-insensitive substring test; the first matching rule
wins, so rule order is significant. English and Arabic keywords live in
the same table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..domain.entities import IntentMatch
from ..domain.ports import IIntentRouter

logger = logging.getLogger(__name__)

DEFAULT_INTENT = "simple_response"


@dataclass(frozen=True)
class IntentRule:
    """One row of the rule table.

    Attributes:
        intent: Intent name produced when the rule matches
        keywords: Substrings that trigger the rule
        capabilities: Capabilities to dispatch (defaults to the intent itself)
    """

    intent: str
    keywords: tuple[str, ...]
    capabilities: tuple[str, ...] = ()

    def match(self, text: str) -> Optional[str]:
        for keyword in self.keywords:
            if keyword.lower() in text:
                return keyword
        return None

    @property
    def expands_to(self) -> tuple[str, ...]:
        return self.capabilities or (self.intent,)


DEFAULT_RULES: tuple[IntentRule, ...] = (
    IntentRule(
        "plan_trip",
        ("trip", "travel", "vacation", "plan", "رحلة", "سفر", "تخطيط"),
        ("flight_search", "hotel_search"),
    ),
    IntentRule(
        "search_flights",
        ("flight", "fly", "airline", "طيران"),
        ("flight_search",),
    ),
    IntentRule("calculate_budget", ("budget", "cost", "price", "ميزانية")),
    IntentRule("get_destination_info", ("info", "attractions", "معلومات")),
    IntentRule("get_weather", ("weather", "forecast", "طقس")),
)


class KeywordIntentRouter(IIntentRouter):
    """Ordered, first-match-wins keyword router.

    Usage:
        router = KeywordIntentRouter()
        router.detect_intent("Plan a trip to Dubai")   # "plan_trip"
        router.route("Book a flight").capabilities      # ("flight_search",)

        # Custom table
        router = KeywordIntentRouter(
            rules=[IntentRule("get_weather", ("weather",))],
            default_intent="chat",
        )
    """

    def __init__(
        self,
        rules: Optional[Iterable[IntentRule]] = None,
        default_intent: str = DEFAULT_INTENT,
        logger: Optional[logging.Logger] = None,
    ):
        self._rules: list[IntentRule] = list(rules if rules is not None else DEFAULT_RULES)
        self.default_intent = default_intent
        self._logger = logger or logging.getLogger(__name__)

    @property
    def rules(self) -> Sequence[IntentRule]:
        return tuple(self._rules)

    def add_rule(self, rule: IntentRule, position: Optional[int] = None) -> None:
        """Insert a rule; appended (lowest precedence) by default."""
        if position is None:
            self._rules.append(rule)
        else:
            self._rules.insert(position, rule)

    def detect_intent(self, raw_message: str) -> str:
        return self.route(raw_message).intent

    def route(self, raw_message: str) -> IntentMatch:
        text = (raw_message or "").lower()
        for rule in self._rules:
            keyword = rule.match(text)
            if keyword is not None:
                self._logger.debug(f"Intent '{rule.intent}' matched on '{keyword}'")
                return IntentMatch(
                    intent=rule.intent,
                    capabilities=rule.expands_to,
                    matched_keyword=keyword,
                )
        return IntentMatch(
            intent=self.default_intent,
            capabilities=(self.default_intent,),
        )
