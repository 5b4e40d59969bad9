"""
Tests for the keyword intent router.

Tests cover:
    - English and Arabic keyword detection
    - First-match-wins rule ordering
    - Default intent fallback
    - Capability expansion of intents
"""
import sys

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])

from src.maya.orchestration.routing.intent_router import (
    DEFAULT_INTENT,
    IntentRule,
    KeywordIntentRouter,
)


@pytest.fixture
def router():
    return KeywordIntentRouter()


class TestIntentDetection:
    """Test intent detection against the default rule table."""

    @pytest.mark.parametrize("message,intent", [
        ("Plan a trip to Dubai", "plan_trip"),
        ("I want to TRAVEL next month", "plan_trip"),
        ("Book a flight to Cairo", "search_flights"),
        ("What is my budget?", "calculate_budget"),
        ("Tell me the attractions in Paris", "get_destination_info"),
        ("What is the weather in Riyadh", "get_weather"),
    ])
    def test_english_keywords(self, router, message, intent):
        assert router.detect_intent(message) == intent

    @pytest.mark.parametrize("message,intent", [
        ("أريد رحلة إلى دبي", "plan_trip"),
        ("حجز طيران إلى القاهرة", "search_flights"),
        ("ما هي الميزانية", "calculate_budget"),
        ("كيف الطقس اليوم", "get_weather"),
    ])
    def test_arabic_keywords(self, router, message, intent):
        assert router.detect_intent(message) == intent

    def test_no_match_returns_default(self, router):
        assert router.detect_intent("hello there") == DEFAULT_INTENT

    def test_empty_message_returns_default(self, router):
        assert router.detect_intent("") == DEFAULT_INTENT

    def test_first_matching_rule_wins(self, router):
        """'trip' (plan_trip) precedes 'flight' (search_flights) in the table."""
        assert router.detect_intent("trip with a flight and a budget") == "plan_trip"


class TestRouting:
    """Test intent to capability expansion."""

    def test_plan_trip_expands_to_flights_and_hotels(self, router):
        match = router.route("Plan a trip to Dubai")
        assert match.intent == "plan_trip"
        assert match.capabilities == ("flight_search", "hotel_search")
        assert match.matched_keyword == "trip"

    def test_intent_without_expansion_is_its_own_capability(self, router):
        match = router.route("weather forecast please")
        assert match.capabilities == ("get_weather",)

    def test_default_route(self, router):
        match = router.route("good morning")
        assert match.intent == "simple_response"
        assert match.capabilities == ("simple_response",)
        assert match.matched_keyword is None


class TestCustomRules:
    """Test custom rule tables."""

    def test_custom_table_and_default(self):
        router = KeywordIntentRouter(
            rules=[IntentRule("book_car", ("car", "rental"), ("car_rental",))],
            default_intent="chat",
        )
        assert router.detect_intent("I need a rental") == "book_car"
        assert router.detect_intent("Plan a trip") == "chat"

    def test_add_rule_with_position_takes_precedence(self, router):
        router.add_rule(IntentRule("honeymoon", ("honeymoon",)), position=0)
        assert router.detect_intent("honeymoon trip") == "honeymoon"

    def test_add_rule_appends_by_default(self, router):
        router.add_rule(IntentRule("late", ("trip",)))
        assert router.detect_intent("trip") == "plan_trip"
        assert router.rules[-1].intent == "late"
