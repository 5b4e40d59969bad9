"""
Derived conversation context.

Recomputed on every committed turn:
- emotional_state: keyword-based primary emotion with an intensity level
- friendship_score / friendship_level: engagement score accumulated per turn
- last_intent: intent of the most recent turn

English keywords match on word boundaries; Arabic keywords match as
substrings because of attached prefixes.
"""

from __future__ import annotations

import re
from typing import Any, Optional

# ============================================
# Emotion detection
# ============================================

EMOTION_KEYWORDS: dict[str, tuple[str, ...]] = {
    "anxiety": (
        "anxious", "worried", "nervous", "stressed", "concerned", "scared", "fearful",
        "قلق", "توتر", "خائف", "قلقان", "متوتر", "خوف", "مضطرب",
    ),
    "happiness": (
        "happy", "joyful", "glad", "pleased", "great", "wonderful", "amazing",
        "سعيد", "فرحان", "مبسوط", "رائع", "ممتاز", "سعادة", "مسرور", "مبتهج",
    ),
    "sadness": (
        "sad", "unhappy", "depressed", "down", "disappointed", "miserable",
        "حزين", "مكتئب", "يائس", "كئيب", "تعس",
    ),
    "excitement": (
        "excited", "thrilled", "eager", "enthusiastic", "passionate", "energetic",
        "متحمس", "متشوق", "مستمتع", "حماس", "شغف", "إثارة",
    ),
    "frustration": (
        "frustrated", "annoyed", "angry", "upset", "irritated", "mad",
        "محبط", "زعلان", "غاضب", "مستاء", "عصبي", "غضبان",
    ),
    "calm": (
        "calm", "peaceful", "relaxed", "comfortable", "content", "satisfied",
        "هادئ", "مرتاح", "مطمئن", "راضي", "مستقر",
    ),
    "confusion": (
        "confused", "lost", "unclear", "puzzled", "bewildered", "unsure",
        "مشوش", "مربك", "مش فاهم", "مش واضح", "حائر",
    ),
    "urgency": (
        "urgent", "quickly", "asap", "immediate", "rush", "emergency",
        "عاجل", "فوري", "ضروري", "مستعجل",
    ),
}

INTENSIFIERS = ("very", "extremely", "really", "so", "totally", "جداً", "كتير", "وايد", "خالص", "أوي")
NEGATORS = ("not", "never", "don't", "doesn't", "مش", "ليس", "غير")

NEUTRAL = "neutral"


def _contains(text: str, keyword: str) -> bool:
    if keyword.isascii():
        return re.search(rf"\b{re.escape(keyword)}\b", text) is not None
    return keyword in text


def intensity_level(intensity: float) -> str:
    if intensity < 0.3:
        return "low"
    if intensity < 0.7:
        return "medium"
    return "high"


def detect_emotion(message: str) -> dict[str, Any]:
    """Detect the primary emotion of a message.

    Returns:
        {"primary_emotion", "intensity", "intensity_score", "all_emotions"}
    """
    text = (message or "").lower()

    modifier = 0.0
    modifier += 0.2 * sum(1 for w in INTENSIFIERS if _contains(text, w))
    negated = any(_contains(text, w) for w in NEGATORS)
    if text.count("!") > 1:
        modifier += 0.2
    if "?" in text:
        modifier += 0.1

    scored = []
    for emotion, keywords in EMOTION_KEYWORDS.items():
        matches = [k for k in keywords if _contains(text, k)]
        if not matches:
            continue
        score = min(len(matches) * 0.2 + 0.1 * sum(1 for m in matches if " " in m), 1.0)
        score += modifier
        if negated:
            score *= 0.5
        scored.append((emotion, round(min(score, 1.0), 3)))

    scored.sort(key=lambda item: item[1], reverse=True)
    if not scored:
        return {
            "primary_emotion": NEUTRAL,
            "intensity": "low",
            "intensity_score": 0.0,
            "all_emotions": [],
        }

    emotion, score = scored[0]
    return {
        "primary_emotion": emotion,
        "intensity": intensity_level(score),
        "intensity_score": score,
        "all_emotions": [e for e, _ in scored[:5]],
    }


# ============================================
# Friendship score
# ============================================

FRIENDSHIP_LEVELS: tuple[tuple[int, str], ...] = (
    (50, "close_friend"),
    (30, "good_friend"),
    (15, "friend"),
    (5, "acquaintance"),
    (0, "stranger"),
)

POSITIVE_WORDS = (
    "thank", "thanks", "great", "awesome", "amazing", "wonderful", "excellent", "perfect",
    "شكراً", "شكرا", "ممتاز", "رائع", "جميل", "مفيد", "حلو", "عظيم",
)
NEGATIVE_WORDS = (
    "bad", "terrible", "awful", "useless", "hate", "worst",
    "سيء", "فاشل", "مزعج",
)


def friendship_level(score: int) -> str:
    for threshold, level in FRIENDSHIP_LEVELS:
        if score >= threshold:
            return level
    return "stranger"


def interaction_score(message: str, turn_count: int) -> int:
    """Engagement points earned by one turn (never negative)."""
    text = (message or "").lower()
    score = 1
    if len(text) > 100:
        score += 2
    elif len(text) > 50:
        score += 1
    if "?" in text:
        score += 1
    if any(_contains(text, w) for w in POSITIVE_WORDS):
        score += 2
    if turn_count > 5:
        score += 2
    if any(_contains(text, w) for w in NEGATIVE_WORDS):
        score -= 1
    return max(score, 0)


def update_derived_context(
    current: dict[str, Any],
    message: str,
    intent: Optional[str],
    turn_count: int,
) -> dict[str, Any]:
    """Return the derived context after a turn is committed.

    Args:
        current: Derived context before the turn
        message: Message of the committed turn
        intent: Intent of the committed turn
        turn_count: Number of turns including this one
    """
    updated = dict(current)
    updated["emotional_state"] = detect_emotion(message)

    score = int(current.get("friendship_score", 0)) + interaction_score(message, turn_count)
    updated["friendship_score"] = score
    updated["friendship_level"] = friendship_level(score)

    if intent is not None:
        updated["last_intent"] = intent
    return updated
