from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Literal

from cashwise_api.errors import ValidationError

AnswerCategory = Literal["A", "B", "C"]
PersonalityType = Literal["impulsive", "balanced", "strategic"]

PERSONALITY_QUIZ_ID = "financial_personality"

# Iteration order doubles as the tie-break: impulsive beats balanced beats strategic.
_CATEGORY_TYPES: tuple[tuple[AnswerCategory, PersonalityType], ...] = (
    ("A", "impulsive"),
    ("B", "balanced"),
    ("C", "strategic"),
)


@dataclass(frozen=True)
class PersonalityProfile:
    type: PersonalityType
    title: str
    description: str
    tips: tuple[str, ...]
    color: str


PROFILES: dict[PersonalityType, PersonalityProfile] = {
    "impulsive": PersonalityProfile(
        type="impulsive",
        title="Impulsive spender",
        description=(
            "Money is a way to enjoy life for you, but too much impulse can lead "
            "to stress and debt. Think about longer-term goals and a budget."
        ),
        tips=(
            "Create a monthly budget and stick to it",
            "Wait 24 hours before any large purchase",
            "Set long-term financial goals",
            "Use an app to track your spending",
        ),
        color="#FF6B6B",
    ),
    "balanced": PersonalityProfile(
        type="balanced",
        title="Balanced realist",
        description=(
            "You have a sensible attitude to money but sometimes hesitate. "
            "Sharpen your planning and set clear financial goals."
        ),
        tips=(
            "Set clear priorities for your savings",
            "Diversify your investments",
            "Build an emergency fund for unexpected costs",
            "Review your financial goals regularly",
        ),
        color="#FFD93D",
    ),
    "strategic": PersonalityProfile(
        type="strategic",
        title="Strategic planner",
        description=(
            "You are disciplined and treat money as a tool rather than only a "
            "source of pleasure. That is a solid base for financial wellbeing."
        ),
        tips=(
            "Focus on long-term financial planning",
            "Explore passive income opportunities",
            "Optimise your tax planning",
            "Help others build their financial skills",
        ),
        color="#4CAF50",
    ),
}


def tally(answers: Iterable[str]) -> dict[AnswerCategory, int]:
    counts: Counter[str] = Counter()
    for raw in answers:
        key = str(raw or "").strip().upper()
        if key not in {"A", "B", "C"}:
            raise ValidationError(f"unknown answer category: {raw!r}")
        counts[key] += 1
    return {cat: int(counts.get(cat, 0)) for cat, _ in _CATEGORY_TYPES}


def classify(answers: Iterable[str]) -> PersonalityType:
    counts = tally(answers)
    if sum(counts.values()) == 0:
        raise ValidationError("at least one answer is required to classify")
    best_type: PersonalityType = "impulsive"
    best_count = -1
    for cat, ptype in _CATEGORY_TYPES:
        if counts[cat] > best_count:
            best_type = ptype
            best_count = counts[cat]
    return best_type


def profile_for(personality_type: str) -> PersonalityProfile | None:
    return PROFILES.get(personality_type)  # type: ignore[arg-type]
