from __future__ import annotations

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Iterable, Protocol

from cashwise_api.core.config import Settings
from cashwise_api.errors import InvariantViolation, ValidationError


class ScoredAttempt(Protocol):
    score: int
    total_questions: int


@dataclass(frozen=True)
class QuizResult:
    score: int
    total_questions: int
    time_remaining_seconds: int = 0


@dataclass(frozen=True)
class HistoryEntry:
    score: int
    total_questions: int


@dataclass(frozen=True)
class XPRules:
    base_xp: int = 100
    perfect_bonus: int = 50
    time_bonus_rate: float = 0.167
    time_bonus_max: int = 50
    passing_percent: float = 80.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "XPRules":
        return cls(
            base_xp=int(settings.base_xp),
            perfect_bonus=int(settings.perfect_bonus),
            time_bonus_rate=float(settings.time_bonus_rate),
            time_bonus_max=int(settings.time_bonus_max),
            passing_percent=float(settings.passing_percent),
        )


@dataclass(frozen=True)
class XPAward:
    xp_earned: int
    passed: bool
    perfect_score: bool
    score_percent: float
    previous_best_percent: float
    time_bonus: int


def validate_score(*, score: int, total_questions: int) -> None:
    if int(score) < 0 or int(total_questions) < 0:
        raise ValidationError("score and total_questions must be non-negative")
    if int(total_questions) == 0:
        raise ValidationError("total_questions must be positive")
    if int(score) > int(total_questions):
        raise ValidationError("score cannot exceed total_questions")


def _percent(score: int, total_questions: int) -> Fraction:
    # Exact arithmetic keeps 57% from flooring to 56 XP.
    return Fraction(100 * int(score), int(total_questions))


def _xp_share(percent: Fraction, base_xp: int) -> int:
    return math.floor(percent / 100 * base_xp)


def time_bonus(seconds: int | float, *, rules: XPRules | None = None) -> int:
    rules = rules or XPRules()
    raw = math.floor(max(0.0, float(seconds)) * rules.time_bonus_rate)
    return max(0, min(int(raw), int(rules.time_bonus_max)))


def compute_award(
    result: QuizResult,
    history: Iterable[ScoredAttempt],
    *,
    rules: XPRules | None = None,
) -> XPAward:
    rules = rules or XPRules()
    validate_score(score=result.score, total_questions=result.total_questions)

    score_percent = _percent(result.score, result.total_questions)
    passed = score_percent >= Fraction(rules.passing_percent)
    perfect = int(result.score) == int(result.total_questions)
    bonus = time_bonus(result.time_remaining_seconds, rules=rules)

    previous = [
        _percent(h.score, h.total_questions)
        for h in history
        if int(h.total_questions or 0) > 0
    ]
    previous_best = max(previous) if previous else Fraction(0)

    xp = 0
    if passed:
        if not previous:
            xp = rules.base_xp + bonus
            if perfect:
                xp += rules.perfect_bonus
        elif score_percent > previous_best:
            xp = max(
                0,
                _xp_share(score_percent, rules.base_xp)
                - _xp_share(previous_best, rules.base_xp),
            )
            xp += bonus
            if perfect and previous_best < 100:
                xp += rules.perfect_bonus

    if xp < 0:
        raise InvariantViolation(f"negative xp award computed: {xp}")

    return XPAward(
        xp_earned=int(xp),
        passed=bool(passed),
        perfect_score=bool(perfect),
        score_percent=float(score_percent),
        previous_best_percent=float(previous_best),
        time_bonus=int(bonus) if xp > 0 else 0,
    )


def recommendations_for(
    award: XPAward, *, attempts_count: int
) -> tuple[list[str], list[str]]:
    """Post-quiz coaching copy, keyed on pass/fail, improvement and first attempt."""
    if not award.passed:
        return (
            [
                "Score at least 80% to pass the lesson and earn XP.",
                "Review the lesson carefully before trying again.",
            ],
            [
                "Take notes while reading to understand the material better.",
                "Do not rush; read every question carefully.",
                "Use the explanation after each question to fill the gaps.",
            ],
        )
    if attempts_count > 0:
        if award.score_percent > award.previous_best_percent:
            return (
                [
                    "Congratulations, you beat your previous best!",
                    "Keep building on it with other lessons.",
                ],
                [
                    "Revisit the material regularly to keep it fresh.",
                    "Share your progress and invite friends to join.",
                ],
            )
        return (
            [
                "Good result, but it did not beat your previous best.",
                "Try again to improve your score and earn extra XP.",
            ],
            [
                "Focus on the topics you found hardest.",
                "Take notes during the lesson to remember more.",
            ],
        )
    if award.perfect_score:
        return (
            [
                "Perfect score! Outstanding performance.",
                "Move on to more advanced topics.",
            ],
            [
                "Your knowledge is excellent; share it with others.",
                "Try the daily challenges for extra XP.",
                "Help other learners in the community.",
            ],
        )
    return (
        [
            "Great job! You are ready for more advanced topics.",
            "Try the daily challenges for extra XP.",
        ],
        [
            "Revisit the material regularly to keep it fresh.",
            "Share your progress and invite friends to join.",
        ],
    )
