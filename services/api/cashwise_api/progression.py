from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cashwise_api.models import Profile
    from cashwise_api.store import ProgressStore


def level_for_xp(xp: int, *, xp_per_level: int = 1000) -> int:
    return max(1, int(xp) // max(1, int(xp_per_level)) + 1)


def xp_into_level(xp: int, *, xp_per_level: int = 1000) -> int:
    return max(0, int(xp)) % max(1, int(xp_per_level))


@dataclass(frozen=True)
class BadgeRule:
    badge_id: str
    name: str
    source: str


def _badge_unlocks_for_progress(
    profile: "Profile", *, current_streak: int
) -> list[BadgeRule]:
    """
    Returns badges that *should* be held given counters and the freshly computed streak.
    """
    unlocks: list[BadgeRule] = []
    if int(profile.completed_quizzes or 0) >= 1:
        unlocks.append(BadgeRule("badge_first_quiz", "First Quiz", "completed_quizzes_1"))
    if int(profile.completed_quizzes or 0) >= 5:
        unlocks.append(BadgeRule("badge_quiz_5", "Quiz Regular", "completed_quizzes_5"))
    if int(profile.completed_lessons or 0) >= 1:
        unlocks.append(BadgeRule("badge_first_lesson", "First Lesson", "completed_lessons_1"))
    if int(current_streak) >= 3:
        unlocks.append(BadgeRule("badge_streak_3", "Streak 3", "streak_3"))
    if int(current_streak) >= 7:
        unlocks.append(BadgeRule("badge_streak_7", "Streak 7", "streak_7"))
    if int(profile.level or 1) >= 5:
        unlocks.append(BadgeRule("badge_level_5", "Level 5", "level_5"))
    return unlocks


def apply_badge_unlocks(
    store: "ProgressStore", *, profile: "Profile", current_streak: int
) -> list[str]:
    unlocked: list[str] = []
    for rule in _badge_unlocks_for_progress(profile, current_streak=current_streak):
        if store.grant_badge(profile.id, rule.badge_id, source=rule.source):
            unlocked.append(rule.badge_id)
    return unlocked
