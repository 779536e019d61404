from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable

from cashwise_api.core.config import Settings
from cashwise_api.errors import ConflictError, NotFound, ValidationError
from cashwise_api.feed import ProgressFeed, ProgressUpdate
from cashwise_api.metrics import inc_counter
from cashwise_api.models import Profile
from cashwise_api.progression import apply_badge_unlocks
from cashwise_api.store import ProgressStore
from cashwise_api.streaks import local_today, reconcile_streak

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LessonDef:
    id: str
    title: str
    xp: int
    premium: bool = False


# Lesson ids double as the ids of the quizzes that close them.
LESSONS: dict[str, LessonDef] = {
    lesson.id: lesson
    for lesson in (
        LessonDef(id="1", title="Taxes in Bulgaria", xp=50),
        LessonDef(id="2", title="Mortgage and credits", xp=50),
        LessonDef(id="3", title="Savings and financial planning", xp=50),
        LessonDef(id="4", title="Investing", xp=50),
        LessonDef(id="5", title="Insurance", xp=50, premium=True),
    )
}


def lesson_def(lesson_id: str) -> LessonDef:
    lesson_id = str(lesson_id or "").strip()
    if not lesson_id:
        raise ValidationError("lesson_id is required")
    lesson = LESSONS.get(lesson_id)
    if lesson is None:
        raise NotFound(f"unknown lesson: {lesson_id!r}")
    return lesson


@dataclass(frozen=True)
class LessonResult:
    lesson_id: str
    newly_completed: bool
    xp_awarded: int
    xp_total: int
    badges_unlocked: list[str]


class LessonRecorder:
    def __init__(
        self,
        store: ProgressStore,
        *,
        settings: Settings | None = None,
        feed: ProgressFeed | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.feed = feed
        self._today = today or (lambda: local_today(tz_name=self.settings.timezone))

    def record_in_unit(
        self, profile_id: str, lesson: LessonDef, *, xp: int, today: date, source: str
    ) -> Profile:
        """Write the completion row, counters, activity entry and event.

        Must run inside ``store.run_atomic``; a second completion of the same
        lesson raises ``ConflictError`` and rolls the caller's unit back.
        """
        self.store.insert_lesson_completion(
            profile_id=profile_id, lesson_id=lesson.id, xp_awarded=int(xp)
        )
        profile = self.store.increment_profile(
            profile_id, xp_delta=int(xp), completed_lessons_delta=1
        )
        self.store.insert_activity_entry(
            profile_id=profile_id,
            activity_date=today,
            activity_type="lesson",
            xp_earned=int(xp),
            lesson_id=lesson.id,
        )
        self.store.record_event(
            "lesson_completed",
            profile_id,
            {"lesson_id": lesson.id, "xp": int(xp), "source": source},
        )
        return profile

    def complete_lesson(self, profile_id: str, lesson_id: str) -> LessonResult:
        lesson = lesson_def(lesson_id)
        today = self._today()

        def _unit() -> tuple[int, list[str]]:
            profile = self.record_in_unit(
                profile_id, lesson, xp=lesson.xp, today=today, source="lesson"
            )
            streak = reconcile_streak(self.store, profile, today=today)
            badges = apply_badge_unlocks(
                self.store, profile=profile, current_streak=streak.current_streak
            )
            return int(profile.xp or 0), badges

        try:
            xp_total, badges = self.store.run_atomic(_unit)
        except ConflictError:
            inc_counter("conflicts_absorbed", kind="lesson_completion")
            logger.info("lesson %s already completed by %s", lesson.id, profile_id)
            profile = self.store.get_profile(profile_id)
            return LessonResult(
                lesson_id=lesson.id,
                newly_completed=False,
                xp_awarded=0,
                xp_total=int(profile.xp or 0),
                badges_unlocked=[],
            )

        if lesson.xp > 0:
            inc_counter("xp_awarded", lesson.xp, source="lesson")
        if self.feed is not None:
            self.feed.publish(
                ProgressUpdate(
                    kind="lesson_completed",
                    profile_id=profile_id,
                    xp_total=xp_total,
                    xp_delta=lesson.xp,
                    detail={"lesson_id": lesson.id},
                )
            )
        return LessonResult(
            lesson_id=lesson.id,
            newly_completed=True,
            xp_awarded=lesson.xp,
            xp_total=xp_total,
            badges_unlocked=badges,
        )
