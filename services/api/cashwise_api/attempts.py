from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Callable, Sequence

from cashwise_api.core.config import Settings
from cashwise_api.errors import (
    ConflictError,
    InvariantViolation,
    StoreUnavailableError,
    ValidationError,
)
from cashwise_api.feed import ProgressFeed, ProgressUpdate
from cashwise_api.lessons import LESSONS, LessonRecorder
from cashwise_api.metrics import inc_counter
from cashwise_api.models import QuizAttempt
from cashwise_api.personality import PersonalityType, classify
from cashwise_api.progression import apply_badge_unlocks
from cashwise_api.store import ProgressStore
from cashwise_api.streaks import local_today, reconcile_streak
from cashwise_api.xp import (
    QuizResult,
    XPAward,
    XPRules,
    compute_award,
    recommendations_for,
    validate_score,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptResult:
    attempt_id: str
    quiz_id: str
    score: int
    total_questions: int
    xp_earned: int
    passed: bool
    perfect_score: bool
    previous_best_percent: float
    time_bonus: int
    attempts_count: int
    personality_type: str | None
    replayed: bool
    xp_total: int
    level: int
    badges_unlocked: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    tips: list[str] = field(default_factory=list)
    lesson_completed: bool = False


@dataclass(frozen=True)
class _Recorded:
    row: QuizAttempt
    award: XPAward
    history_len: int
    xp_total: int
    level: int
    badges: list[str]
    lesson_completed: bool


def has_attempted(store: ProgressStore, profile_id: str, quiz_id: str) -> bool:
    return len(store.get_attempts(profile_id, quiz_id)) > 0


@dataclass(frozen=True)
class QuizStats:
    total_attempts: int
    average_score: float
    best_score: float
    perfect_attempts: int


class AttemptRecorder:
    """Records quiz submissions and turns them into XP, activity and badges."""

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
        self.rules = XPRules.from_settings(self.settings)
        self.feed = feed
        self._today = today or (lambda: local_today(tz_name=self.settings.timezone))

    def quiz_stats(self, profile_id: str, quiz_id: str) -> QuizStats:
        rows = self.store.get_attempts(profile_id, quiz_id)
        if not rows:
            return QuizStats(total_attempts=0, average_score=0.0, best_score=0.0, perfect_attempts=0)
        percents = [
            100.0 * int(r.score) / int(r.total_questions)
            for r in rows
            if int(r.total_questions or 0) > 0
        ]
        return QuizStats(
            total_attempts=len(rows),
            average_score=round(sum(percents) / len(percents), 2) if percents else 0.0,
            best_score=round(max(percents), 2) if percents else 0.0,
            perfect_attempts=sum(1 for r in rows if bool(r.is_perfect)),
        )

    def submit_attempt(
        self,
        *,
        profile_id: str,
        quiz_id: str,
        score: int,
        total_questions: int,
        time_taken: int,
        is_single_attempt: bool,
        answers: Sequence[str] | None = None,
        completion_xp: int | None = None,
        time_limit: int | None = None,
    ) -> AttemptResult:
        validate_score(score=score, total_questions=total_questions)
        if int(time_taken) < 0:
            raise ValidationError("time_taken must be non-negative")
        if completion_xp is not None and int(completion_xp) < 0:
            raise ValidationError("completion_xp must be non-negative")
        limit = int(time_limit if time_limit is not None else self.settings.quiz_time_limit_seconds)
        if limit < 0:
            raise ValidationError("time_limit must be non-negative")

        personality_type: PersonalityType | None = (
            classify(answers) if answers is not None else None
        )

        history = self.store.get_attempts(profile_id, quiz_id)
        if is_single_attempt and history:
            return self._replay(profile_id, quiz_id, history)

        result = QuizResult(
            score=int(score),
            total_questions=int(total_questions),
            time_remaining_seconds=max(0, limit - int(time_taken)),
        )
        today = self._today()

        def _unit() -> _Recorded:
            # History is re-read inside the transaction; the award depends on it.
            prior = self.store.get_attempts(profile_id, quiz_id)
            if is_single_attempt and prior:
                raise ConflictError(f"single-attempt quiz {quiz_id} already recorded")
            award = self._award(result, prior, completion_xp)
            row = self.store.insert_attempt(
                profile_id=profile_id,
                quiz_id=quiz_id,
                score=int(score),
                total_questions=int(total_questions),
                time_taken=int(time_taken),
                xp_earned=award.xp_earned,
                is_perfect=award.perfect_score,
                passed=award.passed,
                personality_type=personality_type,
                attempt_seq=len(prior) + 1,
                exclusive=bool(is_single_attempt),
            )
            profile = self.store.increment_profile(
                profile_id, xp_delta=award.xp_earned, completed_quizzes_delta=1
            )
            self.store.insert_activity_entry(
                profile_id=profile_id,
                activity_date=today,
                activity_type="quiz",
                xp_earned=award.xp_earned,
                quiz_id=quiz_id,
            )
            lesson = LESSONS.get(quiz_id)
            lesson_completed = False
            if (
                award.passed
                and lesson is not None
                and not self.store.has_lesson_completion(profile_id, lesson.id)
            ):
                profile = LessonRecorder(self.store, settings=self.settings).record_in_unit(
                    profile_id, lesson, xp=0, today=today, source="quiz"
                )
                lesson_completed = True
            streak = reconcile_streak(self.store, profile, today=today)
            badges = apply_badge_unlocks(
                self.store, profile=profile, current_streak=streak.current_streak
            )
            self.store.record_event(
                "quiz_completed",
                profile_id,
                {
                    "quiz_id": quiz_id,
                    "score": int(score),
                    "total_questions": int(total_questions),
                    "xp_earned": award.xp_earned,
                    "passed": award.passed,
                    "personality_type": personality_type,
                    "attempt_seq": len(prior) + 1,
                },
            )
            return _Recorded(
                row=row,
                award=award,
                history_len=len(prior),
                xp_total=int(profile.xp or 0),
                level=int(profile.level or 1),
                badges=badges,
                lesson_completed=lesson_completed,
            )

        tries = max(1, int(self.settings.store_retry_attempts))
        for n in range(1, tries + 1):
            try:
                recorded = self.store.run_atomic(_unit)
                break
            except ConflictError:
                inc_counter("conflicts_absorbed", kind="quiz_attempt")
                rows = self.store.get_attempts(profile_id, quiz_id)
                if is_single_attempt and rows:
                    logger.info(
                        "single-attempt quiz %s for %s already recorded by a concurrent request",
                        quiz_id,
                        profile_id,
                    )
                    return self._replay(profile_id, quiz_id, rows)
                logger.info(
                    "quiz %s history for %s changed under a concurrent write, recomputing (%s/%s)",
                    quiz_id,
                    profile_id,
                    n,
                    tries,
                )
        else:
            raise StoreUnavailableError(
                f"quiz {quiz_id} for {profile_id} kept conflicting after {tries} tries"
            )

        award = recorded.award
        inc_counter("attempts", outcome="passed" if award.passed else "failed")
        if award.xp_earned > 0:
            inc_counter("xp_awarded", award.xp_earned, source="quiz")
        self._publish(profile_id, quiz_id, award, recorded.xp_total)

        recs, tips = recommendations_for(award, attempts_count=recorded.history_len)
        return AttemptResult(
            attempt_id=recorded.row.id,
            quiz_id=quiz_id,
            score=int(score),
            total_questions=int(total_questions),
            xp_earned=award.xp_earned,
            passed=award.passed,
            perfect_score=award.perfect_score,
            previous_best_percent=award.previous_best_percent,
            time_bonus=award.time_bonus,
            attempts_count=recorded.history_len + 1,
            personality_type=personality_type,
            replayed=False,
            xp_total=recorded.xp_total,
            level=recorded.level,
            badges_unlocked=recorded.badges,
            recommendations=recs,
            tips=tips,
            lesson_completed=recorded.lesson_completed,
        )

    def _award(
        self, result: QuizResult, history: list[QuizAttempt], completion_xp: int | None
    ) -> XPAward:
        award = compute_award(result, history, rules=self.rules)
        if completion_xp is None:
            return award
        # Fixed-reward quizzes pay once, on the first stored attempt.
        return replace(
            award,
            xp_earned=int(completion_xp) if not history else 0,
            passed=True,
            time_bonus=0,
        )

    def _replay(
        self, profile_id: str, quiz_id: str, rows: list[QuizAttempt]
    ) -> AttemptResult:
        if len(rows) != 1:
            logger.error(
                "single-attempt quiz %s for %s has %s stored attempts",
                quiz_id,
                profile_id,
                len(rows),
            )
            raise InvariantViolation(
                f"expected exactly one stored attempt for single-attempt quiz {quiz_id}, found {len(rows)}"
            )
        stored = rows[0]
        profile = self.store.get_profile(profile_id)
        return AttemptResult(
            attempt_id=stored.id,
            quiz_id=stored.quiz_id,
            score=int(stored.score),
            total_questions=int(stored.total_questions),
            xp_earned=int(stored.xp_earned or 0),
            passed=bool(stored.passed),
            perfect_score=bool(stored.is_perfect),
            previous_best_percent=0.0,
            time_bonus=0,
            attempts_count=1,
            personality_type=stored.personality_type,
            replayed=True,
            xp_total=int(profile.xp or 0),
            level=int(profile.level or 1),
        )

    def _publish(self, profile_id: str, quiz_id: str, award: XPAward, xp_total: int) -> None:
        if self.feed is None:
            return
        self.feed.publish(
            ProgressUpdate(
                kind="quiz_completed",
                profile_id=profile_id,
                xp_total=xp_total,
                xp_delta=award.xp_earned,
                detail={"quiz_id": quiz_id, "passed": award.passed},
            )
        )
