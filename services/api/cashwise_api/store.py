"""Persistence boundary for the scoring engine.

Components only talk to ``ProgressStore``. ``SqlProgressStore`` implements it on a
SQLAlchemy session: uniqueness violations surface as ``ConflictError``,
transient connectivity failures are retried with backoff and then surface as
``StoreUnavailableError``, and ``run_atomic`` applies a composite write as one
transaction.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, date, datetime
from typing import Any, Callable, Protocol, TypeVar
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from cashwise_api.core.config import Settings
from cashwise_api.errors import (
    ConflictError,
    InvariantViolation,
    NotFound,
    StoreUnavailableError,
)
from cashwise_api.eventlog import log_event
from cashwise_api.models import (
    ActivityLogEntry,
    ChallengeCompletion,
    LessonCompletion,
    Profile,
    ProfileBadge,
    QuizAttempt,
)
from cashwise_api.outcomes import SideEffectOutcome, run_side_effect
from cashwise_api.progression import level_for_xp

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
)


def exclusive_attempt_key(*, profile_id: str, quiz_id: str) -> str:
    return f"{profile_id}|{quiz_id}"


class ProgressStore(Protocol):
    def get_profile(self, profile_id: str) -> Profile: ...
    def ensure_profile(self, profile_id: str, *, display_name: str | None = None) -> Profile: ...
    def list_profiles(self, *, limit: int | None = None) -> list[Profile]: ...
    def increment_profile(
        self,
        profile_id: str,
        *,
        xp_delta: int,
        completed_quizzes_delta: int = 0,
        completed_lessons_delta: int = 0,
    ) -> Profile: ...
    def update_cached_streak(self, profile_id: str, streak: int) -> None: ...
    def get_attempts(self, profile_id: str, quiz_id: str) -> list[QuizAttempt]: ...
    def insert_attempt(self, **fields: Any) -> QuizAttempt: ...
    def get_activity_log(
        self,
        profile_id: str,
        *,
        since: date | None = None,
        until: date | None = None,
    ) -> list[ActivityLogEntry]: ...
    def insert_activity_entry(self, **fields: Any) -> ActivityLogEntry: ...
    def get_challenge_completions(self, profile_id: str, day: date) -> list[ChallengeCompletion]: ...
    def insert_challenge_completion(self, **fields: Any) -> ChallengeCompletion: ...
    def has_lesson_completion(self, profile_id: str, lesson_id: str) -> bool: ...
    def insert_lesson_completion(self, **fields: Any) -> LessonCompletion: ...
    def list_badges(self, profile_id: str) -> list[str]: ...
    def grant_badge(self, profile_id: str, badge_id: str, *, source: str) -> bool: ...
    def record_event(
        self, type: str, profile_id: str | None, payload: dict[str, Any]
    ) -> SideEffectOutcome: ...
    def run_atomic(self, fn: Callable[[], T]) -> T: ...


class SqlProgressStore:
    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or Settings()
        self._sleep = sleep
        self._now = now or (lambda: datetime.now(UTC))
        self._in_unit = False

    # -- retry / transaction plumbing -------------------------------------

    def _backoff(self, attempt: int) -> float:
        return float(self.settings.store_retry_backoff_sec) * (2**attempt)

    def _safe_rollback(self) -> None:
        try:
            self.session.rollback()
        except SQLAlchemyError as exc:
            logger.warning("rollback failed: %s", exc)

    def _with_retries(self, label: str, fn: Callable[[], T], *, commit: bool) -> T:
        attempts = int(self.settings.store_retry_attempts)
        last_error: BaseException | None = None
        for attempt in range(attempts):
            try:
                result = fn()
                if commit:
                    self.session.commit()
                return result
            except IntegrityError as exc:
                self._safe_rollback()
                raise ConflictError(f"{label}: uniqueness conflict") from exc
            except TRANSIENT_ERRORS as exc:
                self._safe_rollback()
                last_error = exc
                if attempt + 1 < attempts:
                    delay = self._backoff(attempt)
                    logger.warning(
                        "%s failed (attempt %s/%s), retrying in %.2fs: %s",
                        label,
                        attempt + 1,
                        attempts,
                        delay,
                        exc,
                    )
                    self._sleep(delay)
            except BaseException:
                if commit:
                    self._safe_rollback()
                raise
        raise StoreUnavailableError(
            f"{label}: store unavailable after {attempts} attempts"
        ) from last_error

    def run_atomic(self, fn: Callable[[], T]) -> T:
        """Apply ``fn`` as a single transaction, retrying it whole on transient errors."""
        if self._in_unit:
            return fn()

        def _unit() -> T:
            self._in_unit = True
            try:
                return fn()
            finally:
                self._in_unit = False

        return self._with_retries("atomic unit", _unit, commit=True)

    def _read(self, label: str, fn: Callable[[], T]) -> T:
        if self._in_unit:
            return fn()
        return self._with_retries(label, fn, commit=False)

    def _write(self, label: str, fn: Callable[[], T]) -> T:
        if self._in_unit:
            return fn()
        return self._with_retries(label, fn, commit=True)

    # -- profiles ----------------------------------------------------------

    def get_profile(self, profile_id: str) -> Profile:
        row = self._read(
            "get_profile", lambda: self.session.get(Profile, str(profile_id))
        )
        if row is None:
            raise NotFound(f"profile {profile_id} not found")
        return row

    def ensure_profile(
        self, profile_id: str, *, display_name: str | None = None
    ) -> Profile:
        def _ensure() -> Profile:
            row = self.session.get(Profile, str(profile_id))
            if row is not None:
                return row
            now = self._now()
            # Concurrent first requests can race on the insert; re-read on conflict.
            try:
                with self.session.begin_nested():
                    self.session.add(
                        Profile(
                            id=str(profile_id),
                            display_name=str(display_name or profile_id)[:120],
                            xp=0,
                            level=1,
                            streak=0,
                            completed_lessons=0,
                            completed_quizzes=0,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    self.session.flush()
            except IntegrityError:
                logger.info("profile %s created concurrently", profile_id)
            row = self.session.get(Profile, str(profile_id))
            assert row is not None
            return row

        return self._write("ensure_profile", _ensure)

    def list_profiles(self, *, limit: int | None = None) -> list[Profile]:
        def _list() -> list[Profile]:
            stmt = select(Profile).order_by(Profile.id.asc())
            if limit is not None:
                stmt = stmt.limit(max(0, int(limit)))
            return list(self.session.scalars(stmt).all())

        return self._read("list_profiles", _list)

    def increment_profile(
        self,
        profile_id: str,
        *,
        xp_delta: int,
        completed_quizzes_delta: int = 0,
        completed_lessons_delta: int = 0,
    ) -> Profile:
        if int(xp_delta) < 0:
            raise InvariantViolation(f"refusing negative xp delta {xp_delta}")

        def _increment() -> Profile:
            result = self.session.execute(
                update(Profile)
                .where(Profile.id == str(profile_id))
                .values(
                    xp=Profile.xp + int(xp_delta),
                    completed_quizzes=Profile.completed_quizzes
                    + int(completed_quizzes_delta),
                    completed_lessons=Profile.completed_lessons
                    + int(completed_lessons_delta),
                    updated_at=self._now(),
                )
                .execution_options(synchronize_session=False)
            )
            if int(result.rowcount or 0) == 0:
                raise NotFound(f"profile {profile_id} not found")
            row = self.session.get(Profile, str(profile_id), populate_existing=True)
            assert row is not None
            row.level = level_for_xp(
                int(row.xp or 0), xp_per_level=int(self.settings.xp_per_level)
            )
            self.session.flush()
            return row

        return self._write("increment_profile", _increment)

    def update_cached_streak(self, profile_id: str, streak: int) -> None:
        def _update() -> None:
            self.session.execute(
                update(Profile)
                .where(Profile.id == str(profile_id))
                .values(streak=max(0, int(streak)), updated_at=self._now())
                .execution_options(synchronize_session=False)
            )
            row = self.session.get(Profile, str(profile_id))
            if row is not None:
                self.session.refresh(row)

        self._write("update_cached_streak", _update)

    # -- quiz attempts -----------------------------------------------------

    def get_attempts(self, profile_id: str, quiz_id: str) -> list[QuizAttempt]:
        def _get() -> list[QuizAttempt]:
            return list(
                self.session.scalars(
                    select(QuizAttempt)
                    .where(QuizAttempt.profile_id == str(profile_id))
                    .where(QuizAttempt.quiz_id == str(quiz_id))
                    .order_by(QuizAttempt.completed_at.asc(), QuizAttempt.id.asc())
                ).all()
            )

        return self._read("get_attempts", _get)

    def insert_attempt(
        self,
        *,
        profile_id: str,
        quiz_id: str,
        score: int,
        total_questions: int,
        time_taken: int,
        xp_earned: int,
        is_perfect: bool,
        passed: bool,
        personality_type: str | None = None,
        attempt_seq: int = 1,
        exclusive: bool = False,
        completed_at: datetime | None = None,
    ) -> QuizAttempt:
        def _insert() -> QuizAttempt:
            row = QuizAttempt(
                id=f"qa_{uuid4().hex}",
                profile_id=str(profile_id),
                quiz_id=str(quiz_id),
                attempt_seq=int(attempt_seq),
                score=int(score),
                total_questions=int(total_questions),
                time_taken=int(time_taken),
                xp_earned=int(xp_earned),
                is_perfect=bool(is_perfect),
                passed=bool(passed),
                personality_type=personality_type,
                exclusive_key=(
                    exclusive_attempt_key(profile_id=profile_id, quiz_id=quiz_id)
                    if exclusive
                    else None
                ),
                completed_at=completed_at or self._now(),
            )
            self.session.add(row)
            self._flush_or_conflict("insert_attempt")
            return row

        return self._write("insert_attempt", _insert)

    def _flush_or_conflict(self, label: str) -> None:
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"{label}: uniqueness conflict") from exc

    # -- activity log ------------------------------------------------------

    def get_activity_log(
        self,
        profile_id: str,
        *,
        since: date | None = None,
        until: date | None = None,
    ) -> list[ActivityLogEntry]:
        def _get() -> list[ActivityLogEntry]:
            stmt = select(ActivityLogEntry).where(
                ActivityLogEntry.profile_id == str(profile_id)
            )
            if since is not None:
                stmt = stmt.where(ActivityLogEntry.activity_date >= since)
            if until is not None:
                stmt = stmt.where(ActivityLogEntry.activity_date <= until)
            stmt = stmt.order_by(
                ActivityLogEntry.activity_date.asc(), ActivityLogEntry.created_at.asc()
            )
            return list(self.session.scalars(stmt).all())

        return self._read("get_activity_log", _get)

    def insert_activity_entry(
        self,
        *,
        profile_id: str,
        activity_date: date,
        activity_type: str,
        xp_earned: int = 0,
        quiz_id: str | None = None,
        lesson_id: str | None = None,
    ) -> ActivityLogEntry:
        def _insert() -> ActivityLogEntry:
            row = ActivityLogEntry(
                id=f"al_{uuid4().hex}",
                profile_id=str(profile_id),
                activity_date=activity_date,
                activity_type=str(activity_type),
                quiz_id=quiz_id,
                lesson_id=lesson_id,
                xp_earned=max(0, int(xp_earned)),
                created_at=self._now(),
            )
            self.session.add(row)
            self.session.flush()
            return row

        return self._write("insert_activity_entry", _insert)

    # -- challenges & lessons ----------------------------------------------

    def get_challenge_completions(
        self, profile_id: str, day: date
    ) -> list[ChallengeCompletion]:
        def _get() -> list[ChallengeCompletion]:
            return list(
                self.session.scalars(
                    select(ChallengeCompletion)
                    .where(ChallengeCompletion.profile_id == str(profile_id))
                    .where(ChallengeCompletion.completed_date == day)
                    .order_by(ChallengeCompletion.challenge_id.asc())
                ).all()
            )

        return self._read("get_challenge_completions", _get)

    def insert_challenge_completion(
        self,
        *,
        profile_id: str,
        challenge_id: int,
        completed_date: date,
        xp_awarded: int,
    ) -> ChallengeCompletion:
        def _insert() -> ChallengeCompletion:
            row = ChallengeCompletion(
                id=f"cc_{uuid4().hex}",
                profile_id=str(profile_id),
                challenge_id=int(challenge_id),
                completed_date=completed_date,
                xp_awarded=int(xp_awarded),
                created_at=self._now(),
            )
            self.session.add(row)
            self._flush_or_conflict("insert_challenge_completion")
            return row

        return self._write("insert_challenge_completion", _insert)

    def has_lesson_completion(self, profile_id: str, lesson_id: str) -> bool:
        def _has() -> bool:
            key = {"profile_id": str(profile_id), "lesson_id": str(lesson_id)}
            return self.session.get(LessonCompletion, key) is not None

        return self._read("has_lesson_completion", _has)

    def insert_lesson_completion(
        self, *, profile_id: str, lesson_id: str, xp_awarded: int
    ) -> LessonCompletion:
        def _insert() -> LessonCompletion:
            if (
                self.session.get(
                    LessonCompletion,
                    {"profile_id": str(profile_id), "lesson_id": str(lesson_id)},
                )
                is not None
            ):
                raise ConflictError(f"lesson {lesson_id} already completed")
            row = LessonCompletion(
                profile_id=str(profile_id),
                lesson_id=str(lesson_id),
                xp_awarded=int(xp_awarded),
                completed_at=self._now(),
            )
            self.session.add(row)
            self._flush_or_conflict("insert_lesson_completion")
            return row

        return self._write("insert_lesson_completion", _insert)

    # -- badges & events ---------------------------------------------------

    def list_badges(self, profile_id: str) -> list[str]:
        def _list() -> list[str]:
            return [
                str(b)
                for b in self.session.scalars(
                    select(ProfileBadge.badge_id)
                    .where(ProfileBadge.profile_id == str(profile_id))
                    .order_by(ProfileBadge.earned_at.asc(), ProfileBadge.badge_id.asc())
                ).all()
            ]

        return self._read("list_badges", _list)

    def grant_badge(self, profile_id: str, badge_id: str, *, source: str) -> bool:
        def _grant() -> bool:
            key = {"profile_id": str(profile_id), "badge_id": str(badge_id)}
            if self.session.get(ProfileBadge, key) is not None:
                return False
            try:
                with self.session.begin_nested():
                    self.session.add(
                        ProfileBadge(
                            profile_id=str(profile_id),
                            badge_id=str(badge_id),
                            earned_at=self._now(),
                            source=str(source)[:120],
                        )
                    )
                    self.session.flush()
            except IntegrityError:
                return False
            return True

        return self._write("grant_badge", _grant)

    def record_event(
        self, type: str, profile_id: str | None, payload: dict[str, Any]
    ) -> SideEffectOutcome:
        def _insert() -> None:
            log_event(
                self.session,
                type=type,
                profile_id=profile_id,
                payload=payload,
                now=self._now(),
            )
            self.session.flush()

        def _log() -> None:
            if self._in_unit:
                # A savepoint keeps a failed event from poisoning the enclosing unit.
                with self.session.begin_nested():
                    _insert()
            else:
                self._write("record_event", _insert)

        return run_side_effect(
            f"event:{type}",
            _log,
            ignorable=(SQLAlchemyError, StoreUnavailableError, ConflictError),
        )
