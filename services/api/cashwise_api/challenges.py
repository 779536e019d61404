from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from cashwise_api.attempts import has_attempted
from cashwise_api.errors import ConflictError, PreconditionNotMet, ValidationError
from cashwise_api.feed import ProgressFeed, ProgressUpdate
from cashwise_api.metrics import inc_counter
from cashwise_api.personality import PERSONALITY_QUIZ_ID
from cashwise_api.store import ProgressStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChallengeDef:
    id: int
    key: str
    title: str
    description: str
    xp: int
    icon: str
    requires_daily_activity: bool = False
    # Completed, once ever, by a stored attempt at this quiz; the quiz pays the XP.
    completed_by_quiz: str | None = None


PERSONALITY_TEST = 0
INVITE_FRIEND = 1
DAILY_QUIZ = 2
COMPLETE_PROFILE = 3
DAILY_STREAK = 4

CATALOG: dict[int, ChallengeDef] = {
    c.id: c
    for c in (
        ChallengeDef(
            id=PERSONALITY_TEST,
            key="personality_test",
            title="Financial personality test",
            description="Discover your financial personality and get tailored advice.",
            xp=500,
            icon="person",
            completed_by_quiz=PERSONALITY_QUIZ_ID,
        ),
        ChallengeDef(
            id=INVITE_FRIEND,
            key="invite_friend",
            title="Invite a friend",
            description="Invite a friend to learn about personal finance with you.",
            xp=300,
            icon="people",
        ),
        ChallengeDef(
            id=DAILY_QUIZ,
            key="daily_quiz",
            title="Daily quiz",
            description="Answer today's quiz questions.",
            xp=250,
            icon="help-circle",
        ),
        ChallengeDef(
            id=COMPLETE_PROFILE,
            key="complete_profile",
            title="Complete your profile",
            description="Fill in your profile details.",
            xp=100,
            icon="create",
        ),
        ChallengeDef(
            id=DAILY_STREAK,
            key="daily_streak",
            title="Daily streak",
            description="Finish a lesson and a quiz today.",
            xp=300,
            icon="flame",
            requires_daily_activity=True,
        ),
    )
}


@dataclass(frozen=True)
class ClaimResult:
    challenge_id: int
    completed_date: date
    already_completed: bool
    xp_awarded: int
    xp_total: int


def challenge_def(challenge_id: int) -> ChallengeDef:
    try:
        return CATALOG[int(challenge_id)]
    except (KeyError, TypeError, ValueError):
        raise ValidationError(f"unknown challenge: {challenge_id!r}") from None


class ChallengeCompletionLedger:
    def __init__(self, store: ProgressStore, *, feed: ProgressFeed | None = None) -> None:
        self.store = store
        self.feed = feed

    def completed_on(self, profile_id: str, day: date) -> list[int]:
        done = {int(c.challenge_id) for c in self.store.get_challenge_completions(profile_id, day)}
        for challenge in CATALOG.values():
            if challenge.completed_by_quiz and has_attempted(
                self.store, profile_id, challenge.completed_by_quiz
            ):
                done.add(challenge.id)
        return sorted(done)

    def _check_daily_activity(self, profile_id: str, day: date) -> None:
        kinds = {
            str(e.activity_type)
            for e in self.store.get_activity_log(profile_id, since=day, until=day)
        }
        missing = sorted({"lesson", "quiz"} - kinds)
        if missing:
            raise PreconditionNotMet(
                f"daily streak needs a lesson and a quiz on {day.isoformat()}; missing: {', '.join(missing)}"
            )

    def claim(self, profile_id: str, challenge_id: int, day: date) -> ClaimResult:
        """Claim a challenge for ``day`` at most once.

        A repeated claim is a normal outcome (``already_completed=True``, no XP).
        The daily-streak challenge additionally requires a lesson and a quiz
        logged on ``day``; that check runs once, here, and raises
        ``PreconditionNotMet``.
        Challenges completed by a quiz are never paid here: they report
        ``already_completed`` once the quiz is on record and
        ``PreconditionNotMet`` before that.
        """
        challenge = challenge_def(challenge_id)
        profile = self.store.get_profile(profile_id)

        if challenge.id in self.completed_on(profile_id, day):
            inc_counter("challenge_claims", outcome="already_completed")
            return self._already(challenge, day, xp_total=int(profile.xp or 0))

        if challenge.completed_by_quiz:
            inc_counter("challenge_claims", outcome="precondition_not_met")
            raise PreconditionNotMet(
                f"challenge {challenge.key} is completed by taking the {challenge.completed_by_quiz} quiz"
            )

        if challenge.requires_daily_activity:
            try:
                self._check_daily_activity(profile_id, day)
            except PreconditionNotMet:
                inc_counter("challenge_claims", outcome="precondition_not_met")
                raise

        def _unit() -> int:
            self.store.insert_challenge_completion(
                profile_id=profile_id,
                challenge_id=challenge.id,
                completed_date=day,
                xp_awarded=challenge.xp,
            )
            updated = self.store.increment_profile(profile_id, xp_delta=challenge.xp)
            self.store.insert_activity_entry(
                profile_id=profile_id,
                activity_date=day,
                activity_type="other",
                xp_earned=challenge.xp,
            )
            self.store.record_event(
                "challenge_claimed",
                profile_id,
                {
                    "challenge_id": challenge.id,
                    "challenge_key": challenge.key,
                    "date": day.isoformat(),
                    "xp": challenge.xp,
                },
            )
            return int(updated.xp or 0)

        try:
            xp_total = self.store.run_atomic(_unit)
        except ConflictError:
            inc_counter("conflicts_absorbed", kind="challenge_completion")
            inc_counter("challenge_claims", outcome="already_completed")
            logger.info(
                "challenge %s on %s for %s claimed concurrently",
                challenge.id,
                day.isoformat(),
                profile_id,
            )
            profile = self.store.get_profile(profile_id)
            return self._already(challenge, day, xp_total=int(profile.xp or 0))

        inc_counter("challenge_claims", outcome="claimed")
        inc_counter("xp_awarded", challenge.xp, source="challenge")
        if self.feed is not None:
            self.feed.publish(
                ProgressUpdate(
                    kind="challenge_claimed",
                    profile_id=profile_id,
                    xp_total=xp_total,
                    xp_delta=challenge.xp,
                    detail={"challenge_id": challenge.id},
                )
            )
        return ClaimResult(
            challenge_id=challenge.id,
            completed_date=day,
            already_completed=False,
            xp_awarded=challenge.xp,
            xp_total=xp_total,
        )

    @staticmethod
    def _already(challenge: ChallengeDef, day: date, *, xp_total: int) -> ClaimResult:
        return ClaimResult(
            challenge_id=challenge.id,
            completed_date=day,
            already_completed=True,
            xp_awarded=0,
            xp_total=xp_total,
        )
