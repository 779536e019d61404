from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from cashwise_api.attempts import AttemptRecorder
from cashwise_api.core.config import Settings
from cashwise_api.deps import AppSettings, CurrentProfileId, Feed, Store
from cashwise_api.feed import ProgressFeed
from cashwise_api.personality import PERSONALITY_QUIZ_ID
from cashwise_api.store import SqlProgressStore

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])

PERSONALITY_COMPLETION_XP = 500


class SubmitAttemptIn(BaseModel):
    score: int
    total_questions: int
    time_taken: int = 0
    single_attempt: bool | None = None
    answers: list[str] | None = None
    time_limit: int | None = Field(default=None, ge=0, le=3600)


class AttemptOut(BaseModel):
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
    personality_type: str | None = None
    replayed: bool
    xp_total: int
    level: int
    badges_unlocked: list[str]
    recommendations: list[str]
    tips: list[str]
    lesson_completed: bool = False


class QuizStatsOut(BaseModel):
    quiz_id: str
    total_attempts: int
    average_score: float
    best_score: float
    perfect_attempts: int


@router.post("/{quiz_id}/attempts", response_model=AttemptOut)
def submit_attempt(
    quiz_id: str,
    req: SubmitAttemptIn,
    profile_id: str = CurrentProfileId,
    store: SqlProgressStore = Store,
    settings: Settings = AppSettings,
    feed: ProgressFeed = Feed,
) -> AttemptOut:
    is_personality = quiz_id == PERSONALITY_QUIZ_ID
    single = req.single_attempt if req.single_attempt is not None else is_personality
    result = AttemptRecorder(store, settings=settings, feed=feed).submit_attempt(
        profile_id=profile_id,
        quiz_id=quiz_id,
        score=req.score,
        total_questions=req.total_questions,
        time_taken=req.time_taken,
        is_single_attempt=single,
        answers=req.answers,
        completion_xp=PERSONALITY_COMPLETION_XP if is_personality else None,
        time_limit=req.time_limit,
    )
    return AttemptOut(**result.__dict__)


@router.get("/{quiz_id}/stats", response_model=QuizStatsOut)
def quiz_stats(
    quiz_id: str,
    profile_id: str = CurrentProfileId,
    store: SqlProgressStore = Store,
    settings: Settings = AppSettings,
) -> QuizStatsOut:
    stats = AttemptRecorder(store, settings=settings).quiz_stats(profile_id, quiz_id)
    return QuizStatsOut(quiz_id=quiz_id, **stats.__dict__)
