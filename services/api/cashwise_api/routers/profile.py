from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from cashwise_api.core.config import Settings
from cashwise_api.deps import AppSettings, CurrentProfileId, Store
from cashwise_api.personality import PERSONALITY_QUIZ_ID, profile_for
from cashwise_api.progression import xp_into_level
from cashwise_api.store import SqlProgressStore
from cashwise_api.streaks import local_today, reconcile_streak

router = APIRouter(prefix="/api/profile", tags=["profile"])


class PersonalityOut(BaseModel):
    type: str
    title: str
    description: str
    tips: list[str]
    color: str


class ProfileOut(BaseModel):
    id: str
    display_name: str
    xp: int
    level: int
    xp_into_level: int
    xp_per_level: int
    streak: int
    longest_streak: int
    completed_lessons: int
    completed_quizzes: int
    badges: list[str]
    personality: PersonalityOut | None = None


@router.get("/me", response_model=ProfileOut)
def me(
    profile_id: str = CurrentProfileId,
    store: SqlProgressStore = Store,
    settings: Settings = AppSettings,
) -> ProfileOut:
    profile = store.get_profile(profile_id)
    summary = reconcile_streak(
        store, profile, today=local_today(tz_name=settings.timezone)
    )

    personality: PersonalityOut | None = None
    attempts = store.get_attempts(profile_id, PERSONALITY_QUIZ_ID)
    if attempts and attempts[-1].personality_type:
        p = profile_for(attempts[-1].personality_type)
        if p is not None:
            personality = PersonalityOut(
                type=p.type,
                title=p.title,
                description=p.description,
                tips=list(p.tips),
                color=p.color,
            )

    return ProfileOut(
        id=profile.id,
        display_name=profile.display_name,
        xp=int(profile.xp or 0),
        level=int(profile.level or 1),
        xp_into_level=xp_into_level(int(profile.xp or 0), xp_per_level=settings.xp_per_level),
        xp_per_level=int(settings.xp_per_level),
        streak=summary.current_streak,
        longest_streak=summary.longest_streak,
        completed_lessons=int(profile.completed_lessons or 0),
        completed_quizzes=int(profile.completed_quizzes or 0),
        badges=store.list_badges(profile_id),
        personality=personality,
    )
