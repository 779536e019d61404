from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from cashwise_api.core.config import Settings
from cashwise_api.deps import AppSettings, CurrentProfileId, Feed, Store
from cashwise_api.feed import ProgressFeed
from cashwise_api.lessons import LESSONS, LessonRecorder
from cashwise_api.store import SqlProgressStore

router = APIRouter(prefix="/api/lessons", tags=["lessons"])


class LessonCatalogOut(BaseModel):
    id: str
    title: str
    xp: int
    premium: bool
    completed: bool


class LessonOut(BaseModel):
    lesson_id: str
    newly_completed: bool
    xp_awarded: int
    xp_total: int
    badges_unlocked: list[str]


@router.get("", response_model=list[LessonCatalogOut])
def list_lessons(
    profile_id: str = CurrentProfileId,
    store: SqlProgressStore = Store,
) -> list[LessonCatalogOut]:
    return [
        LessonCatalogOut(
            id=lesson.id,
            title=lesson.title,
            xp=lesson.xp,
            premium=lesson.premium,
            completed=store.has_lesson_completion(profile_id, lesson.id),
        )
        for lesson in LESSONS.values()
    ]


@router.post("/{lesson_id}/complete", response_model=LessonOut)
def complete_lesson(
    lesson_id: str,
    profile_id: str = CurrentProfileId,
    store: SqlProgressStore = Store,
    settings: Settings = AppSettings,
    feed: ProgressFeed = Feed,
) -> LessonOut:
    result = LessonRecorder(store, settings=settings, feed=feed).complete_lesson(
        profile_id, lesson_id
    )
    return LessonOut(**result.__dict__)
