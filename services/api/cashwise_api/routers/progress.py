from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from cashwise_api.core.config import Settings
from cashwise_api.deps import AppSettings, CurrentProfileId, Store
from cashwise_api.store import SqlProgressStore
from cashwise_api.streaks import local_today, reconcile_streak

router = APIRouter(prefix="/api/progress", tags=["progress"])


class StreakOut(BaseModel):
    today: str
    current_streak: int
    longest_streak: int
    total_active_days: int
    marked_dates: list[str]


@router.get("/streak", response_model=StreakOut)
def streak(
    profile_id: str = CurrentProfileId,
    store: SqlProgressStore = Store,
    settings: Settings = AppSettings,
) -> StreakOut:
    today = local_today(tz_name=settings.timezone)
    summary = reconcile_streak(store, store.get_profile(profile_id), today=today)
    return StreakOut(
        today=today.isoformat(),
        current_streak=summary.current_streak,
        longest_streak=summary.longest_streak,
        total_active_days=summary.total_active_days,
        marked_dates=summary.marked_dates,
    )
