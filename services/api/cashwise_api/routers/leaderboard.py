from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Query
from pydantic import BaseModel

from cashwise_api.core.config import Settings
from cashwise_api.deps import AppSettings, CurrentUserId, Store
from cashwise_api.leaderboard import LeaderboardAggregator
from cashwise_api.store import SqlProgressStore

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


class LeaderboardRowOut(BaseModel):
    rank: int
    profile_id: str
    display_name: str
    xp: int
    level: int
    streak: int
    completed_lessons: int


@router.get("", response_model=list[LeaderboardRowOut])
def leaderboard(
    sort: Literal["xp", "streak", "completed_lessons", "name"] = "xp",
    limit: int = Query(default=50, ge=1, le=100),
    _user_id: str = CurrentUserId,
    store: SqlProgressStore = Store,
    settings: Settings = AppSettings,
) -> list[LeaderboardRowOut]:
    entries = LeaderboardAggregator(store, settings=settings).top(sort, limit=limit)
    return [LeaderboardRowOut(**e.__dict__) for e in entries]
