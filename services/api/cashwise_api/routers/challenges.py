from __future__ import annotations

from datetime import date

from fastapi import APIRouter
from pydantic import BaseModel

from cashwise_api.challenges import CATALOG, ChallengeCompletionLedger
from cashwise_api.core.config import Settings
from cashwise_api.deps import AppSettings, CurrentProfileId, Feed, Store
from cashwise_api.feed import ProgressFeed
from cashwise_api.store import SqlProgressStore
from cashwise_api.streaks import local_today

router = APIRouter(prefix="/api/challenges", tags=["challenges"])


class ChallengeOut(BaseModel):
    id: int
    key: str
    title: str
    description: str
    xp: int
    icon: str
    completed: bool


class ChallengesTodayOut(BaseModel):
    day: date
    challenges: list[ChallengeOut]


class ClaimOut(BaseModel):
    challenge_id: int
    completed_date: date
    already_completed: bool
    xp_awarded: int
    xp_total: int


@router.get("/today", response_model=ChallengesTodayOut)
def today(
    profile_id: str = CurrentProfileId,
    store: SqlProgressStore = Store,
    settings: Settings = AppSettings,
) -> ChallengesTodayOut:
    day = local_today(tz_name=settings.timezone)
    done = set(ChallengeCompletionLedger(store).completed_on(profile_id, day))
    return ChallengesTodayOut(
        day=day,
        challenges=[
            ChallengeOut(
                id=c.id,
                key=c.key,
                title=c.title,
                description=c.description,
                xp=c.xp,
                icon=c.icon,
                completed=c.id in done,
            )
            for c in CATALOG.values()
        ],
    )


@router.post("/{challenge_id}/claim", response_model=ClaimOut)
def claim(
    challenge_id: int,
    profile_id: str = CurrentProfileId,
    store: SqlProgressStore = Store,
    settings: Settings = AppSettings,
    feed: ProgressFeed = Feed,
) -> ClaimOut:
    day = local_today(tz_name=settings.timezone)
    result = ChallengeCompletionLedger(store, feed=feed).claim(profile_id, challenge_id, day)
    return ClaimOut(**result.__dict__)
