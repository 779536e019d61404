"""Streak derivation from the activity log.

Grace policy is strict everywhere: the backward scan starts at ``today`` and a
day without activity (today included) ends the current streak.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Iterable
from zoneinfo import ZoneInfo

from cashwise_api.metrics import inc_counter

if TYPE_CHECKING:
    from cashwise_api.models import Profile
    from cashwise_api.store import ProgressStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakSummary:
    current_streak: int
    longest_streak: int
    total_active_days: int
    marked_dates: list[str] = field(default_factory=list)


def local_today(*, now_utc: datetime | None = None, tz_name: str = "UTC") -> date:
    now = now_utc or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(ZoneInfo(tz_name)).date()


def compute_streak(activity_dates: Iterable[date], *, today: date) -> StreakSummary:
    days = {d for d in activity_dates if d is not None}

    longest = 0
    run = 0
    prev: date | None = None
    for d in sorted(days):
        if prev is not None and d - prev == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        prev = d

    current = 0
    cursor = today
    while cursor in days:
        current += 1
        cursor -= timedelta(days=1)

    return StreakSummary(
        current_streak=current,
        longest_streak=longest,
        total_active_days=len(days),
        marked_dates=[d.isoformat() for d in sorted(days)],
    )


def reconcile_streak(
    store: "ProgressStore", profile: "Profile", *, today: date
) -> StreakSummary:
    """Recompute from the log and heal ``profile.streak`` if it drifted.

    Callers must use the returned summary for any decision made in the same call.
    """
    entries = store.get_activity_log(profile.id)
    summary = compute_streak((e.activity_date for e in entries), today=today)
    cached = int(profile.streak or 0)
    if cached != summary.current_streak:
        logger.info(
            "reconciling cached streak for %s: %s -> %s",
            profile.id,
            cached,
            summary.current_streak,
        )
        store.update_cached_streak(profile.id, summary.current_streak)
        inc_counter("streak_reconciliations")
    return summary
