from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable

from cashwise_api.core.config import Settings
from cashwise_api.errors import ValidationError
from cashwise_api.models import Profile
from cashwise_api.store import ProgressStore
from cashwise_api.streaks import local_today, reconcile_streak

SORT_KEYS: tuple[str, ...] = ("xp", "streak", "completed_lessons", "name")


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    profile_id: str
    display_name: str
    xp: int
    level: int
    streak: int
    completed_lessons: int


class LeaderboardAggregator:
    def __init__(
        self,
        store: ProgressStore,
        *,
        settings: Settings | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self._today = today or (lambda: local_today(tz_name=self.settings.timezone))

    def rank(
        self,
        profiles: Iterable[Profile],
        sort_key: str,
        *,
        limit: int | None = None,
    ) -> list[LeaderboardEntry]:
        """Order ``profiles`` by ``sort_key`` with ``id`` as the tie-break.

        Every displayed streak is recomputed from the activity log. For the
        ``streak`` key all rows are reconciled before sorting; for the other
        keys only the rows kept after ``limit`` are.
        """
        if sort_key not in SORT_KEYS:
            raise ValidationError(f"unsupported sort key: {sort_key!r}")

        today = self._today()
        rows = list(profiles)
        streaks: dict[str, int] = {}

        def fresh(p: Profile) -> int:
            if p.id not in streaks:
                streaks[p.id] = reconcile_streak(self.store, p, today=today).current_streak
            return streaks[p.id]

        def order(p: Profile) -> tuple:
            if sort_key == "name":
                return (str(p.display_name or "").casefold(), p.id)
            if sort_key == "xp":
                return (-int(p.xp or 0), p.id)
            if sort_key == "completed_lessons":
                return (-int(p.completed_lessons or 0), p.id)
            return (-fresh(p), p.id)

        ranked = sorted(rows, key=order)
        if limit is not None:
            ranked = ranked[: max(0, int(limit))]

        return [
            LeaderboardEntry(
                rank=i,
                profile_id=p.id,
                display_name=str(p.display_name or p.id),
                xp=int(p.xp or 0),
                level=int(p.level or 1),
                streak=fresh(p),
                completed_lessons=int(p.completed_lessons or 0),
            )
            for i, p in enumerate(ranked, start=1)
        ]

    def top(self, sort_key: str, *, limit: int = 50) -> list[LeaderboardEntry]:
        limit = max(1, min(int(self.settings.leaderboard_max_limit), int(limit)))
        return self.rank(self.store.list_profiles(), sort_key, limit=limit)
