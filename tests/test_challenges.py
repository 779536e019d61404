from __future__ import annotations

from datetime import date, timedelta
from uuid import uuid4

import pytest

DAY = date(2026, 3, 10)


def _pid() -> str:
    return f"p_{uuid4().hex[:10]}"


def test_catalog_matches_reward_table() -> None:
    from cashwise_api.challenges import CATALOG

    assert {c.id: c.xp for c in CATALOG.values()} == {0: 500, 1: 300, 2: 250, 3: 100, 4: 300}
    assert [c.id for c in CATALOG.values() if c.requires_daily_activity] == [4]


def test_claim_is_at_most_once_per_day(seeded_db) -> None:
    from cashwise_api.challenges import ChallengeCompletionLedger
    from cashwise_api.db import SessionLocal
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        store.ensure_profile(pid)
        ledger = ChallengeCompletionLedger(store)

        first = ledger.claim(pid, 2, DAY)
        second = ledger.claim(pid, 2, DAY)
        next_day = ledger.claim(pid, 2, DAY + timedelta(days=1))

        assert (first.already_completed, first.xp_awarded, first.xp_total) == (False, 250, 250)
        assert (second.already_completed, second.xp_awarded, second.xp_total) == (True, 0, 250)
        assert next_day.already_completed is False
        assert int(store.get_profile(pid).xp) == 500
        assert ledger.completed_on(pid, DAY) == [2]

        kinds = [e.activity_type for e in store.get_activity_log(pid)]
        assert kinds == ["other", "other"]


def test_unknown_challenge_is_rejected(seeded_db) -> None:
    from cashwise_api.challenges import ChallengeCompletionLedger
    from cashwise_api.db import SessionLocal
    from cashwise_api.errors import ValidationError
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        store.ensure_profile(pid)
        with pytest.raises(ValidationError):
            ChallengeCompletionLedger(store).claim(pid, 99, DAY)


def test_daily_streak_needs_a_lesson_and_a_quiz(seeded_db) -> None:
    from cashwise_api.challenges import DAILY_STREAK, ChallengeCompletionLedger
    from cashwise_api.db import SessionLocal
    from cashwise_api.errors import PreconditionNotMet
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        store.ensure_profile(pid)
        ledger = ChallengeCompletionLedger(store)

        with pytest.raises(PreconditionNotMet):
            ledger.claim(pid, DAILY_STREAK, DAY)

        store.insert_activity_entry(profile_id=pid, activity_date=DAY, activity_type="lesson")
        # A quiz on another day does not count.
        store.insert_activity_entry(
            profile_id=pid, activity_date=DAY - timedelta(days=1), activity_type="quiz"
        )
        with pytest.raises(PreconditionNotMet):
            ledger.claim(pid, DAILY_STREAK, DAY)

        store.insert_activity_entry(profile_id=pid, activity_date=DAY, activity_type="quiz")
        res = ledger.claim(pid, DAILY_STREAK, DAY)
        assert res.already_completed is False
        assert res.xp_awarded == 300
        assert ledger.claim(pid, DAILY_STREAK, DAY).already_completed is True


def test_concurrent_claim_collision_is_already_completed(seeded_db) -> None:
    from cashwise_api.challenges import ChallengeCompletionLedger
    from cashwise_api.db import SessionLocal
    from cashwise_api.store import SqlProgressStore

    class _StaleStore(SqlProgressStore):
        def get_challenge_completions(self, profile_id, day):
            return []

    pid = _pid()
    with SessionLocal() as s1, SessionLocal() as s2:
        store = SqlProgressStore(s1)
        store.ensure_profile(pid)
        ChallengeCompletionLedger(store).claim(pid, 3, DAY)

        res = ChallengeCompletionLedger(_StaleStore(s2)).claim(pid, 3, DAY)
        assert res.already_completed is True
        assert res.xp_awarded == 0
        assert res.xp_total == 100

        assert len(store.get_challenge_completions(pid, DAY)) == 1
        assert int(store.get_profile(pid).xp) == 100


def test_claim_for_unknown_profile_is_not_found(seeded_db) -> None:
    from cashwise_api.challenges import ChallengeCompletionLedger
    from cashwise_api.db import SessionLocal
    from cashwise_api.errors import NotFound
    from cashwise_api.store import SqlProgressStore

    with SessionLocal() as session:
        with pytest.raises(NotFound):
            ChallengeCompletionLedger(SqlProgressStore(session)).claim(_pid(), 1, DAY)


def test_personality_challenge_is_completed_by_the_quiz(seeded_db) -> None:
    from cashwise_api.attempts import AttemptRecorder
    from cashwise_api.challenges import PERSONALITY_TEST, ChallengeCompletionLedger
    from cashwise_api.db import SessionLocal
    from cashwise_api.errors import PreconditionNotMet
    from cashwise_api.personality import PERSONALITY_QUIZ_ID
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        store.ensure_profile(pid)
        ledger = ChallengeCompletionLedger(store)

        with pytest.raises(PreconditionNotMet):
            ledger.claim(pid, PERSONALITY_TEST, DAY)
        assert int(store.get_profile(pid).xp) == 0
        assert PERSONALITY_TEST not in ledger.completed_on(pid, DAY)

        AttemptRecorder(store, today=lambda: DAY).submit_attempt(
            profile_id=pid,
            quiz_id=PERSONALITY_QUIZ_ID,
            score=0,
            total_questions=8,
            time_taken=0,
            is_single_attempt=True,
            answers=["C"] * 8,
            completion_xp=500,
        )
        assert int(store.get_profile(pid).xp) == 500

        # Once ever: no extra payout on the quiz day or any later day.
        for day in (DAY, DAY + timedelta(days=1), DAY + timedelta(days=30)):
            res = ledger.claim(pid, PERSONALITY_TEST, day)
            assert (res.already_completed, res.xp_awarded) == (True, 0)
            assert PERSONALITY_TEST in ledger.completed_on(pid, day)

        assert int(store.get_profile(pid).xp) == 500
        assert store.get_challenge_completions(pid, DAY) == []
