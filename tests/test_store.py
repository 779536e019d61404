from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError


class _FlakySession:
    """Fails ``get`` a fixed number of times with a transient driver error."""

    def __init__(self, failures: int, result: object) -> None:
        self.failures = failures
        self.result = result
        self.calls = 0
        self.rollbacks = 0

    def get(self, *_args, **_kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        return self.result

    def rollback(self) -> None:
        self.rollbacks += 1

    def commit(self) -> None:
        return None


def _pid() -> str:
    return f"p_{uuid4().hex[:10]}"


def test_transient_errors_are_retried_with_backoff() -> None:
    from cashwise_api.core.config import Settings
    from cashwise_api.store import SqlProgressStore

    sentinel = object()
    sleeps: list[float] = []
    session = _FlakySession(failures=2, result=sentinel)
    store = SqlProgressStore(
        session,  # type: ignore[arg-type]
        settings=Settings(store_retry_attempts=3, store_retry_backoff_sec=0.5),
        sleep=sleeps.append,
    )

    assert store.get_profile("p1") is sentinel
    assert session.calls == 3
    assert session.rollbacks == 2
    assert sleeps == [0.5, 1.0]


def test_exhausted_retries_surface_store_unavailable() -> None:
    from cashwise_api.core.config import Settings
    from cashwise_api.errors import StoreUnavailableError
    from cashwise_api.store import SqlProgressStore

    sleeps: list[float] = []
    session = _FlakySession(failures=10, result=object())
    store = SqlProgressStore(
        session,  # type: ignore[arg-type]
        settings=Settings(store_retry_attempts=3, store_retry_backoff_sec=0.1),
        sleep=sleeps.append,
    )

    with pytest.raises(StoreUnavailableError):
        store.get_profile("p1")
    assert session.calls == 3
    assert len(sleeps) == 2


def test_missing_profile_is_not_found(seeded_db) -> None:
    from cashwise_api.db import SessionLocal
    from cashwise_api.errors import NotFound
    from cashwise_api.store import SqlProgressStore

    with SessionLocal() as session:
        store = SqlProgressStore(session)
        with pytest.raises(NotFound):
            store.get_profile(_pid())
        with pytest.raises(NotFound):
            store.increment_profile(_pid(), xp_delta=10)


def test_increment_is_additive_and_recomputes_level(seeded_db) -> None:
    from cashwise_api.db import SessionLocal
    from cashwise_api.errors import InvariantViolation
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        store.ensure_profile(pid, display_name="Ana")
        store.increment_profile(pid, xp_delta=600, completed_quizzes_delta=1)
        p = store.increment_profile(pid, xp_delta=600, completed_lessons_delta=2)
        assert int(p.xp) == 1200
        assert int(p.level) == 2
        assert int(p.completed_quizzes) == 1
        assert int(p.completed_lessons) == 2

        with pytest.raises(InvariantViolation):
            store.increment_profile(pid, xp_delta=-1)
        assert int(store.get_profile(pid).xp) == 1200


def test_ensure_profile_is_idempotent(seeded_db) -> None:
    from cashwise_api.db import SessionLocal
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        a = store.ensure_profile(pid, display_name="First")
        b = store.ensure_profile(pid, display_name="Second")
        assert a.id == b.id
        assert b.display_name == "First"


def test_duplicate_challenge_completion_is_a_conflict(seeded_db) -> None:
    from cashwise_api.db import SessionLocal
    from cashwise_api.errors import ConflictError
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    day = date(2026, 3, 10)
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        store.ensure_profile(pid)
        store.insert_challenge_completion(
            profile_id=pid, challenge_id=2, completed_date=day, xp_awarded=250
        )
        with pytest.raises(ConflictError):
            store.insert_challenge_completion(
                profile_id=pid, challenge_id=2, completed_date=day, xp_awarded=250
            )
        assert len(store.get_challenge_completions(pid, day)) == 1


def test_atomic_unit_rolls_back_everything(seeded_db) -> None:
    from cashwise_api.db import SessionLocal
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    day = date(2026, 3, 10)
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        store.ensure_profile(pid)

        def _unit() -> None:
            store.insert_activity_entry(profile_id=pid, activity_date=day, activity_type="quiz")
            store.increment_profile(pid, xp_delta=100)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.run_atomic(_unit)

        assert store.get_activity_log(pid) == []
        assert int(store.get_profile(pid).xp) == 0


def test_badges_are_granted_once(seeded_db) -> None:
    from cashwise_api.db import SessionLocal
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        store.ensure_profile(pid)
        assert store.grant_badge(pid, "badge_first_quiz", source="test") is True
        assert store.grant_badge(pid, "badge_first_quiz", source="test") is False
        assert store.list_badges(pid) == ["badge_first_quiz"]


def test_record_event_reports_outcome(seeded_db) -> None:
    import orjson
    from sqlalchemy import select

    from cashwise_api.db import SessionLocal
    from cashwise_api.models import Event
    from cashwise_api.store import SqlProgressStore

    pid = _pid()
    with SessionLocal() as session:
        store = SqlProgressStore(session)
        store.ensure_profile(pid)
        outcome = store.record_event("profile_viewed", pid, {"screen": "profile"})
        assert outcome.ok is True
        ev = session.scalars(select(Event).where(Event.profile_id == pid)).one()
        assert ev.type == "profile_viewed"
        assert orjson.loads(ev.payload_json) == {"profile_id": pid, "screen": "profile", "v": 1}
