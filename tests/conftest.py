from __future__ import annotations

import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

import pytest


_TEST_ROOT = Path(tempfile.mkdtemp(prefix="cashwise_test_"))
_DB_PATH = _TEST_ROOT / "cashwise_test.db"

os.environ["CASHWISE_DB_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["CASHWISE_AUTH_JWT_SECRET"] = "test-secret"
os.environ["CASHWISE_STORE_RETRY_BACKOFF_SEC"] = "0"
os.environ["CASHWISE_TIMEZONE"] = "UTC"


@pytest.fixture(scope="session")
def seeded_db() -> None:
    from cashwise_api import models  # noqa: F401
    from cashwise_api.db import Base, SessionLocal, engine
    from cashwise_api.models import Profile

    Base.metadata.create_all(engine)

    now = datetime.now(UTC)
    with SessionLocal() as session:
        if session.get(Profile, "user_demo"):
            return
        session.add(
            Profile(
                id="user_demo",
                display_name="Demo Learner",
                xp=1200,
                level=2,
                streak=0,
                completed_lessons=3,
                completed_quizzes=4,
                created_at=now,
                updated_at=now,
            )
        )
        session.commit()


@pytest.fixture()
def api_client(seeded_db):
    from fastapi.testclient import TestClient

    from cashwise_api.main import app

    return TestClient(app)


@pytest.fixture()
def auth_headers():
    from uuid import uuid4

    from cashwise_api.core.security import create_access_token

    def _make(user_id: str | None = None) -> dict[str, str]:
        sub = user_id or f"user_{uuid4().hex[:10]}"
        return {"Authorization": f"Bearer {create_access_token(subject=sub)}"}

    return _make
