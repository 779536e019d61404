from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import orjson
from sqlalchemy.orm import Session

from cashwise_api.models import Event


def log_event(
    session: Session,
    *,
    type: str,
    profile_id: str | None,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Event:
    now_dt = now or datetime.now(UTC)
    p: dict[str, Any] = dict(payload or {})
    p.setdefault("v", 1)
    p.setdefault("profile_id", profile_id)

    ev = Event(
        id=f"ev_{uuid4().hex}",
        type=str(type)[:80],
        profile_id=str(profile_id) if profile_id else None,
        payload_json=orjson.dumps(p, option=orjson.OPT_SORT_KEYS).decode("utf-8"),
        created_at=now_dt,
    )
    session.add(ev)
    return ev

