from __future__ import annotations

from typing import Iterator

import jwt
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from cashwise_api.core.config import Settings
from cashwise_api.core.security import decode_token
from cashwise_api.db import SessionLocal
from cashwise_api.feed import ProgressFeed
from cashwise_api.store import SqlProgressStore


def get_db() -> Iterator[Session]:
    with SessionLocal() as session:
        yield session


def get_current_user_id(authorization: str | None = Header(default=None)) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = decode_token(token)
    except jwt.PyJWTError as e:
        raise HTTPException(status_code=401, detail="Invalid token") from e
    sub = str(payload.get("sub") or "").strip()
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token")
    return sub


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_feed(request: Request) -> ProgressFeed:
    return request.app.state.feed


def get_store(
    db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
) -> SqlProgressStore:
    return SqlProgressStore(db, settings=settings)


CurrentUserId = Depends(get_current_user_id)
DBSession = Depends(get_db)
AppSettings = Depends(get_settings)
Feed = Depends(get_feed)
Store = Depends(get_store)


def get_current_profile_id(
    user_id: str = CurrentUserId, store: SqlProgressStore = Store
) -> str:
    store.ensure_profile(user_id)
    return user_id


CurrentProfileId = Depends(get_current_profile_id)
