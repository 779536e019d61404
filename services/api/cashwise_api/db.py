from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from cashwise_api.core.config import Settings


class Base(DeclarativeBase):
    pass


def _engine_kwargs(db_url: str) -> dict[str, object]:
    kwargs: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return kwargs


settings = Settings()
engine = create_engine(settings.db_url, **_engine_kwargs(settings.db_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
