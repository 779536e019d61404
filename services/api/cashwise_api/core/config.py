from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CASHWISE_", extra="ignore")

    trust_proxy_headers: bool = False
    allowed_hosts: str = "localhost,127.0.0.1,testserver"
    cors_allowed_origins: str = "http://localhost:8081,http://127.0.0.1:8081"
    log_json: bool = False
    log_level: str = "INFO"

    db_url: str = "sqlite:///./artifacts/cashwise.db"

    auth_jwt_secret: str = "dev-secret-change-me"
    auth_jwt_issuer: str = "cashwise-local"
    auth_jwt_exp_minutes: int = 60 * 24 * 7

    # Calendar day boundary for streaks, activity dates and daily challenges.
    timezone: str = "UTC"

    # Quiz scoring.
    base_xp: int = 100
    perfect_bonus: int = 50
    time_bonus_rate: float = 0.167
    time_bonus_max: int = 50
    passing_percent: float = 80.0
    quiz_time_limit_seconds: int = 60

    xp_per_level: int = 1000

    # Transient store failures are retried with exponential backoff.
    store_retry_attempts: int = 3
    store_retry_backoff_sec: float = 0.2

    leaderboard_max_limit: int = 100

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, v: str) -> str:
        raw = str(v or "").strip() or "UTC"
        try:
            ZoneInfo(raw)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"CASHWISE_TIMEZONE is not a known zone: {raw!r}") from exc
        return raw

    @field_validator("store_retry_attempts")
    @classmethod
    def _validate_retry_attempts(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("CASHWISE_STORE_RETRY_ATTEMPTS must be >= 1")
        return int(v)
