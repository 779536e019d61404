from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from cashwise_api.core.config import Settings


def create_access_token(*, subject: str, settings: Settings | None = None) -> str:
    """Mint a bearer token for tooling and tests; end-user sign-in lives elsewhere."""
    settings = settings or Settings()
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "iss": settings.auth_jwt_issuer,
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int(
            (now + timedelta(minutes=settings.auth_jwt_exp_minutes)).timestamp()
        ),
    }
    return jwt.encode(payload, settings.auth_jwt_secret, algorithm="HS256")


def decode_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    settings = settings or Settings()
    return jwt.decode(
        token,
        settings.auth_jwt_secret,
        algorithms=["HS256"],
        issuer=settings.auth_jwt_issuer,
    )
