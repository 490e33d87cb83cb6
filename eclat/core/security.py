from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from eclat.core.config import Settings


class TokenError(Exception):
    pass


# -------------------------
# BaaS access tokens (JWT)
# -------------------------
def create_access_token(
    settings: Settings,
    *,
    user_id: UUID,
    email: str | None = None,
    minutes: int = 60,
) -> str:
    # Production tokens come from the BaaS auth service. This mirrors their
    # claims so local tooling and tests can mint compatible tokens.
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "aud": settings.JWT_AUDIENCE,
        "role": "authenticated",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(settings: Settings, token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            audience=settings.JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise TokenError("Invalid token") from e
