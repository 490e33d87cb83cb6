from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eclat.core.config import Settings, get_settings
from eclat.core.db import get_db
from eclat.core.security import TokenError, decode_token
from eclat.integrations.stripe_gateway import StripeGateway
from eclat.models.profile import Profile

bearer_scheme = HTTPBearer(auto_error=False)
api_key_header = APIKeyHeader(name="X-Internal-Api-Key", auto_error=False)


@dataclass(frozen=True)
class AuthUser:
    id: UUID
    email: str | None = None


def _user_from_token(settings: Settings, token: str) -> AuthUser:
    try:
        payload = decode_token(settings, token)
    except TokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token missing user id (sub)")

    try:
        user_id = UUID(str(sub))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id in token")

    return AuthUser(id=user_id, email=payload.get("email"))


async def get_current_user_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> AuthUser | None:
    # Guests may check out; a present but bad token is still rejected.
    if credentials is None or not credentials.credentials:
        return None
    return _user_from_token(settings, credentials.credentials)


async def get_current_user(
    user: AuthUser | None = Depends(get_current_user_optional),
) -> AuthUser:
    if user is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return user


async def require_admin(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AuthUser:
    res = await db.execute(select(Profile.role).where(Profile.id == user.id))
    role = res.scalar_one_or_none()
    if role != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def require_internal_api_key(
    api_key: str | None = Security(api_key_header),
    settings: Settings = Depends(get_settings),
) -> str:
    if api_key and api_key == settings.INTERNAL_API_KEY:
        return api_key
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing internal API key",
    )


def get_payment_gateway(request: Request) -> StripeGateway:
    return request.app.state.payment_gateway
