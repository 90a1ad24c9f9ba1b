"""FastAPI authentication dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.identity import IdentityProvider, InvalidCredentialsError, get_identity_provider
from hikemeet.auth.service import get_user_by_uid
from hikemeet.auth.verification import RedisVerificationCodeStore, VerificationCodeStore
from hikemeet.config import get_settings
from hikemeet.database import get_session
from hikemeet.db.models import User
from hikemeet.redis_client import get_redis

_bearer = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> User:
    """
    Verify the bearer token with the identity provider, return the User.

    Raises 401 on a bad token or an identity with no user record.
    """
    try:
        claims = await provider.verify_token(credentials.credentials)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user = await get_user_by_uid(db, claims.uid)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Same as get_current_user but the account must have the admin role."""
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def get_verification_store() -> VerificationCodeStore:
    """Redis-backed verification code store (FastAPI dependency)."""
    settings = get_settings()
    return RedisVerificationCodeStore(
        get_redis(),
        ttl_seconds=settings.verification_code_ttl_seconds,
        cooldown_seconds=settings.verification_code_cooldown_seconds,
        max_attempts=settings.verification_code_max_attempts,
    )
