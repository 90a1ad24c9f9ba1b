"""
Authentication business logic.

Handles account registration against the identity provider, sign-in, and
the verification-code password reset flow:

1. send-verification-code: a 5-digit code is stored with a TTL and mailed
2. verify-code: the code is consumed once and exchanged for a reset token
3. update-password: the reset token authorises one password change
"""

from __future__ import annotations

import time
from datetime import date
from typing import TYPE_CHECKING

import jwt
import structlog
from sqlalchemy import func, or_, select

from hikemeet.auth.identity import IdentityProvider, InvalidCredentialsError
from hikemeet.auth.jwt import PASSWORD_RESET, create_reset_token, verify_token
from hikemeet.auth.password import validate_password_strength
from hikemeet.config import get_settings
from hikemeet.db.models import User
from hikemeet.errors import ConflictError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hikemeet.auth.verification import VerificationCodeStore
    from hikemeet.email.service import EmailService

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_uid(db: AsyncSession, auth_uid: str) -> User | None:
    """Fetch a user by identity-provider uid."""
    result = await db.execute(select(User).where(User.auth_uid == auth_uid))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration / sign-in
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    provider: IdentityProvider,
    *,
    email: str,
    password: str,
    username: str,
    first_name: str,
    last_name: str,
    gender: str | None = None,
    birth_date: date | None = None,
) -> tuple[User, str]:
    """
    Create identity credentials and the matching user record.

    Returns:
        Tuple of (user, access_token).

    Raises:
        ConflictError: If the email or username is taken.
        PasswordStrengthError: If the password is too weak.
    """
    existing = await db.execute(
        select(User.id).where(
            or_(func.lower(User.email) == email.lower(), func.lower(User.username) == username.lower())
        )
    )
    if existing.first() is not None:
        raise ConflictError("Email or username already exists")

    uid = await provider.create_user(db, email, password)

    settings = get_settings()
    user = User(
        auth_uid=uid,
        email=email.lower(),
        username=username,
        first_name=first_name,
        last_name=last_name,
        gender=gender,
        birth_date=birth_date,
        profile_picture={
            "url": settings.default_profile_image_url,
            "image_id": settings.default_profile_image_id,
        },
        muted_groups=[],
        muted_notification_types=[],
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, username=username)

    token = await provider.sign_in(db, email, password)
    return user, token


async def login_user(db: AsyncSession, provider: IdentityProvider, email: str, password: str) -> tuple[User, str]:
    """
    Sign in through the identity provider.

    Raises:
        InvalidCredentialsError: On a bad email/password or a credential with no user record.
    """
    token = await provider.sign_in(db, email, password)
    user = await get_user_by_email(db, email)
    if user is None:
        msg = "Invalid email or password"
        raise InvalidCredentialsError(msg)
    return user, token


# ---------------------------------------------------------------------------
# Password reset via verification code
# ---------------------------------------------------------------------------


async def send_verification_code(
    db: AsyncSession,
    store: VerificationCodeStore,
    email_service: EmailService,
    email: str,
) -> None:
    """Issue a code and mail it. Raises NotFoundError for unknown emails."""
    user = await get_user_by_email(db, email)
    if user is None:
        raise NotFoundError("User not found")

    code = await store.issue(email)
    sent = await email_service.send_verification_code(user.email, user.first_name, code)
    if not sent:
        logger.warning("verification_code_not_delivered", user_id=user.id)


async def verify_code(db: AsyncSession, store: VerificationCodeStore, email: str, code: str) -> str:
    """Consume a code and return a password-reset token."""
    if await get_user_by_email(db, email) is None:
        raise NotFoundError("User not found")
    if not await store.consume(email, code):
        raise ValidationError("Invalid or expired verification code")
    return create_reset_token(email.lower())


async def reset_password(
    db: AsyncSession,
    provider: IdentityProvider,
    store: VerificationCodeStore,
    reset_token: str,
    new_password: str,
) -> User:
    """Apply a new password authorised by a reset token.

    The token is redeemed only after the new password passes the strength
    rules, so a rejected password does not burn it. A second redemption
    raises InvalidCredentialsError.
    """
    try:
        payload = verify_token(reset_token, expected_type=PASSWORD_RESET)
    except jwt.InvalidTokenError as e:
        raise InvalidCredentialsError(str(e)) from e
    token_id = payload.get("jti")
    if not token_id:
        raise InvalidCredentialsError("Reset token has no id")

    user = await get_user_by_email(db, payload["sub"])
    if user is None:
        raise NotFoundError("User not found")

    validate_password_strength(new_password)
    remaining = int(payload["exp"] - time.time())
    if not await store.redeem(token_id, remaining):
        raise InvalidCredentialsError("Reset token has already been used")
    await provider.update_password(db, user.email, new_password)
    return user


async def change_password(
    db: AsyncSession,
    provider: IdentityProvider,
    user: User,
    current_password: str,
    new_password: str,
) -> None:
    """Change password after re-checking the current one."""
    await provider.sign_in(db, user.email, current_password)
    await provider.update_password(db, user.email, new_password)
