"""Identity provider abstraction.

The rest of the service only needs four things from an identity provider:
verify a bearer token, create an account, sign in, and update or delete
credentials. ``LocalIdentityProvider`` keeps argon2id hashes in the
``auth_credentials`` table and issues JWTs itself.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

import jwt
import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.jwt import ACCESS, create_access_token, verify_token
from hikemeet.auth.password import hash_password, needs_rehash, validate_password_strength, verify_password
from hikemeet.db.models import AuthCredential
from hikemeet.errors import ConflictError, NotFoundError

logger = structlog.get_logger()


class InvalidCredentialsError(Exception):
    """Bad email/password or an invalid bearer token."""


@dataclass
class IdentityClaims:
    """Verified identity behind a bearer token."""

    uid: str
    email: str


class IdentityProvider(ABC):
    """Abstract identity provider."""

    @abstractmethod
    async def verify_token(self, token: str) -> IdentityClaims:
        """Verify a bearer token. Raises InvalidCredentialsError."""
        ...

    @abstractmethod
    async def create_user(self, db: AsyncSession, email: str, password: str) -> str:
        """Create credentials and return the new uid. Raises ConflictError on a taken email."""
        ...

    @abstractmethod
    async def sign_in(self, db: AsyncSession, email: str, password: str) -> str:
        """Check credentials and return an access token. Raises InvalidCredentialsError."""
        ...

    @abstractmethod
    async def update_password(self, db: AsyncSession, email: str, new_password: str) -> None:
        """Replace the password for ``email``. Raises NotFoundError."""
        ...

    @abstractmethod
    async def delete_user(self, db: AsyncSession, uid: str) -> None:
        """Remove the credentials for ``uid`` (no-op if already gone)."""
        ...


class LocalIdentityProvider(IdentityProvider):
    """Credentials stored alongside the application data."""

    async def _get_by_email(self, db: AsyncSession, email: str) -> AuthCredential | None:
        result = await db.execute(
            select(AuthCredential).where(func.lower(AuthCredential.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def verify_token(self, token: str) -> IdentityClaims:
        try:
            payload = verify_token(token, expected_type=ACCESS)
        except jwt.InvalidTokenError as e:
            raise InvalidCredentialsError(str(e)) from e
        return IdentityClaims(uid=payload["sub"], email=payload.get("email", ""))

    async def create_user(self, db: AsyncSession, email: str, password: str) -> str:
        validate_password_strength(password)
        if await self._get_by_email(db, email) is not None:
            raise ConflictError("Email is already registered")

        credential = AuthCredential(
            uid=uuid.uuid4().hex,
            email=email.lower(),
            password_hash=hash_password(password),
        )
        db.add(credential)
        await db.flush()
        logger.info("identity_created", uid=credential.uid)
        return credential.uid

    async def sign_in(self, db: AsyncSession, email: str, password: str) -> str:
        credential = await self._get_by_email(db, email)
        if credential is None or not verify_password(password, credential.password_hash):
            msg = "Invalid email or password"
            raise InvalidCredentialsError(msg)
        if needs_rehash(credential.password_hash):
            credential.password_hash = hash_password(password)
            await db.flush()
        return create_access_token(credential.uid, credential.email)

    async def update_password(self, db: AsyncSession, email: str, new_password: str) -> None:
        validate_password_strength(new_password)
        credential = await self._get_by_email(db, email)
        if credential is None:
            raise NotFoundError("User not found")
        credential.password_hash = hash_password(new_password)
        await db.flush()
        logger.info("identity_password_updated", uid=credential.uid)

    async def delete_user(self, db: AsyncSession, uid: str) -> None:
        await db.execute(delete(AuthCredential).where(AuthCredential.uid == uid))
        logger.info("identity_deleted", uid=uid)


_provider: IdentityProvider | None = None


def init_identity_provider() -> IdentityProvider:
    """Create the process-wide identity provider."""
    global _provider  # noqa: PLW0603
    _provider = LocalIdentityProvider()
    return _provider


def get_identity_provider() -> IdentityProvider:
    """Get the identity provider (FastAPI dependency)."""
    if _provider is None:
        msg = "Identity provider not initialized. Call init_identity_provider() first."
        raise RuntimeError(msg)
    return _provider
