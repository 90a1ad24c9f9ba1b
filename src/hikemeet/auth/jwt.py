"""Signed tokens.

Two kinds are issued. An access token names an identity-provider account
(``sub`` is the provider uid, ``email`` rides along). A reset token names
an email address and authorises exactly one password update before it
expires. Both carry ``type`` so one can never stand in for the other.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from hikemeet.config import get_settings

ACCESS = "access"
PASSWORD_RESET = "password_reset"

# (signing key, verification key); same secret twice for HMAC
_keys: tuple[str, str] | None = None


def _key_pair() -> tuple[str, str]:
    global _keys  # noqa: PLW0603
    if _keys is None:
        settings = get_settings()
        if settings.jwt_algorithm.upper().startswith("HS"):
            if not settings.jwt_secret:
                msg = "HIKEMEET_JWT_SECRET is required for HMAC algorithms"
                raise RuntimeError(msg)
            _keys = (settings.jwt_secret, settings.jwt_secret)
        else:
            _keys = (
                Path(settings.jwt_private_key_path).read_text(),
                Path(settings.jwt_public_key_path).read_text(),
            )
    return _keys


def reset_keys() -> None:
    """Forget the loaded keys so the next call re-reads settings."""
    global _keys  # noqa: PLW0603
    _keys = None


def _issue(subject: str, token_type: str, lifetime: timedelta, **claims: Any) -> str:  # noqa: ANN401
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "type": token_type,
        "iss": settings.jwt_issuer,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        **claims,
    }
    return jwt.encode(payload, _key_pair()[0], algorithm=settings.jwt_algorithm)


def create_access_token(uid: str, email: str) -> str:
    minutes = get_settings().jwt_access_token_expire_minutes
    return _issue(uid, ACCESS, timedelta(minutes=minutes), email=email)


def create_reset_token(email: str) -> str:
    minutes = get_settings().jwt_reset_token_expire_minutes
    return _issue(email, PASSWORD_RESET, timedelta(minutes=minutes), jti=uuid.uuid4().hex)


def verify_token(token: str, expected_type: str = ACCESS) -> dict[str, Any]:
    """Decode ``token`` and check its issuer, expiry and ``type``.

    Every failure surfaces as ``jwt.InvalidTokenError`` so callers catch
    a single exception type.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _key_pair()[1],
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "exp", "type"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    token_type = payload["type"]
    if token_type != expected_type:
        msg = f"Expected a {expected_type} token, got {token_type}"
        raise jwt.InvalidTokenError(msg)
    return payload
