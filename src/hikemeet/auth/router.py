"""Authentication router: all /api/v1/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.dependencies import get_current_user, get_verification_store
from hikemeet.auth.identity import IdentityProvider, InvalidCredentialsError, get_identity_provider
from hikemeet.auth.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    SendCodeRequest,
    TokenResponse,
    UpdatePasswordRequest,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from hikemeet.auth.service import (
    change_password,
    login_user,
    register_user,
    reset_password,
    send_verification_code,
    verify_code,
)
from hikemeet.auth.verification import VerificationCodeStore
from hikemeet.config import get_settings
from hikemeet.database import get_session
from hikemeet.db.models import User
from hikemeet.email.service import EmailService, get_email_service
from hikemeet.errors import DomainError
from hikemeet.users.schemas import user_response

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _token_response(user: User, token: str) -> TokenResponse:
    settings = get_settings()
    return TokenResponse(
        access_token=token,
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=user_response(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
    email_service: EmailService = Depends(get_email_service),
) -> TokenResponse:
    """Register with email + password and create the profile."""
    try:
        user, token = await register_user(
            db,
            provider,
            email=body.email,
            password=body.password,
            username=body.username,
            first_name=body.first_name,
            last_name=body.last_name,
            gender=body.gender,
            birth_date=body.birth_date,
        )
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    except IntegrityError as e:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email or username already exists") from e

    await email_service.send_welcome(user.email, user.first_name)
    return _token_response(user, token)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> TokenResponse:
    """Login with email + password."""
    try:
        user, token = await login_user(db, provider, body.email, body.password)
        await db.commit()
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return _token_response(user, token)


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    """Identity of the bearer token."""
    return {"id": user.id, "uid": user.auth_uid, "email": user.email, "role": user.role}


@router.post("/send-verification-code")
async def send_code(
    body: SendCodeRequest,
    db: AsyncSession = Depends(get_session),
    store: VerificationCodeStore = Depends(get_verification_store),
    email_service: EmailService = Depends(get_email_service),
) -> dict[str, str]:
    """Mail a 5-digit password-reset code."""
    try:
        await send_verification_code(db, store, email_service, body.email)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return {"detail": "Verification code sent successfully"}


@router.post("/verify-code", response_model=VerifyCodeResponse)
async def verify_code_endpoint(
    body: VerifyCodeRequest,
    db: AsyncSession = Depends(get_session),
    store: VerificationCodeStore = Depends(get_verification_store),
) -> VerifyCodeResponse:
    """Exchange a verification code for a short-lived reset token."""
    try:
        token = await verify_code(db, store, body.email, body.code)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return VerifyCodeResponse(
        reset_token=token,
        expires_in=get_settings().jwt_reset_token_expire_minutes * 60,
    )


@router.post("/update-password")
async def update_password(
    body: UpdatePasswordRequest,
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
    store: VerificationCodeStore = Depends(get_verification_store),
    email_service: EmailService = Depends(get_email_service),
) -> dict[str, str]:
    """Set a new password using a reset token."""
    try:
        user = await reset_password(db, provider, store, body.reset_token, body.new_password)
        await db.commit()
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e

    await email_service.send_password_changed(user.email, user.first_name)
    return {"detail": "Password updated successfully"}


@router.post("/change-password")
async def change_password_endpoint(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> dict[str, str]:
    """Change password while signed in."""
    try:
        await change_password(db, provider, user, body.current_password, body.new_password)
        await db.commit()
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=400, detail="Current password is incorrect") from e
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return {"detail": "Password updated successfully"}
