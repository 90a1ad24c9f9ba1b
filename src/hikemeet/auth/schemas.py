"""Request/response schemas for authentication and user endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

USERNAME_PATTERN = r"^[A-Za-z0-9_.]+$"


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Create an account: identity credentials plus the user profile."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    username: str = Field(..., min_length=3, max_length=32, pattern=USERNAME_PATTERN)
    first_name: str = Field(..., min_length=1, max_length=64)
    last_name: str = Field(..., min_length=1, max_length=64)
    gender: str | None = Field(None, max_length=16)
    birth_date: date | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class LoginRequest(BaseModel):
    """Email + password login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class SendCodeRequest(BaseModel):
    """Ask for a password-reset verification code."""

    email: EmailStr


class VerifyCodeRequest(BaseModel):
    """Exchange a verification code for a reset token."""

    email: EmailStr
    code: str = Field(..., pattern=r"^\d{5}$")


class VerifyCodeResponse(BaseModel):
    reset_token: str
    expires_in: int


class UpdatePasswordRequest(BaseModel):
    """Set a new password with a reset token from verify-code."""

    reset_token: str
    new_password: str = Field(..., min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    """Change password while signed in."""

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class TokenResponse(BaseModel):
    """Issued access token plus the signed-in user."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class ImageModel(BaseModel):
    url: str
    image_id: str | None = None
    type: str | None = None


class UserResponse(BaseModel):
    """Full profile (own account)."""

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    gender: str | None = None
    birth_date: date | None = None
    bio: str | None = None
    profile_picture: ImageModel | None = None
    facebook_link: str | None = None
    instagram_link: str | None = None
    role: str
    exp: int
    rank: str
    unread_notifications: int
    muted_groups: list[int] = []
    muted_notification_types: list[str] = []
    post_visibility: str
    created_at: datetime | None = None


class PublicUserResponse(BaseModel):
    """Profile as seen by other users."""

    id: int
    username: str
    first_name: str
    last_name: str
    bio: str | None = None
    profile_picture: ImageModel | None = None
    facebook_link: str | None = None
    instagram_link: str | None = None
    exp: int
    rank: str
    created_at: datetime | None = None


class ProfileUpdateRequest(BaseModel):
    """Partial profile update; omitted fields are left alone."""

    username: str | None = Field(None, min_length=3, max_length=32, pattern=USERNAME_PATTERN)
    first_name: str | None = Field(None, min_length=1, max_length=64)
    last_name: str | None = Field(None, min_length=1, max_length=64)
    gender: str | None = Field(None, max_length=16)
    birth_date: date | None = None
    bio: str | None = Field(None, max_length=500)
    facebook_link: str | None = Field(None, max_length=255)
    instagram_link: str | None = Field(None, max_length=255)


class PrivacyUpdateRequest(BaseModel):
    post_visibility: str = Field(..., pattern=r"^(public|private)$")


class PushTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=255)


class MuteGroupRequest(BaseModel):
    group_id: int


class MuteTypeRequest(BaseModel):
    type: str = Field(..., min_length=1, max_length=48)


class TripHistoryResponse(BaseModel):
    trip_id: int | None
    group_id: int | None
    trip_name: str | None = None
    group_name: str | None = None
    completed_at: datetime


class UserListResponse(BaseModel):
    users: list[PublicUserResponse]
    total: int
    page: int
    per_page: int


class MessageResponse(BaseModel):
    detail: str
    data: dict[str, Any] | None = None


TokenResponse.model_rebuild()
