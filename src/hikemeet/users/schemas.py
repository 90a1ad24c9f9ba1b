"""Request/response schemas for user endpoints.

Re-exports from auth schemas for convenience, plus the ORM-to-response builders.
"""

from hikemeet.auth.schemas import (
    ImageModel,
    MuteGroupRequest,
    MuteTypeRequest,
    PrivacyUpdateRequest,
    ProfileUpdateRequest,
    PublicUserResponse,
    PushTokenRequest,
    TripHistoryResponse,
    UserListResponse,
    UserResponse,
)
from hikemeet.db.models import User


def user_response(user: User, unread_notifications: int | None = None) -> UserResponse:
    """Build a UserResponse from a User model."""
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        gender=user.gender,
        birth_date=user.birth_date,
        bio=user.bio,
        profile_picture=ImageModel(**user.profile_picture) if user.profile_picture else None,
        facebook_link=user.facebook_link,
        instagram_link=user.instagram_link,
        role=user.role,
        exp=user.exp,
        rank=user.rank,
        unread_notifications=(
            user.unread_notifications if unread_notifications is None else unread_notifications
        ),
        muted_groups=list(user.muted_groups or []),
        muted_notification_types=list(user.muted_notification_types or []),
        post_visibility=user.post_visibility,
        created_at=user.created_at,
    )


def public_user_response(user: User) -> PublicUserResponse:
    """Build a PublicUserResponse from a User model."""
    return PublicUserResponse(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        bio=user.bio,
        profile_picture=ImageModel(**user.profile_picture) if user.profile_picture else None,
        facebook_link=user.facebook_link,
        instagram_link=user.instagram_link,
        exp=user.exp,
        rank=user.rank,
        created_at=user.created_at,
    )


__all__ = [
    "ImageModel",
    "MuteGroupRequest",
    "MuteTypeRequest",
    "PrivacyUpdateRequest",
    "ProfileUpdateRequest",
    "PublicUserResponse",
    "PushTokenRequest",
    "TripHistoryResponse",
    "UserListResponse",
    "UserResponse",
    "public_user_response",
    "user_response",
]
