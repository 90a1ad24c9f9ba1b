"""User management router: all /api/v1/users/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.dependencies import get_current_user
from hikemeet.database import get_session
from hikemeet.db.models import User
from hikemeet.errors import DomainError
from hikemeet.media.host import MediaHost, MediaHostError, get_media_host
from hikemeet.media.router import read_upload
from hikemeet.notifications.service import get_unread_count
from hikemeet.users.schemas import (
    MuteGroupRequest,
    MuteTypeRequest,
    PrivacyUpdateRequest,
    ProfileUpdateRequest,
    PublicUserResponse,
    PushTokenRequest,
    TripHistoryResponse,
    UserResponse,
    public_user_response,
    user_response,
)
from hikemeet.users.service import (
    add_push_token,
    get_trip_history,
    get_user,
    mute_group,
    mute_notification_type,
    remove_push_token,
    reset_profile_picture,
    set_post_visibility,
    set_profile_picture,
    unmute_group,
    unmute_notification_type,
    update_profile,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse)
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Get own full profile."""
    return user_response(user, unread_notifications=await get_unread_count(db, user.id))


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Update own profile fields."""
    try:
        updated = await update_profile(db, user.id, body.model_dump(exclude_unset=True))
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    except IntegrityError as e:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Username already taken") from e
    return user_response(updated)


@router.put("/me/privacy", response_model=UserResponse)
async def update_privacy(
    body: PrivacyUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Set default visibility of own posts."""
    try:
        updated = await set_post_visibility(db, user.id, body.post_visibility)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return user_response(updated)


@router.get("/{user_id}", response_model=PublicUserResponse)
async def get_user_profile(
    user_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> PublicUserResponse:
    """Get another user's public profile."""
    try:
        target = await get_user(db, user_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return public_user_response(target)


@router.get("/{user_id}/trip-history", response_model=list[TripHistoryResponse])
async def trip_history(
    user_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[TripHistoryResponse]:
    """Completed hikes of a user."""
    rows = await get_trip_history(db, user_id)
    return [TripHistoryResponse(**row) for row in rows]


# ---------------------------------------------------------------------------
# Push tokens & mutes
# ---------------------------------------------------------------------------


@router.post("/me/push-tokens", status_code=201)
async def register_push_token(
    body: PushTokenRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    """Register a device for push messages."""
    added = await add_push_token(db, user.id, body.token)
    await db.commit()
    return {"added": added}


@router.delete("/me/push-tokens", status_code=204)
async def unregister_push_token(
    body: PushTokenRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    """Unregister a device."""
    await remove_push_token(db, user.id, body.token)
    await db.commit()


@router.post("/me/muted-groups")
async def mute_group_endpoint(
    body: MuteGroupRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, list[int]]:
    try:
        muted = await mute_group(db, user.id, body.group_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return {"muted_groups": muted}


@router.delete("/me/muted-groups/{group_id}")
async def unmute_group_endpoint(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, list[int]]:
    muted = await unmute_group(db, user.id, group_id)
    await db.commit()
    return {"muted_groups": muted}


@router.post("/me/muted-types")
async def mute_type_endpoint(
    body: MuteTypeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, list[str]]:
    muted = await mute_notification_type(db, user.id, body.type)
    await db.commit()
    return {"muted_notification_types": muted}


@router.delete("/me/muted-types/{type_}")
async def unmute_type_endpoint(
    type_: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, list[str]]:
    muted = await unmute_notification_type(db, user.id, type_)
    await db.commit()
    return {"muted_notification_types": muted}


# ---------------------------------------------------------------------------
# Profile picture
# ---------------------------------------------------------------------------


@router.post("/me/profile-picture", response_model=UserResponse)
async def upload_profile_picture(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
) -> UserResponse:
    """Replace own profile picture."""
    data = await read_upload(file)
    try:
        updated = await set_profile_picture(db, media, user.id, data, file.filename or "profile")
        await db.commit()
    except MediaHostError as e:
        raise HTTPException(status_code=502, detail="Image upload failed") from e
    return user_response(updated)


@router.delete("/me/profile-picture", response_model=UserResponse)
async def delete_profile_picture(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
) -> UserResponse:
    """Reset own profile picture to the default."""
    updated = await reset_profile_picture(db, media, user.id)
    await db.commit()
    return user_response(updated)
