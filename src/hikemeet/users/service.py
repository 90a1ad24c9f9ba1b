"""User profile service: profile edits, privacy, push tokens, mutes, profile picture."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.config import get_settings
from hikemeet.db.models import Group, PushToken, Trip, TripHistory, User
from hikemeet.errors import ConflictError, NotFoundError, ValidationError
from hikemeet.locks import lock_users
from hikemeet.media.host import MediaHost, remove_image

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "username",
    "first_name",
    "last_name",
    "gender",
    "birth_date",
    "bio",
    "facebook_link",
    "instagram_link",
)


async def get_user(db: AsyncSession, user_id: int) -> User:
    """Get a user or raise NotFoundError."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def update_profile(db: AsyncSession, user_id: int, changes: dict[str, Any]) -> User:
    """Apply a partial profile update. Usernames stay unique (case-insensitive)."""
    user = (await lock_users(db, user_id))[user_id]

    new_username = changes.get("username")
    if new_username and new_username.lower() != user.username.lower():
        taken = await db.execute(
            select(User.id).where(func.lower(User.username) == new_username.lower(), User.id != user_id)
        )
        if taken.first() is not None:
            raise ConflictError("Username already taken")

    for field in PROFILE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(user, field, changes[field])

    await db.flush()
    return user


async def set_post_visibility(db: AsyncSession, user_id: int, visibility: str) -> User:
    """Set the default privacy for the user's posts."""
    if visibility not in ("public", "private"):
        raise ValidationError("Visibility must be 'public' or 'private'")
    user = (await lock_users(db, user_id))[user_id]
    user.post_visibility = visibility
    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Push tokens
# ---------------------------------------------------------------------------


async def add_push_token(db: AsyncSession, user_id: int, token: str) -> bool:
    """Register a device token. Returns False if it was already registered."""
    await lock_users(db, user_id)
    existing = await db.execute(
        select(PushToken.id).where(PushToken.user_id == user_id, PushToken.token == token)
    )
    if existing.first() is not None:
        return False
    db.add(PushToken(user_id=user_id, token=token))
    await db.flush()
    return True


async def remove_push_token(db: AsyncSession, user_id: int, token: str) -> bool:
    """Unregister a device token (e.g. on logout). Returns True if removed."""
    result = await db.execute(
        delete(PushToken).where(PushToken.user_id == user_id, PushToken.token == token)
    )
    return result.rowcount > 0


# ---------------------------------------------------------------------------
# Mutes
# ---------------------------------------------------------------------------


async def mute_group(db: AsyncSession, user_id: int, group_id: int) -> list[int]:
    """Stop push messages about one group. Notifications are still stored."""
    user = (await lock_users(db, user_id))[user_id]
    group = await db.execute(select(Group.id).where(Group.id == group_id))
    if group.first() is None:
        raise NotFoundError("Group not found")
    muted = list(user.muted_groups or [])
    if group_id not in muted:
        user.muted_groups = [*muted, group_id]
        await db.flush()
    return list(user.muted_groups)


async def unmute_group(db: AsyncSession, user_id: int, group_id: int) -> list[int]:
    user = (await lock_users(db, user_id))[user_id]
    user.muted_groups = [g for g in (user.muted_groups or []) if g != group_id]
    await db.flush()
    return list(user.muted_groups)


async def mute_notification_type(db: AsyncSession, user_id: int, type_: str) -> list[str]:
    """Stop push messages of one notification type."""
    user = (await lock_users(db, user_id))[user_id]
    muted = list(user.muted_notification_types or [])
    if type_ not in muted:
        user.muted_notification_types = [*muted, type_]
        await db.flush()
    return list(user.muted_notification_types)


async def unmute_notification_type(db: AsyncSession, user_id: int, type_: str) -> list[str]:
    user = (await lock_users(db, user_id))[user_id]
    user.muted_notification_types = [t for t in (user.muted_notification_types or []) if t != type_]
    await db.flush()
    return list(user.muted_notification_types)


# ---------------------------------------------------------------------------
# Profile picture
# ---------------------------------------------------------------------------


def _default_picture() -> dict[str, str]:
    settings = get_settings()
    return {"url": settings.default_profile_image_url, "image_id": settings.default_profile_image_id}


async def set_profile_picture(
    db: AsyncSession,
    media: MediaHost,
    user_id: int,
    data: bytes,
    filename: str,
) -> User:
    """Upload a new profile picture and drop the previous one from the media host."""
    user = (await lock_users(db, user_id))[user_id]
    uploaded = await media.upload(data, "profile_images", filename=filename)
    previous = (user.profile_picture or {}).get("image_id")
    user.profile_picture = uploaded.as_image()
    await db.flush()
    await remove_image(media, previous)
    return user


async def reset_profile_picture(db: AsyncSession, media: MediaHost, user_id: int) -> User:
    """Go back to the default picture."""
    user = (await lock_users(db, user_id))[user_id]
    previous = (user.profile_picture or {}).get("image_id")
    user.profile_picture = _default_picture()
    await db.flush()
    await remove_image(media, previous)
    return user


# ---------------------------------------------------------------------------
# Trip history
# ---------------------------------------------------------------------------


async def get_trip_history(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    """Completed hikes, newest first."""
    result = await db.execute(
        select(TripHistory, Trip.name, Group.name)
        .outerjoin(Trip, Trip.id == TripHistory.trip_id)
        .outerjoin(Group, Group.id == TripHistory.group_id)
        .where(TripHistory.user_id == user_id)
        .order_by(TripHistory.completed_at.desc(), TripHistory.id.desc())
    )
    return [
        {
            "trip_id": entry.trip_id,
            "group_id": entry.group_id,
            "trip_name": trip_name,
            "group_name": group_name,
            "completed_at": entry.completed_at,
        }
        for entry, trip_name, group_name in result.all()
    ]
