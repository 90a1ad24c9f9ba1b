"""Site administration: user listing, roles and account removal."""

from __future__ import annotations

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.identity import IdentityProvider
from hikemeet.db.models import GroupMember, GroupPending, Notification, Post, User
from hikemeet.errors import NotFoundError, ValidationError
from hikemeet.groups.service import ensure_admin
from hikemeet.locks import lock_users
from hikemeet.media.host import MediaHost, remove_image
from hikemeet.notifications.service import delete_notifications_where
from hikemeet.posts.cascade import purge_posts

logger = structlog.get_logger()

ROLES = ("user", "admin")


async def list_users(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 50,
    role: str | None = None,
) -> tuple[list[User], int]:
    query = select(User)
    count_query = select(func.count()).select_from(User)
    if role is not None:
        query = query.where(User.role == role)
        count_query = count_query.where(User.role == role)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(query.order_by(User.id.asc()).offset((page - 1) * per_page).limit(per_page))
    return list(result.scalars().all()), total


async def set_role(db: AsyncSession, actor_id: int, user_id: int, role: str) -> User:
    """Grant or revoke the admin role. Admins cannot demote themselves."""
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}")
    if actor_id == user_id and role != "admin":
        raise ValidationError("Admins cannot remove their own admin role")
    user = (await lock_users(db, user_id))[user_id]
    user.role = role
    await db.flush()
    logger.info("user_role_changed", user_id=user_id, role=role, actor_id=actor_id)
    return user


async def delete_user(
    db: AsyncSession,
    identity: IdentityProvider,
    media: MediaHost | None,
    actor_id: int,
    user_id: int,
) -> None:
    """Remove an account and everything hanging off it.

    Posts go through the post cascade, notifications the user caused are
    deleted with counter correction for their recipients, and groups the
    user administered get a successor admin. Friendships, push tokens,
    likes and comments go with the row.
    """
    if actor_id == user_id:
        raise ValidationError("Admins cannot delete their own account here")
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    admin_of = await db.execute(
        select(GroupMember.group_id).where(GroupMember.user_id == user_id, GroupMember.role == "admin")
    )
    admin_group_ids = list(admin_of.scalars().all())

    await purge_posts(db, media, Post.author_id == user_id)
    await delete_notifications_where(db, Notification.actor_id == user_id)
    await db.execute(
        delete(GroupPending).where(GroupPending.user_id == user_id).execution_options(synchronize_session="fetch")
    )
    await db.execute(
        delete(GroupMember).where(GroupMember.user_id == user_id).execution_options(synchronize_session="fetch")
    )
    await db.flush()
    for group_id in admin_group_ids:
        await ensure_admin(db, group_id)

    picture_id = (user.profile_picture or {}).get("image_id")
    await identity.delete_user(db, user.auth_uid)
    await db.delete(user)
    await db.flush()

    await remove_image(media, picture_id)
    logger.info("user_deleted", user_id=user_id, actor_id=actor_id, groups_reassigned=len(admin_group_ids))
