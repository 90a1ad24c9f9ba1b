"""Group membership and pending-queue workflow.

Rules:
- The creator is the first admin member
- A user is in at most one of {members, pending} per group
- Pending rows are proposals: ``invite`` (by an admin) or ``request`` (by the user)
- Full groups (members >= max_members) accept no one new
- Completed groups accept no one new
- Every mutation locks the group row first and the caller commits once
- When the last admin leaves, the longest-serving member becomes admin
- Removing a member sends no notification
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.config import get_settings
from hikemeet.db.base import as_utc
from hikemeet.db.models import Group, GroupMember, GroupPending, Notification, Post, Trip, User
from hikemeet.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from hikemeet.gamification.exp_service import grant_exp
from hikemeet.locks import lock_group
from hikemeet.media.host import MediaHost, remove_image
from hikemeet.notifications.push import PushGateway
from hikemeet.notifications.service import (
    delete_notifications_where,
    mark_read,
    notify,
    notify_or_bump,
)
from hikemeet.posts.cascade import purge_posts

logger = structlog.get_logger()

UPDATABLE_FIELDS = (
    "name",
    "trip_id",
    "max_members",
    "privacy",
    "difficulty",
    "description",
    "scheduled_start",
    "scheduled_end",
    "meeting_point",
    "embarked_at",
)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_group(db: AsyncSession, group_id: int) -> Group:
    """Get a group or raise NotFoundError."""
    result = await db.execute(select(Group).where(Group.id == group_id))
    group = result.scalar_one_or_none()
    if group is None:
        raise NotFoundError("Group not found")
    return group


async def get_membership(db: AsyncSession, group_id: int, user_id: int) -> GroupMember | None:
    result = await db.execute(
        select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_pending(db: AsyncSession, group_id: int, user_id: int) -> GroupPending | None:
    result = await db.execute(
        select(GroupPending).where(GroupPending.group_id == group_id, GroupPending.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def count_members(db: AsyncSession, group_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group_id)
    )
    return result.scalar_one()


async def get_admin_ids(db: AsyncSession, group_id: int) -> list[int]:
    """Admin user ids, longest-serving first."""
    result = await db.execute(
        select(GroupMember.user_id)
        .where(GroupMember.group_id == group_id, GroupMember.role == "admin")
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    )
    return list(result.scalars().all())


async def get_member_ids(db: AsyncSession, group_id: int) -> list[int]:
    result = await db.execute(
        select(GroupMember.user_id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    )
    return list(result.scalars().all())


async def is_admin(db: AsyncSession, group_id: int, user_id: int) -> bool:
    membership = await get_membership(db, group_id, user_id)
    return membership is not None and membership.role == "admin"


async def _require_admin(db: AsyncSession, group_id: int, user_id: int) -> None:
    if not await is_admin(db, group_id, user_id):
        raise ForbiddenError("Only group admins can do this")


async def _ensure_open(db: AsyncSession, group: Group) -> None:
    if group.status == "completed":
        raise ValidationError("This group has already completed its hike")
    if await count_members(db, group.id) >= group.max_members:
        raise ValidationError("This group is full")


async def _user_name(db: AsyncSession, user_id: int) -> str:
    result = await db.execute(select(User.first_name, User.last_name, User.username).where(User.id == user_id))
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("User not found")
    first, last, username = row
    return f"{first} {last}".strip() or username


async def list_groups(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 20,
    status: str | None = None,
    privacy: str | None = None,
    trip_id: int | None = None,
    member_id: int | None = None,
) -> tuple[list[Group], int]:
    """Groups, soonest scheduled first (paginated)."""
    query = select(Group)
    if status is not None:
        query = query.where(Group.status == status)
    if privacy is not None:
        query = query.where(Group.privacy == privacy)
    if trip_id is not None:
        query = query.where(Group.trip_id == trip_id)
    if member_id is not None:
        query = query.join(GroupMember, GroupMember.group_id == Group.id).where(GroupMember.user_id == member_id)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar_one()

    result = await db.execute(
        query.order_by(Group.scheduled_start.asc(), Group.id.desc()).offset((page - 1) * per_page).limit(per_page)
    )
    return list(result.scalars().all()), total


async def list_members(db: AsyncSession, group_id: int) -> list[tuple[GroupMember, User]]:
    """Members in join order with their user rows."""
    await get_group(db, group_id)
    result = await db.execute(
        select(GroupMember, User)
        .join(User, User.id == GroupMember.user_id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    )
    return [(member, user) for member, user in result.all()]


async def list_pending(db: AsyncSession, group_id: int, viewer_id: int) -> list[tuple[GroupPending, User]]:
    """Pending queue in creation order (admins only)."""
    await get_group(db, group_id)
    await _require_admin(db, group_id, viewer_id)
    result = await db.execute(
        select(GroupPending, User)
        .join(User, User.id == GroupPending.user_id)
        .where(GroupPending.group_id == group_id)
        .order_by(GroupPending.created_at.asc(), GroupPending.id.asc())
    )
    return [(entry, user) for entry, user in result.all()]


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------


def _check_schedule(start: datetime | None, end: datetime | None) -> None:
    start, end = as_utc(start), as_utc(end)
    if start is not None and end is not None and end <= start:
        raise ValidationError("Scheduled end must be after scheduled start")


async def _check_trip(db: AsyncSession, trip_id: int | None) -> None:
    if trip_id is None:
        return
    result = await db.execute(select(Trip.id).where(Trip.id == trip_id))
    if result.first() is None:
        raise NotFoundError("Trip not found")


async def create_group(
    db: AsyncSession,
    push: PushGateway | None,
    creator_id: int,
    fields: dict[str, Any],
) -> Group:
    """Create a group. The creator becomes its sole admin."""
    _check_schedule(fields.get("scheduled_start"), fields.get("scheduled_end"))
    await _check_trip(db, fields.get("trip_id"))

    group = Group(
        created_by=creator_id,
        status="planned",
        **{key: fields[key] for key in UPDATABLE_FIELDS if key in fields},
    )
    db.add(group)
    await db.flush()

    db.add(GroupMember(group_id=group.id, user_id=creator_id, role="admin"))
    await db.flush()

    await grant_exp(db, push, creator_id, get_settings().exp_group_create, "group_create")
    logger.info("group_created", group_id=group.id, creator_id=creator_id)
    return group


async def update_group(
    db: AsyncSession,
    push: PushGateway | None,
    group_id: int,
    user_id: int,
    changes: dict[str, Any],
) -> Group:
    """Admin edit. Other members get a ``group_updated`` notification."""
    group = await lock_group(db, group_id)
    await _require_admin(db, group_id, user_id)

    if "max_members" in changes and changes["max_members"] is not None:
        if changes["max_members"] < await count_members(db, group_id):
            raise ValidationError("Capacity cannot be lower than the current member count")
    _check_schedule(
        changes.get("scheduled_start", group.scheduled_start),
        changes.get("scheduled_end", group.scheduled_end),
    )
    await _check_trip(db, changes.get("trip_id"))

    for key in UPDATABLE_FIELDS:
        if key in changes and changes[key] is not None:
            setattr(group, key, changes[key])
    await db.flush()

    for member_id in await get_member_ids(db, group_id):
        if member_id == user_id:
            continue
        await notify(
            db, push,
            to=member_id,
            type_="group_updated",
            title="Group updated",
            body=f"Details of {group.name} have changed",
            actor=user_id,
            group_id=group_id,
        )
    logger.info("group_updated", group_id=group_id, user_id=user_id, fields=sorted(changes))
    return group


async def delete_group(db: AsyncSession, media: MediaHost | None, group_id: int, user_id: int) -> None:
    """Creator-only delete.

    Group posts go through the post cascade, every notification about the
    group is deleted with counter correction, members and pending rows go
    with the group row, and the group image is dropped from the media host.
    """
    group = await lock_group(db, group_id)
    if group.created_by != user_id:
        raise ForbiddenError("Only the group creator can delete the group")

    await purge_posts(db, media, Post.group_id == group_id)
    removed = await delete_notifications_where(db, Notification.group_id == group_id)

    image_id = (group.main_image or {}).get("image_id")
    await db.delete(group)
    await db.flush()

    await remove_image(media, image_id)
    logger.info("group_deleted", group_id=group_id, user_id=user_id, notifications_removed=removed)


async def set_group_image(
    db: AsyncSession,
    media: MediaHost,
    group_id: int,
    user_id: int,
    data: bytes,
    filename: str,
) -> Group:
    """Admin uploads a new group picture; the previous one is dropped."""
    group = await lock_group(db, group_id)
    await _require_admin(db, group_id, user_id)
    uploaded = await media.upload(data, "group_images", filename=filename)
    previous = (group.main_image or {}).get("image_id")
    group.main_image = uploaded.as_image()
    await db.flush()
    await remove_image(media, previous)
    return group


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------


def _invite_criteria(group_id: int, invitee_id: int) -> list:
    return [
        Notification.user_id == invitee_id,
        Notification.type == "group_invite",
        Notification.group_id == group_id,
    ]


async def invite(
    db: AsyncSession,
    push: PushGateway | None,
    group_id: int,
    admin_id: int,
    invitee_id: int,
) -> GroupPending:
    """Admin invites a user. The invite notification is bumped if one exists."""
    group = await lock_group(db, group_id)
    await _require_admin(db, group_id, admin_id)
    inviter_name = await _user_name(db, admin_id)
    await _user_name(db, invitee_id)

    if await get_membership(db, group_id, invitee_id) is not None:
        raise ConflictError("User is already a member of this group")
    if await get_pending(db, group_id, invitee_id) is not None:
        raise ConflictError("User already has a pending invite or request for this group")
    await _ensure_open(db, group)

    entry = GroupPending(group_id=group_id, user_id=invitee_id, origin="invite", status="pending", invited_by=admin_id)
    db.add(entry)
    await db.flush()

    await notify_or_bump(
        db, push,
        to=invitee_id,
        type_="group_invite",
        title="Group invitation",
        body=f"{inviter_name} invited you to join {group.name}",
        actor=admin_id,
        group_id=group_id,
    )
    logger.info("group_invite_sent", group_id=group_id, admin_id=admin_id, invitee_id=invitee_id)
    return entry


async def cancel_invite(db: AsyncSession, group_id: int, actor_id: int, invitee_id: int) -> None:
    """Withdraw (admin) or decline (invitee) an invite.

    The invitee's own cancellation keeps the notification, marked read.
    An admin's cancellation deletes it.
    """
    await lock_group(db, group_id)
    entry = await get_pending(db, group_id, invitee_id)
    if entry is None or entry.origin != "invite":
        raise NotFoundError("No pending invite for this user")

    if actor_id == invitee_id:
        result = await db.execute(select(Notification).where(*_invite_criteria(group_id, invitee_id)))
        for notification in result.scalars().all():
            await mark_read(db, notification)
    elif await is_admin(db, group_id, actor_id):
        await delete_notifications_where(db, *_invite_criteria(group_id, invitee_id))
    else:
        raise ForbiddenError("Only the invitee or a group admin can cancel this invite")

    await db.delete(entry)
    await db.flush()
    logger.info("group_invite_cancelled", group_id=group_id, actor_id=actor_id, invitee_id=invitee_id)


async def accept_invite(db: AsyncSession, push: PushGateway | None, group_id: int, user_id: int) -> GroupMember:
    """Invitee accepts: pending row becomes a companion membership."""
    group = await lock_group(db, group_id)
    existing = await get_membership(db, group_id, user_id)
    entry = await get_pending(db, group_id, user_id)

    if existing is not None:
        if entry is not None:
            await db.delete(entry)
            await db.flush()
        return existing
    if entry is None or entry.origin != "invite":
        raise NotFoundError("No pending invite for this group")
    await _ensure_open(db, group)

    inviter_id = entry.invited_by or group.created_by
    await db.delete(entry)
    member = GroupMember(group_id=group_id, user_id=user_id, role="companion")
    db.add(member)
    await db.flush()

    result = await db.execute(select(Notification).where(*_invite_criteria(group_id, user_id)))
    for notification in result.scalars().all():
        await mark_read(db, notification)

    if inviter_id is not None and inviter_id != user_id:
        await notify(
            db, push,
            to=inviter_id,
            type_="group_invite_accepted",
            title="Invite accepted",
            body=f"{await _user_name(db, user_id)} joined {group.name}",
            actor=user_id,
            group_id=group_id,
        )

    await grant_exp(db, push, user_id, get_settings().exp_group_join, "group_join")
    logger.info("group_invite_accepted", group_id=group_id, user_id=user_id, inviter_id=inviter_id)
    return member


# ---------------------------------------------------------------------------
# Join requests
# ---------------------------------------------------------------------------


def _join_request_criteria(group_id: int, requester_id: int) -> list:
    return [
        Notification.type == "group_join_request",
        Notification.actor_id == requester_id,
        Notification.group_id == group_id,
    ]


async def join_group(db: AsyncSession, push: PushGateway | None, group_id: int, user_id: int) -> str:
    """Join a public group directly or ask to join a private one.

    Returns ``"joined"`` or ``"requested"``.
    """
    group = await lock_group(db, group_id)
    if await get_membership(db, group_id, user_id) is not None:
        raise ConflictError("You are already a member of this group")
    if await get_pending(db, group_id, user_id) is not None:
        raise ConflictError("You already have a pending invite or request for this group")
    await _ensure_open(db, group)

    name = await _user_name(db, user_id)
    admin_ids = await get_admin_ids(db, group_id)

    if group.privacy == "public":
        db.add(GroupMember(group_id=group_id, user_id=user_id, role="companion"))
        await db.flush()
        await grant_exp(db, push, user_id, get_settings().exp_group_join, "group_join")
        for admin_id in admin_ids:
            await notify(
                db, push,
                to=admin_id,
                type_="group_joined",
                title="New member",
                body=f"{name} joined {group.name}",
                actor=user_id,
                group_id=group_id,
            )
        logger.info("group_joined", group_id=group_id, user_id=user_id)
        return "joined"

    db.add(GroupPending(group_id=group_id, user_id=user_id, origin="request", status="pending"))
    await db.flush()
    for admin_id in admin_ids:
        await notify_or_bump(
            db, push,
            to=admin_id,
            type_="group_join_request",
            title="Join request",
            body=f"{name} asked to join {group.name}",
            actor=user_id,
            group_id=group_id,
        )
    logger.info("group_join_requested", group_id=group_id, user_id=user_id)
    return "requested"


async def approve_join(
    db: AsyncSession,
    push: PushGateway | None,
    group_id: int,
    admin_id: int,
    user_id: int,
) -> GroupMember:
    """Admin approves a join request.

    Idempotent on membership. The approving admin's own join-request
    notification is kept and marked read; every other admin's copy is
    deleted, unread ones decrementing their recipient's counter.
    """
    group = await lock_group(db, group_id)
    await _require_admin(db, group_id, admin_id)

    existing = await get_membership(db, group_id, user_id)
    if existing is not None:
        return existing

    entry = await get_pending(db, group_id, user_id)
    if entry is None or entry.origin != "request":
        raise NotFoundError("No pending join request from this user")
    await _ensure_open(db, group)

    await db.delete(entry)
    member = GroupMember(group_id=group_id, user_id=user_id, role="companion")
    db.add(member)
    await db.flush()

    await grant_exp(db, push, user_id, get_settings().exp_group_join, "group_join")
    await notify(
        db, push,
        to=user_id,
        type_="group_join_approved",
        title="Request approved",
        body=f"You are now a member of {group.name}",
        actor=admin_id,
        group_id=group_id,
    )

    criteria = _join_request_criteria(group_id, user_id)
    own = await db.execute(select(Notification).where(*criteria, Notification.user_id == admin_id))
    for notification in own.scalars().all():
        await mark_read(db, notification)
    removed = await delete_notifications_where(db, *criteria, Notification.user_id != admin_id)

    logger.info("group_join_approved", group_id=group_id, admin_id=admin_id, user_id=user_id, stale_removed=removed)
    return member


async def cancel_join(db: AsyncSession, group_id: int, actor_id: int, requester_id: int) -> None:
    """Withdraw (requester) or decline (admin) a join request.

    1. Requester cancels: every admin's request notification is deleted
    2. Admin declines: their own notification is marked read, the other
       admins' copies are deleted
    3. Anyone else: forbidden
    """
    await lock_group(db, group_id)
    entry = await get_pending(db, group_id, requester_id)
    if entry is None or entry.origin != "request":
        raise NotFoundError("No pending join request for this user")

    criteria = _join_request_criteria(group_id, requester_id)
    if actor_id == requester_id:
        await delete_notifications_where(db, *criteria)
    elif await is_admin(db, group_id, actor_id):
        own = await db.execute(select(Notification).where(*criteria, Notification.user_id == actor_id))
        for notification in own.scalars().all():
            await mark_read(db, notification)
        await delete_notifications_where(db, *criteria, Notification.user_id != actor_id)
    else:
        raise ForbiddenError("Only the requester or a group admin can cancel this request")

    await db.delete(entry)
    await db.flush()
    logger.info("group_join_cancelled", group_id=group_id, actor_id=actor_id, requester_id=requester_id)


# ---------------------------------------------------------------------------
# Leaving
# ---------------------------------------------------------------------------


async def ensure_admin(db: AsyncSession, group_id: int) -> int | None:
    """Promote the longest-serving member if the group has no admin left.

    Returns the promoted user id, or None when nothing changed.
    """
    if await get_admin_ids(db, group_id):
        return None
    result = await db.execute(
        select(GroupMember)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
        .limit(1)
    )
    successor = result.scalar_one_or_none()
    if successor is None:
        return None
    successor.role = "admin"
    await db.flush()
    logger.info("group_admin_promoted", group_id=group_id, user_id=successor.user_id)
    return successor.user_id


async def remove_member(db: AsyncSession, group_id: int, actor_id: int, target_id: int) -> None:
    """Leave (self) or kick (admin). No notification is sent."""
    await lock_group(db, group_id)
    if actor_id != target_id:
        await _require_admin(db, group_id, actor_id)

    member = await get_membership(db, group_id, target_id)
    if member is None:
        raise NotFoundError("User is not a member of this group")

    await db.delete(member)
    await db.flush()
    await ensure_admin(db, group_id)
    logger.info("group_member_removed", group_id=group_id, actor_id=actor_id, target_id=target_id)
