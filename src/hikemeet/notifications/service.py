"""Notification creation, bump, and unread-counter bookkeeping.

Rules:
1. Every stored notification increments the recipient's unread counter,
   muted or not. Mutes only suppress the push.
2. A repeated action resurfaces the existing notification (``bump``)
   instead of adding a duplicate: the dedup key is
   (recipient, actor, type, group_id, post_id).
3. Whoever flips a notification to read or deletes an unread one
   decrements the recipient's counter in the same transaction, so
   ``users.unread_notifications`` always equals the number of unread rows.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from hikemeet.db.models import Notification, PushToken, User
from hikemeet.notifications.push import PushGateway, PushMessage

logger = structlog.get_logger()

# Types the mobile client knows how to render and deep-link.
KNOWN_TYPES = frozenset({
    "friend_request",
    "friend_accept",
    "group_invite",
    "group_invite_accepted",
    "group_join_request",
    "group_join_approved",
    "group_joined",
    "group_updated",
    "post_like",
    "post_comment",
    "comment_like",
    "post_shared",
    "post_shared_in_group",
    "post_create_in_group",
    "report_created",
    "level_up",
})


# ---------------------------------------------------------------------------
# Unread counter
# ---------------------------------------------------------------------------


async def adjust_unread(db: AsyncSession, user_id: int, delta: int) -> None:
    """Atomically add ``delta`` to a user's unread counter, never below zero."""
    if delta == 0:
        return
    if delta > 0:
        value: Any = User.unread_notifications + delta
    else:
        value = case(
            (User.unread_notifications > -delta, User.unread_notifications + delta),
            else_=0,
        )
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(unread_notifications=value)
        .execution_options(synchronize_session=False)
    )


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    """Read the stored unread counter."""
    result = await db.execute(select(User.unread_notifications).where(User.id == user_id))
    return result.scalar_one_or_none() or 0


async def count_unread_rows(db: AsyncSession, user_id: int) -> int:
    """Count unread notification rows (the value the counter must track)."""
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


async def _is_muted(db: AsyncSession, user_id: int, type_: str, group_id: int | None) -> bool:
    result = await db.execute(
        select(User.muted_notification_types, User.muted_groups).where(User.id == user_id)
    )
    row = result.one_or_none()
    if row is None:
        return True
    muted_types, muted_groups = row
    if type_ in (muted_types or []):
        return True
    return group_id is not None and group_id in (muted_groups or [])


async def push_notification(db: AsyncSession, push: PushGateway | None, notification: Notification) -> int:
    """Send a stored notification to every device of its recipient.

    Returns the number of messages handed to the gateway (0 when muted).
    """
    if push is None:
        return 0
    if await _is_muted(db, notification.user_id, notification.type, notification.group_id):
        logger.debug("push_muted", user_id=notification.user_id, type=notification.type)
        return 0

    result = await db.execute(select(PushToken.token).where(PushToken.user_id == notification.user_id))
    tokens = list(result.scalars().all())
    if not tokens:
        return 0

    payload = dict(notification.data or {})
    payload.setdefault("notificationId", notification.id)
    payload.setdefault("type", notification.type)
    messages = [
        PushMessage(to=token, title=notification.title, body=notification.body, data=payload)
        for token in tokens
    ]
    await push.send(messages)
    return len(messages)


# ---------------------------------------------------------------------------
# Create / bump
# ---------------------------------------------------------------------------


async def notify(
    db: AsyncSession,
    push: PushGateway | None,
    *,
    to: int,
    type_: str,
    title: str,
    body: str = "",
    actor: int | None = None,
    data: dict[str, Any] | None = None,
    group_id: int | None = None,
    post_id: int | None = None,
    comment_id: int | None = None,
) -> Notification:
    """Store a notification, count it as unread, and push it unless muted."""
    payload = dict(data or {})
    if group_id is not None:
        payload.setdefault("groupId", group_id)
    if post_id is not None:
        payload.setdefault("postId", post_id)
    if comment_id is not None:
        payload.setdefault("commentId", comment_id)
    if actor is not None:
        payload.setdefault("fromUserId", actor)

    notification = Notification(
        user_id=to,
        actor_id=actor,
        type=type_,
        title=title,
        body=body,
        data=payload,
        group_id=group_id,
        post_id=post_id,
        comment_id=comment_id,
        read=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()
    await adjust_unread(db, to, 1)
    await push_notification(db, push, notification)
    logger.info("notification_created", to=to, type=type_, notification_id=notification.id)
    return notification


async def bump(db: AsyncSession, push: PushGateway | None, notification: Notification) -> Notification:
    """Resurface an existing notification: new timestamp, unread again, pushed again."""
    notification.created_at = datetime.now(timezone.utc)
    if notification.read:
        notification.read = False
        await adjust_unread(db, notification.user_id, 1)
    await db.flush()
    await push_notification(db, push, notification)
    logger.info(
        "notification_bumped", to=notification.user_id, type=notification.type, notification_id=notification.id,
    )
    return notification


def _dedup_criteria(
    to: int,
    type_: str,
    actor: int | None,
    group_id: int | None,
    post_id: int | None,
    comment_id: int | None = None,
) -> list[ColumnElement[bool]]:
    criteria: list[ColumnElement[bool]] = [Notification.user_id == to, Notification.type == type_]
    criteria.append(Notification.actor_id.is_(None) if actor is None else Notification.actor_id == actor)
    criteria.append(Notification.group_id.is_(None) if group_id is None else Notification.group_id == group_id)
    criteria.append(Notification.post_id.is_(None) if post_id is None else Notification.post_id == post_id)
    if comment_id is not None:
        criteria.append(Notification.comment_id == comment_id)
    return criteria


async def find_notification(
    db: AsyncSession,
    *,
    to: int,
    type_: str,
    actor: int | None = None,
    group_id: int | None = None,
    post_id: int | None = None,
    comment_id: int | None = None,
) -> Notification | None:
    """Most recent notification matching the dedup key."""
    result = await db.execute(
        select(Notification)
        .where(*_dedup_criteria(to, type_, actor, group_id, post_id, comment_id))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def notify_or_bump(
    db: AsyncSession,
    push: PushGateway | None,
    *,
    to: int,
    type_: str,
    title: str,
    body: str = "",
    actor: int | None = None,
    data: dict[str, Any] | None = None,
    group_id: int | None = None,
    post_id: int | None = None,
    comment_id: int | None = None,
) -> Notification:
    """Bump the existing notification for this dedup key, else create one."""
    existing = await find_notification(
        db, to=to, type_=type_, actor=actor, group_id=group_id, post_id=post_id, comment_id=comment_id,
    )
    if existing is not None:
        return await bump(db, push, existing)
    return await notify(
        db, push,
        to=to, type_=type_, title=title, body=body, actor=actor,
        data=data, group_id=group_id, post_id=post_id, comment_id=comment_id,
    )


# ---------------------------------------------------------------------------
# Read / delete with counter correction
# ---------------------------------------------------------------------------


async def mark_read(db: AsyncSession, notification: Notification) -> bool:
    """Flip one notification to read. Returns True if it was unread."""
    if notification.read:
        return False
    notification.read = True
    await adjust_unread(db, notification.user_id, -1)
    await db.flush()
    return True


async def get_notification(db: AsyncSession, user_id: int, notification_id: int) -> Notification | None:
    """Get a notification owned by ``user_id``."""
    result = await db.execute(
        select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: int) -> bool:
    """Mark a single notification as read. Returns True if found."""
    notification = await get_notification(db, user_id, notification_id)
    if notification is None:
        return False
    await mark_read(db, notification)
    return True


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    """Mark all unread notifications as read and zero the counter. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session="fetch")
    )
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(unread_notifications=0)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.rowcount


async def delete_notifications_where(db: AsyncSession, *criteria: ColumnElement[bool]) -> int:
    """Delete every notification matching ``criteria``.

    Unread rows are tallied per recipient first and each recipient's
    counter is decremented by exactly that many. Returns rows deleted.
    """
    result = await db.execute(select(Notification.user_id, Notification.read).where(*criteria))
    rows = result.all()
    if not rows:
        return 0

    unread = Counter(user_id for user_id, read in rows if not read)
    for user_id, count in sorted(unread.items()):
        await adjust_unread(db, user_id, -count)

    await db.execute(
        delete(Notification).where(*criteria).execution_options(synchronize_session="fetch")
    )
    await db.flush()
    return len(rows)


async def delete_notification(db: AsyncSession, user_id: int, notification_id: int) -> bool:
    """Delete one of the user's notifications. Returns True if found."""
    deleted = await delete_notifications_where(
        db, Notification.id == notification_id, Notification.user_id == user_id,
    )
    return deleted > 0


async def delete_all_notifications(db: AsyncSession, user_id: int) -> int:
    """Delete all of the user's notifications and zero the counter."""
    return await delete_notifications_where(db, Notification.user_id == user_id)


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
    unread_only: bool = False,
) -> tuple[list[Notification], int]:
    """Get user's notifications (paginated, most recent first)."""
    offset = (page - 1) * per_page
    criteria: list[ColumnElement[bool]] = [Notification.user_id == user_id]
    if unread_only:
        criteria.append(Notification.read.is_(False))

    total_result = await db.execute(select(func.count()).select_from(Notification).where(*criteria))
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(*criteria)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
