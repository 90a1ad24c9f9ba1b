"""Friend-relationship workflow.

Each ordered pair (A, B) is stored as one ``friendships`` row per side.

Rules:
- send: A != B, no row on either side, B has not blocked A
- cancel / decline / remove: both sides are cleaned up together
- accept: requires B:request_received and A:request_sent, flips both to accepted
- block: unilateral, A's row becomes blocked and B's row for A is dropped
- Both user rows are locked (ascending id) before any check
"""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.config import get_settings
from hikemeet.db.models import Friendship, Notification, User
from hikemeet.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from hikemeet.gamification.exp_service import grant_exp
from hikemeet.locks import lock_users
from hikemeet.notifications.push import PushGateway
from hikemeet.notifications.service import (
    delete_notifications_where,
    find_notification,
    mark_read,
    notify,
    notify_or_bump,
)

logger = structlog.get_logger()

STATUSES = ("pending", "request_sent", "request_received", "accepted", "blocked")


async def get_friendship(db: AsyncSession, user_id: int, peer_id: int) -> Friendship | None:
    """``user_id``'s row for ``peer_id``, if any."""
    result = await db.execute(
        select(Friendship).where(Friendship.user_id == user_id, Friendship.peer_id == peer_id)
    )
    return result.scalar_one_or_none()


async def get_status(db: AsyncSession, user_id: int, peer_id: int) -> str:
    """Status of ``peer_id`` in ``user_id``'s friend list, or ``none``."""
    row = await get_friendship(db, user_id, peer_id)
    return row.status if row else "none"


async def _drop_rows(db: AsyncSession, a: int, b: int) -> None:
    await db.execute(
        delete(Friendship)
        .where(
            ((Friendship.user_id == a) & (Friendship.peer_id == b))
            | ((Friendship.user_id == b) & (Friendship.peer_id == a))
        )
        .execution_options(synchronize_session="fetch")
    )


async def _delete_request_notification(db: AsyncSession, requester_id: int, receiver_id: int) -> int:
    return await delete_notifications_where(
        db,
        Notification.user_id == receiver_id,
        Notification.actor_id == requester_id,
        Notification.type == "friend_request",
    )


def _display_name(user: User) -> str:
    full = f"{user.first_name} {user.last_name}".strip()
    return full or user.username


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def send_request(db: AsyncSession, push: PushGateway | None, sender_id: int, receiver_id: int) -> Friendship:
    """A asks B to be friends."""
    if sender_id == receiver_id:
        raise ValidationError("You cannot send a friend request to yourself")

    users = await lock_users(db, sender_id, receiver_id)

    receiver_side = await get_friendship(db, receiver_id, sender_id)
    if receiver_side is not None and receiver_side.status == "blocked":
        raise ForbiddenError("You cannot send a friend request to this user")
    sender_side = await get_friendship(db, sender_id, receiver_id)
    if sender_side is not None or receiver_side is not None:
        raise ConflictError("A relationship with this user already exists")

    sent = Friendship(user_id=sender_id, peer_id=receiver_id, status="request_sent")
    db.add(sent)
    db.add(Friendship(user_id=receiver_id, peer_id=sender_id, status="request_received"))
    await db.flush()

    sender = users[sender_id]
    await notify_or_bump(
        db, push,
        to=receiver_id,
        type_="friend_request",
        title="New friend request",
        body=f"{_display_name(sender)} sent you a friend request",
        actor=sender_id,
    )
    logger.info("friend_request_sent", sender_id=sender_id, receiver_id=receiver_id)
    return sent


async def cancel_request(db: AsyncSession, sender_id: int, receiver_id: int) -> None:
    """A withdraws a request it sent to B."""
    await lock_users(db, sender_id, receiver_id)
    sent = await get_friendship(db, sender_id, receiver_id)
    if sent is None or sent.status != "request_sent":
        raise NotFoundError("No pending friend request to this user")

    await _drop_rows(db, sender_id, receiver_id)
    await _delete_request_notification(db, sender_id, receiver_id)
    logger.info("friend_request_cancelled", sender_id=sender_id, receiver_id=receiver_id)


async def decline_request(db: AsyncSession, receiver_id: int, sender_id: int) -> None:
    """B turns down A's request."""
    await lock_users(db, sender_id, receiver_id)
    received = await get_friendship(db, receiver_id, sender_id)
    if received is None or received.status != "request_received":
        raise NotFoundError("No pending friend request from this user")

    await _drop_rows(db, sender_id, receiver_id)
    await _delete_request_notification(db, sender_id, receiver_id)
    logger.info("friend_request_declined", sender_id=sender_id, receiver_id=receiver_id)


async def accept_request(
    db: AsyncSession, push: PushGateway | None, receiver_id: int, sender_id: int,
) -> Friendship:
    """B accepts A's request. Both sides become ``accepted``."""
    users = await lock_users(db, sender_id, receiver_id)
    received = await get_friendship(db, receiver_id, sender_id)
    sent = await get_friendship(db, sender_id, receiver_id)
    if received is None or received.status != "request_received":
        raise NotFoundError("No pending friend request from this user")
    if sent is None or sent.status != "request_sent":
        raise ConflictError("Friend request is out of sync")

    received.status = "accepted"
    sent.status = "accepted"
    await db.flush()

    request_note = await find_notification(db, to=receiver_id, type_="friend_request", actor=sender_id)
    if request_note is not None:
        await mark_read(db, request_note)

    await notify(
        db, push,
        to=sender_id,
        type_="friend_accept",
        title="Friend request accepted",
        body=f"{_display_name(users[receiver_id])} accepted your friend request",
        actor=receiver_id,
    )

    settings = get_settings()
    await grant_exp(db, push, receiver_id, settings.exp_friend_accept, "friend_accept")
    await grant_exp(db, push, sender_id, settings.exp_friend_accept, "friend_accept")
    logger.info("friend_request_accepted", sender_id=sender_id, receiver_id=receiver_id)
    return received


async def remove_friend(db: AsyncSession, user_id: int, friend_id: int) -> None:
    """Unfriend. Both rows go."""
    await lock_users(db, user_id, friend_id)
    row = await get_friendship(db, user_id, friend_id)
    if row is None or row.status != "accepted":
        raise NotFoundError("This user is not your friend")
    await _drop_rows(db, user_id, friend_id)
    logger.info("friend_removed", user_id=user_id, friend_id=friend_id)


async def block_user(db: AsyncSession, blocker_id: int, target_id: int) -> Friendship:
    """Block ``target_id``. The target is not told and loses its row for the blocker."""
    if blocker_id == target_id:
        raise ValidationError("You cannot block yourself")
    await lock_users(db, blocker_id, target_id)

    row = await get_friendship(db, blocker_id, target_id)
    if row is None:
        row = Friendship(user_id=blocker_id, peer_id=target_id, status="blocked")
        db.add(row)
    else:
        row.status = "blocked"

    await db.execute(
        delete(Friendship)
        .where(Friendship.user_id == target_id, Friendship.peer_id == blocker_id)
        .execution_options(synchronize_session="fetch")
    )
    await _delete_request_notification(db, target_id, blocker_id)
    await _delete_request_notification(db, blocker_id, target_id)
    await db.flush()
    logger.info("user_blocked", blocker_id=blocker_id, target_id=target_id)
    return row


async def unblock_user(db: AsyncSession, blocker_id: int, target_id: int) -> None:
    await lock_users(db, blocker_id, target_id)
    row = await get_friendship(db, blocker_id, target_id)
    if row is None or row.status != "blocked":
        raise NotFoundError("This user is not blocked")
    await db.delete(row)
    await db.flush()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def list_friendships(
    db: AsyncSession, user_id: int, status: str | None = None,
) -> list[tuple[Friendship, User]]:
    """The user's friend list in insertion order, optionally filtered by status."""
    if status is not None and status not in STATUSES:
        raise ValidationError(f"Unknown friendship status: {status}")
    query = (
        select(Friendship, User)
        .join(User, User.id == Friendship.peer_id)
        .where(Friendship.user_id == user_id)
        .order_by(Friendship.created_at.asc(), Friendship.id.asc())
    )
    if status is not None:
        query = query.where(Friendship.status == status)
    result = await db.execute(query)
    return [(row, peer) for row, peer in result.all()]
