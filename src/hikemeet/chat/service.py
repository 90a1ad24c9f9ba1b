"""Chat partner list.

Message delivery lives in the client's chat backend; this service keeps
only the list of people each user has a conversation with.

Rules:
- open: adds the partner to both users' lists, idempotent
- open is refused when either side has blocked the other
- close: removes the partner from the caller's list only
"""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.db.models import ChatPartner, Friendship, User
from hikemeet.errors import ForbiddenError, ValidationError
from hikemeet.locks import lock_users

logger = structlog.get_logger()


async def list_partners(db: AsyncSession, user_id: int) -> list[User]:
    """Partners in the order the chats were opened."""
    result = await db.execute(
        select(User)
        .join(ChatPartner, ChatPartner.partner_id == User.id)
        .where(ChatPartner.user_id == user_id)
        .order_by(ChatPartner.created_at.asc(), ChatPartner.id.asc())
    )
    return list(result.scalars().all())


async def _is_blocked(db: AsyncSession, a: int, b: int) -> bool:
    result = await db.execute(
        select(Friendship.id).where(
            Friendship.status == "blocked",
            ((Friendship.user_id == a) & (Friendship.peer_id == b))
            | ((Friendship.user_id == b) & (Friendship.peer_id == a)),
        )
    )
    return result.first() is not None


async def open_chat(db: AsyncSession, user_id: int, partner_id: int) -> list[User]:
    if user_id == partner_id:
        raise ValidationError("You cannot open a chat with yourself")
    await lock_users(db, user_id, partner_id)
    if await _is_blocked(db, user_id, partner_id):
        raise ForbiddenError("You cannot chat with this user")

    existing = await db.execute(
        select(ChatPartner.user_id).where(
            ((ChatPartner.user_id == user_id) & (ChatPartner.partner_id == partner_id))
            | ((ChatPartner.user_id == partner_id) & (ChatPartner.partner_id == user_id))
        )
    )
    have = set(existing.scalars().all())
    for owner, other in ((user_id, partner_id), (partner_id, user_id)):
        if owner not in have:
            db.add(ChatPartner(user_id=owner, partner_id=other))
    await db.flush()
    logger.info("chat_opened", user_id=user_id, partner_id=partner_id)
    return await list_partners(db, user_id)


async def close_chat(db: AsyncSession, user_id: int, partner_id: int) -> list[User]:
    """Drop ``partner_id`` from the caller's list. The partner keeps theirs."""
    await db.execute(
        delete(ChatPartner)
        .where(ChatPartner.user_id == user_id, ChatPartner.partner_id == partner_id)
        .execution_options(synchronize_session="fetch")
    )
    await db.flush()
    return await list_partners(db, user_id)
