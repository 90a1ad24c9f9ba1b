"""EXP grants and rank recomputation.

After a grant:
1. ``users.exp`` is updated atomically (it may go negative)
2. The rank title is recomputed from the new total
3. If the rank went up, the user gets a ``level_up`` notification
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.db.models import User
from hikemeet.gamification.ranks import compute_rank
from hikemeet.notifications.push import PushGateway
from hikemeet.notifications.service import notify

logger = logging.getLogger(__name__)


async def grant_exp(
    db: AsyncSession,
    push: PushGateway | None,
    user_id: int,
    amount: int,
    reason: str,
) -> int:
    """Add ``amount`` (negative for penalties) to a user's EXP. Returns the new total."""
    if amount == 0:
        result = await db.execute(select(User.exp).where(User.id == user_id))
        return result.scalar_one()

    old_result = await db.execute(select(User.exp, User.rank).where(User.id == user_id))
    row = old_result.one_or_none()
    if row is None:
        logger.warning("EXP grant for missing user %d (%s)", user_id, reason)
        return 0
    old_exp, old_rank = row

    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(exp=User.exp + amount)
        .execution_options(synchronize_session=False)
    )
    new_result = await db.execute(select(User.exp).where(User.id == user_id))
    new_exp: int = new_result.scalar_one()

    old_info = compute_rank(old_exp)
    new_info = compute_rank(new_exp)
    if new_info["title"] != old_rank:
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(rank=new_info["title"])
            .execution_options(synchronize_session=False)
        )

    logger.debug("EXP %+d for user %d (%s): %d -> %d", amount, user_id, reason, old_exp, new_exp)

    if new_info["level"] > old_info["level"]:
        await notify(
            db, push,
            to=user_id,
            type_="level_up",
            title="Rank up!",
            body=f"You are now {new_info['title']}",
            data={"previousRank": old_info["title"], "newRank": new_info["title"]},
        )
    return new_exp
