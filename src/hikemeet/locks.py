"""Row locks that serialise mutations of one aggregate.

Every read-check-write workflow on a group or on a pair of users first
takes ``SELECT ... FOR UPDATE`` on the aggregate's root row(s) and holds
it until the request commits. User rows are always locked in ascending id
order so two requests touching the same pair cannot deadlock.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.db.models import Group, User
from hikemeet.errors import NotFoundError


async def lock_group(db: AsyncSession, group_id: int) -> Group:
    """Lock and return a group row. Raises NotFoundError if it does not exist."""
    result = await db.execute(
        select(Group).where(Group.id == group_id).with_for_update().execution_options(populate_existing=True)
    )
    group = result.scalar_one_or_none()
    if group is None:
        raise NotFoundError("Group not found")
    return group


async def lock_users(db: AsyncSession, *user_ids: int) -> dict[int, User]:
    """Lock user rows in ascending id order. Raises NotFoundError if any is missing."""
    wanted = sorted(set(user_ids))
    result = await db.execute(
        select(User)
        .where(User.id.in_(wanted))
        .order_by(User.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    users = {user.id: user for user in result.scalars().all()}
    if len(users) != len(wanted):
        raise NotFoundError("User not found")
    return users
