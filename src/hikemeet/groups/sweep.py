"""Periodic group status sweep.

1. ``planned -> active`` once ``scheduled_start`` or ``embarked_at`` has passed
2. ``active -> completed`` once ``scheduled_end`` has passed, writing a
   ``trip_history`` row for every member (idempotent per user and group)

Rows are claimed with ``FOR UPDATE SKIP LOCKED`` in bounded batches, so two
sweeps never work the same group. Each completion commits on its own; a
group that fails is rolled back and logged and the rest of the batch continues.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.db.base import utcnow
from hikemeet.db.models import Group, GroupMember, TripHistory

logger = logging.getLogger(__name__)


async def _claim(db: AsyncSession, *criteria, limit: int) -> list[Group]:
    result = await db.execute(
        select(Group)
        .where(*criteria)
        .order_by(Group.id)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def backfill_trip_history(db: AsyncSession, group: Group, completed_at: datetime) -> int:
    """Add a history row for each member that does not have one yet. Returns rows added."""
    members = await db.execute(select(GroupMember.user_id).where(GroupMember.group_id == group.id))
    existing = await db.execute(select(TripHistory.user_id).where(TripHistory.group_id == group.id))
    done = set(existing.scalars().all())

    added = 0
    for user_id in members.scalars().all():
        if user_id in done:
            continue
        db.add(TripHistory(user_id=user_id, trip_id=group.trip_id, group_id=group.id, completed_at=completed_at))
        added += 1
    await db.flush()
    return added


async def run_status_sweep(db: AsyncSession, now: datetime | None = None, batch_size: int = 200) -> dict[str, int]:
    """One sweep iteration. Commits as it goes."""
    now = now or utcnow()
    stats = {"activated": 0, "completed": 0, "history": 0, "failed": 0}

    due_start = or_(Group.scheduled_start <= now, Group.embarked_at <= now)
    for group in await _claim(db, Group.status == "planned", due_start, limit=batch_size):
        group.status = "active"
        stats["activated"] += 1
    await db.commit()

    due = await db.execute(
        select(Group.id)
        .where(Group.status == "active", Group.scheduled_end <= now)
        .order_by(Group.id)
        .limit(batch_size)
    )
    for group_id in due.scalars().all():
        try:
            claimed = await _claim(db, Group.id == group_id, Group.status == "active", limit=1)
            if not claimed:
                await db.rollback()
                continue
            group = claimed[0]
            group.status = "completed"
            added = await backfill_trip_history(db, group, now)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Status sweep failed for group %d", group_id)
            stats["failed"] += 1
            continue
        stats["completed"] += 1
        stats["history"] += added

    if any(stats.values()):
        logger.info(
            "Status sweep: %d activated, %d completed, %d history rows, %d failed",
            stats["activated"], stats["completed"], stats["history"], stats["failed"],
        )
    return stats
