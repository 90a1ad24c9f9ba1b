"""Case-insensitive substring search over users, trips and groups."""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.db.models import Group, Trip, User

SEARCH_KINDS = ("users", "trips", "groups")


def _pattern(term: str) -> str:
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _matches(column, pattern: str):
    return func.lower(column).like(pattern, escape="\\")


async def search_users(db: AsyncSession, term: str, limit: int = 20) -> list[User]:
    pattern = _pattern(term)
    result = await db.execute(
        select(User)
        .where(or_(
            _matches(User.username, pattern),
            _matches(User.first_name, pattern),
            _matches(User.last_name, pattern),
        ))
        .order_by(User.username.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def search_trips(db: AsyncSession, term: str, limit: int = 20) -> list[Trip]:
    pattern = _pattern(term)
    result = await db.execute(
        select(Trip)
        .where(or_(_matches(Trip.name, pattern), _matches(Trip.location_address, pattern)))
        .order_by(Trip.name.asc(), Trip.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def search_groups(db: AsyncSession, term: str, limit: int = 20) -> list[Group]:
    pattern = _pattern(term)
    result = await db.execute(
        select(Group)
        .where(_matches(Group.name, pattern))
        .order_by(Group.name.asc(), Group.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def search_all(
    db: AsyncSession,
    term: str,
    kinds: tuple[str, ...] = SEARCH_KINDS,
    limit: int = 20,
) -> dict[str, list]:
    """Run the requested searches. Blank terms return nothing."""
    results: dict[str, list] = {kind: [] for kind in kinds}
    term = term.strip()
    if not term:
        return results
    if "users" in kinds:
        results["users"] = await search_users(db, term, limit)
    if "trips" in kinds:
        results["trips"] = await search_trips(db, term, limit)
    if "groups" in kinds:
        results["groups"] = await search_groups(db, term, limit)
    return results
