"""Search API endpoints: /api/v1/search."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.dependencies import get_current_user
from hikemeet.database import get_session
from hikemeet.db.models import User
from hikemeet.search.schemas import GroupSummary, SearchResponse, TripSummary
from hikemeet.search.service import SEARCH_KINDS, search_all
from hikemeet.users.schemas import ImageModel, public_user_response

router = APIRouter(prefix="/api/v1/search", tags=["Search"])


@router.get("", response_model=SearchResponse)
async def search_endpoint(
    q: str = Query(..., max_length=100),
    kind: Literal["all", "users", "trips", "groups"] = Query("all"),
    limit: int = Query(20, ge=1, le=50),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Substring search over users, trips and groups."""
    kinds = SEARCH_KINDS if kind == "all" else (kind,)
    found = await search_all(db, q, kinds, limit)
    return SearchResponse(
        query=q,
        users=[public_user_response(u) for u in found.get("users", [])],
        trips=[
            TripSummary(
                id=t.id,
                name=t.name,
                location_address=t.location_address,
                main_image=ImageModel(**t.main_image) if t.main_image else None,
                tags=list(t.tags or []),
            )
            for t in found.get("trips", [])
        ],
        groups=[
            GroupSummary(
                id=g.id,
                name=g.name,
                status=g.status,
                privacy=g.privacy,
                trip_id=g.trip_id,
                main_image=ImageModel(**g.main_image) if g.main_image else None,
            )
            for g in found.get("groups", [])
        ],
    )
