"""Admin API endpoints: /api/v1/admin/*. Every route requires the admin role."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.admin.schemas import AdminUserListResponse, SetRoleRequest
from hikemeet.admin.service import delete_user, list_users, set_role
from hikemeet.auth.dependencies import require_admin
from hikemeet.auth.identity import IdentityProvider, get_identity_provider
from hikemeet.database import get_session
from hikemeet.db.models import User
from hikemeet.errors import DomainError
from hikemeet.media.host import MediaHost, get_media_host
from hikemeet.users.schemas import UserResponse, user_response

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.get("/users", response_model=AdminUserListResponse)
async def list_users_endpoint(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    role: str | None = Query(None),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    users, total = await list_users(db, page, per_page, role)
    return AdminUserListResponse(
        users=[user_response(u) for u in users], total=total, page=page, per_page=per_page,
    )


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def set_role_endpoint(
    user_id: int,
    body: SetRoleRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    try:
        user = await set_role(db, admin.id, user_id, body.role)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return user_response(user)


@router.delete("/users/{user_id}", status_code=204)
async def delete_user_endpoint(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    identity: IdentityProvider = Depends(get_identity_provider),
    media: MediaHost = Depends(get_media_host),
):
    """Delete an account with its posts, memberships and notifications."""
    try:
        await delete_user(db, identity, media, admin.id, user_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
