"""Group API endpoints: /api/v1/groups/*.

Lifecycle (5), Invites (3), Join requests (3), Members (3), Image (1).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.dependencies import get_current_user
from hikemeet.database import get_session
from hikemeet.db.models import Group, User
from hikemeet.errors import DomainError
from hikemeet.groups.schemas import (
    CreateGroupRequest,
    GroupListResponse,
    GroupMemberResponse,
    GroupPendingResponse,
    GroupResponse,
    InviteRequest,
    JoinResponse,
    UpdateGroupRequest,
)
from hikemeet.groups.service import (
    accept_invite,
    approve_join,
    cancel_invite,
    cancel_join,
    count_members,
    create_group,
    delete_group,
    get_group,
    invite,
    join_group,
    list_groups,
    list_members,
    list_pending,
    remove_member,
    set_group_image,
    update_group,
)
from hikemeet.media.host import MediaHost, MediaHostError, get_media_host
from hikemeet.media.router import read_upload
from hikemeet.notifications.push import PushGateway, get_push_gateway
from hikemeet.users.schemas import ImageModel

router = APIRouter(prefix="/api/v1/groups", tags=["Groups"])


# ── Helper ──


async def _group_response(db: AsyncSession, group: Group) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        name=group.name,
        trip_id=group.trip_id,
        max_members=group.max_members,
        member_count=await count_members(db, group.id),
        privacy=group.privacy,
        difficulty=group.difficulty,
        description=group.description,
        status=group.status,
        created_by=group.created_by,
        scheduled_start=group.scheduled_start,
        scheduled_end=group.scheduled_end,
        meeting_point=group.meeting_point,
        embarked_at=group.embarked_at,
        main_image=ImageModel(**group.main_image) if group.main_image else None,
        created_at=group.created_at,
    )


# ── Lifecycle ──


@router.get("", response_model=GroupListResponse)
async def list_groups_endpoint(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    status: str | None = Query(None),
    privacy: str | None = Query(None),
    trip_id: int | None = Query(None),
    member_id: int | None = Query(None),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """List groups (paginated, filterable)."""
    groups, total = await list_groups(db, page, per_page, status, privacy, trip_id, member_id)
    items = [await _group_response(db, g) for g in groups]
    return GroupListResponse(groups=items, total=total, page=page, per_page=per_page)


@router.post("", response_model=GroupResponse, status_code=201)
async def create_group_endpoint(
    body: CreateGroupRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    """Create a group. The creator becomes admin."""
    try:
        group = await create_group(db, push, user.id, body.model_dump())
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return await _group_response(db, group)


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group_endpoint(
    group_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        group = await get_group(db, group_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return await _group_response(db, group)


@router.patch("/{group_id}", response_model=GroupResponse)
async def update_group_endpoint(
    group_id: int,
    body: UpdateGroupRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    """Admin edits group details."""
    try:
        group = await update_group(db, push, group_id, user.id, body.model_dump(exclude_unset=True))
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return await _group_response(db, group)


@router.delete("/{group_id}", status_code=204)
async def delete_group_endpoint(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    """Creator deletes the group and everything hanging off it."""
    try:
        await delete_group(db, media, group_id, user.id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


# ── Invites ──


@router.post("/{group_id}/invites", status_code=201)
async def invite_endpoint(
    group_id: int,
    body: InviteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    try:
        await invite(db, push, group_id, user.id, body.user_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return {"group_id": group_id, "user_id": body.user_id, "status": "pending"}


@router.delete("/{group_id}/invites/{user_id}", status_code=204)
async def cancel_invite_endpoint(
    group_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Admin withdraws, or the invitee declines, an invite."""
    try:
        await cancel_invite(db, group_id, user.id, user_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.post("/{group_id}/invites/accept", response_model=GroupMemberResponse)
async def accept_invite_endpoint(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    try:
        member = await accept_invite(db, push, group_id, user.id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return GroupMemberResponse(
        user_id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        profile_picture=ImageModel(**user.profile_picture) if user.profile_picture else None,
        role=member.role,
        joined_at=member.joined_at,
    )


# ── Join requests ──


@router.post("/{group_id}/join", response_model=JoinResponse)
async def join_endpoint(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    """Join a public group, or ask to join a private one."""
    try:
        outcome = await join_group(db, push, group_id, user.id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return JoinResponse(group_id=group_id, result=outcome)


@router.post("/{group_id}/requests/{user_id}/approve")
async def approve_join_endpoint(
    group_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    try:
        member = await approve_join(db, push, group_id, user.id, user_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return {"group_id": group_id, "user_id": user_id, "role": member.role}


@router.delete("/{group_id}/requests/{user_id}", status_code=204)
async def cancel_join_endpoint(
    group_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Requester withdraws, or an admin declines, a join request."""
    try:
        await cancel_join(db, group_id, user.id, user_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


# ── Members ──


@router.get("/{group_id}/members", response_model=list[GroupMemberResponse])
async def members_endpoint(
    group_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        rows = await list_members(db, group_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return [
        GroupMemberResponse(
            user_id=member_user.id,
            username=member_user.username,
            first_name=member_user.first_name,
            last_name=member_user.last_name,
            profile_picture=ImageModel(**member_user.profile_picture) if member_user.profile_picture else None,
            role=member.role,
            joined_at=member.joined_at,
        )
        for member, member_user in rows
    ]


@router.get("/{group_id}/pending", response_model=list[GroupPendingResponse])
async def pending_endpoint(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Pending invites and requests (admins only)."""
    try:
        rows = await list_pending(db, group_id, user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return [
        GroupPendingResponse(
            user_id=entry.user_id,
            username=pending_user.username,
            origin=entry.origin,
            status=entry.status,
            invited_by=entry.invited_by,
            created_at=entry.created_at,
        )
        for entry, pending_user in rows
    ]


@router.delete("/{group_id}/members/{user_id}", status_code=204)
async def remove_member_endpoint(
    group_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Leave the group (self) or remove a member (admin)."""
    try:
        await remove_member(db, group_id, user.id, user_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


# ── Image ──


@router.post("/{group_id}/image", response_model=GroupResponse)
async def upload_group_image(
    group_id: int,
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    data = await read_upload(file)
    try:
        group = await set_group_image(db, media, group_id, user.id, data, file.filename or "group")
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    except MediaHostError as e:
        raise HTTPException(status_code=502, detail="Image upload failed") from e
    return await _group_response(db, group)
