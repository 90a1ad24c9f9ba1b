"""Friend API endpoints: /api/v1/friends/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.dependencies import get_current_user
from hikemeet.database import get_session
from hikemeet.db.models import Friendship, User
from hikemeet.errors import DomainError
from hikemeet.friends.schemas import FriendListResponse, FriendResponse, FriendStatusResponse
from hikemeet.friends.service import (
    accept_request,
    block_user,
    cancel_request,
    decline_request,
    get_status,
    list_friendships,
    remove_friend,
    send_request,
    unblock_user,
)
from hikemeet.notifications.push import PushGateway, get_push_gateway
from hikemeet.users.schemas import ImageModel

router = APIRouter(prefix="/api/v1/friends", tags=["Friends"])


def _friend_response(row: Friendship, peer: User) -> FriendResponse:
    return FriendResponse(
        user_id=peer.id,
        username=peer.username,
        first_name=peer.first_name,
        last_name=peer.last_name,
        profile_picture=ImageModel(**peer.profile_picture) if peer.profile_picture else None,
        status=row.status,
        since=row.created_at,
    )


@router.get("", response_model=FriendListResponse)
async def list_friends(
    status: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Own friend list, optionally filtered by status."""
    try:
        rows = await list_friendships(db, user.id, status)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    friends = [_friend_response(row, peer) for row, peer in rows]
    return FriendListResponse(friends=friends, total=len(friends))


@router.get("/{peer_id}/status", response_model=FriendStatusResponse)
async def friend_status(
    peer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return FriendStatusResponse(user_id=peer_id, status=await get_status(db, user.id, peer_id))


@router.post("/{peer_id}/request", response_model=FriendStatusResponse, status_code=201)
async def send_friend_request(
    peer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    """Send a friend request."""
    try:
        row = await send_request(db, push, user.id, peer_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return FriendStatusResponse(user_id=peer_id, status=row.status)


@router.delete("/{peer_id}/request", status_code=204)
async def cancel_friend_request(
    peer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Withdraw a request you sent."""
    try:
        await cancel_request(db, user.id, peer_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.post("/{peer_id}/accept", response_model=FriendStatusResponse)
async def accept_friend_request(
    peer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    """Accept a request you received."""
    try:
        row = await accept_request(db, push, user.id, peer_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return FriendStatusResponse(user_id=peer_id, status=row.status)


@router.post("/{peer_id}/decline", status_code=204)
async def decline_friend_request(
    peer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Decline a request you received."""
    try:
        await decline_request(db, user.id, peer_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.delete("/{peer_id}", status_code=204)
async def remove_friend_endpoint(
    peer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        await remove_friend(db, user.id, peer_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.post("/{peer_id}/block", response_model=FriendStatusResponse)
async def block_endpoint(
    peer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        row = await block_user(db, user.id, peer_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return FriendStatusResponse(user_id=peer_id, status=row.status)


@router.delete("/{peer_id}/block", status_code=204)
async def unblock_endpoint(
    peer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        await unblock_user(db, user.id, peer_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
