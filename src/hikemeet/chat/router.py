"""Chat partner endpoints: /api/v1/chat/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.dependencies import get_current_user
from hikemeet.chat.schemas import ChatPartnerListResponse, ChatPartnerResponse
from hikemeet.chat.service import close_chat, list_partners, open_chat
from hikemeet.database import get_session
from hikemeet.db.models import User
from hikemeet.errors import DomainError
from hikemeet.users.schemas import ImageModel

router = APIRouter(prefix="/api/v1/chat", tags=["Chat"])


def _partner_list(partners: list[User]) -> ChatPartnerListResponse:
    return ChatPartnerListResponse(
        partners=[
            ChatPartnerResponse(
                user_id=p.id,
                username=p.username,
                first_name=p.first_name,
                last_name=p.last_name,
                profile_picture=ImageModel(**p.profile_picture) if p.profile_picture else None,
            )
            for p in partners
        ],
        total=len(partners),
    )


@router.get("", response_model=ChatPartnerListResponse)
async def list_chat_partners(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return _partner_list(await list_partners(db, user.id))


@router.post("/{partner_id}", response_model=ChatPartnerListResponse)
async def open_chat_endpoint(
    partner_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Add a partner to both users' chat lists."""
    try:
        partners = await open_chat(db, user.id, partner_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return _partner_list(partners)


@router.delete("/{partner_id}", response_model=ChatPartnerListResponse)
async def close_chat_endpoint(
    partner_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Remove a partner from the caller's chat list only."""
    partners = await close_chat(db, user.id, partner_id)
    await db.commit()
    return _partner_list(partners)
