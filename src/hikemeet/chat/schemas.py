"""Pydantic schemas for chat endpoints."""

from __future__ import annotations

from pydantic import BaseModel

from hikemeet.auth.schemas import ImageModel


class ChatPartnerResponse(BaseModel):
    user_id: int
    username: str
    first_name: str
    last_name: str
    profile_picture: ImageModel | None = None


class ChatPartnerListResponse(BaseModel):
    partners: list[ChatPartnerResponse]
    total: int
