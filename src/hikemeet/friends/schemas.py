"""Pydantic schemas for friend endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from hikemeet.auth.schemas import ImageModel


class FriendStatusResponse(BaseModel):
    user_id: int
    status: str


class FriendResponse(BaseModel):
    user_id: int
    username: str
    first_name: str
    last_name: str
    profile_picture: ImageModel | None = None
    status: str
    since: datetime


class FriendListResponse(BaseModel):
    friends: list[FriendResponse]
    total: int
