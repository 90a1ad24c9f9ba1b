"""Pydantic schemas for group endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from hikemeet.auth.schemas import ImageModel


class CreateGroupRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=128)
    trip_id: int | None = None
    max_members: int = Field(..., ge=2, le=500)
    privacy: Literal["public", "private"] = "public"
    difficulty: Literal["easy", "moderate", "hard"] | None = None
    description: str | None = Field(None, max_length=2000)
    scheduled_start: datetime | None = None
    scheduled_end: datetime | None = None
    meeting_point: str | None = Field(None, max_length=255)


class UpdateGroupRequest(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=128)
    trip_id: int | None = None
    max_members: int | None = Field(None, ge=2, le=500)
    privacy: Literal["public", "private"] | None = None
    difficulty: Literal["easy", "moderate", "hard"] | None = None
    description: str | None = Field(None, max_length=2000)
    scheduled_start: datetime | None = None
    scheduled_end: datetime | None = None
    meeting_point: str | None = Field(None, max_length=255)
    embarked_at: datetime | None = None


class InviteRequest(BaseModel):
    user_id: int


class GroupMemberResponse(BaseModel):
    user_id: int
    username: str
    first_name: str
    last_name: str
    profile_picture: ImageModel | None = None
    role: str
    joined_at: datetime


class GroupPendingResponse(BaseModel):
    user_id: int
    username: str
    origin: str
    status: str
    invited_by: int | None = None
    created_at: datetime


class GroupResponse(BaseModel):
    id: int
    name: str
    trip_id: int | None = None
    max_members: int
    member_count: int = 0
    privacy: str
    difficulty: str | None = None
    description: str | None = None
    status: str
    created_by: int | None = None
    scheduled_start: datetime | None = None
    scheduled_end: datetime | None = None
    meeting_point: str | None = None
    embarked_at: datetime | None = None
    main_image: ImageModel | None = None
    created_at: datetime


class GroupListResponse(BaseModel):
    groups: list[GroupResponse]
    total: int
    page: int
    per_page: int


class JoinResponse(BaseModel):
    group_id: int
    result: Literal["joined", "requested"]
