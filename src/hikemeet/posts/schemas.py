"""Pydantic schemas for post endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from hikemeet.auth.schemas import ImageModel


class CreatePostRequest(BaseModel):
    content: str = Field("", max_length=5000)
    images: list[ImageModel] = Field(default_factory=list, max_length=10)
    group_id: int | None = None
    attached_trip_id: int | None = None
    attached_group_id: int | None = None
    type: Literal["regular", "trip", "group"] = "regular"
    privacy: Literal["public", "private"] | None = None


class UpdatePostRequest(BaseModel):
    content: str | None = Field(None, max_length=5000)
    images: list[ImageModel] | None = Field(None, max_length=10)
    attached_trip_id: int | None = None
    attached_group_id: int | None = None
    privacy: Literal["public", "private"] | None = None


class SharePostRequest(BaseModel):
    content: str = Field("", max_length=5000)
    group_id: int | None = None


class CommentRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)


class PostResponse(BaseModel):
    id: int
    author_id: int
    group_id: int | None = None
    content: str
    images: list[ImageModel] = []
    attached_trip_id: int | None = None
    attached_group_id: int | None = None
    type: str
    privacy: str
    is_shared: bool
    original_post_id: int | None = None
    likes: int = 0
    comments: int = 0
    shares: int = 0
    saves: int = 0
    liked: bool = False
    saved: bool = False
    created_at: datetime
    updated_at: datetime


class PostListResponse(BaseModel):
    posts: list[PostResponse]
    total: int
    page: int
    per_page: int


class CommentResponse(BaseModel):
    id: int
    post_id: int
    user_id: int
    username: str
    text: str
    likes: int = 0
    liked: bool = False
    created_at: datetime


class CountResponse(BaseModel):
    post_id: int
    count: int
