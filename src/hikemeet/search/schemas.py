"""Pydantic schemas for search endpoints."""

from __future__ import annotations

from pydantic import BaseModel

from hikemeet.users.schemas import ImageModel, PublicUserResponse


class TripSummary(BaseModel):
    id: int
    name: str
    location_address: str
    main_image: ImageModel | None = None
    tags: list[str] = []


class GroupSummary(BaseModel):
    id: int
    name: str
    status: str
    privacy: str
    trip_id: int | None = None
    main_image: ImageModel | None = None


class SearchResponse(BaseModel):
    query: str
    users: list[PublicUserResponse] = []
    trips: list[TripSummary] = []
    groups: list[GroupSummary] = []
