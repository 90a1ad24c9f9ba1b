"""Pydantic schemas for trip endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from hikemeet.auth.schemas import ImageModel


class CreateTripRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=128)
    location_address: str = Field(..., min_length=2, max_length=255)
    latitude: float
    longitude: float
    description: str | None = Field(None, max_length=5000)
    tags: list[str] = Field(default_factory=list, max_length=20)


class UpdateTripRequest(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=128)
    location_address: str | None = Field(None, min_length=2, max_length=255)
    latitude: float | None = None
    longitude: float | None = None
    description: str | None = Field(None, max_length=5000)
    tags: list[str] | None = Field(None, max_length=20)


class TripResponse(BaseModel):
    id: int
    name: str
    location_address: str
    latitude: float
    longitude: float
    description: str | None = None
    images: list[ImageModel] = []
    main_image: ImageModel | None = None
    tags: list[str] = []
    created_by: int | None = None
    created_at: datetime


class TripListResponse(BaseModel):
    trips: list[TripResponse]
    total: int
    page: int
    per_page: int
