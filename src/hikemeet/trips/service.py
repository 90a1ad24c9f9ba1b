"""Trip catalogue: hiking locations that groups are organised around."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.config import get_settings
from hikemeet.db.models import Trip
from hikemeet.errors import ForbiddenError, NotFoundError, ValidationError
from hikemeet.gamification.exp_service import grant_exp
from hikemeet.media.host import MediaHost, remove_image, remove_images
from hikemeet.notifications.push import PushGateway

logger = structlog.get_logger()

TRIP_FIELDS = ("name", "location_address", "latitude", "longitude", "description", "tags")


async def get_trip(db: AsyncSession, trip_id: int) -> Trip:
    result = await db.execute(select(Trip).where(Trip.id == trip_id))
    trip = result.scalar_one_or_none()
    if trip is None:
        raise NotFoundError("Trip not found")
    return trip


async def _get_owned_trip(db: AsyncSession, trip_id: int, user_id: int, is_admin: bool = False) -> Trip:
    result = await db.execute(
        select(Trip).where(Trip.id == trip_id).with_for_update().execution_options(populate_existing=True)
    )
    trip = result.scalar_one_or_none()
    if trip is None:
        raise NotFoundError("Trip not found")
    if trip.created_by != user_id and not is_admin:
        raise ForbiddenError("Only the trip creator can change this trip")
    return trip


async def list_trips(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 20,
    tag: str | None = None,
    created_by: int | None = None,
) -> tuple[list[Trip], int]:
    """Trips, newest first (paginated)."""
    query = select(Trip)
    if created_by is not None:
        query = query.where(Trip.created_by == created_by)
    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar_one()

    result = await db.execute(query.order_by(Trip.created_at.desc(), Trip.id.desc()))
    trips = list(result.scalars().all())
    if tag is not None:
        # JSON containment differs per backend; tags are short lists
        trips = [t for t in trips if tag in (t.tags or [])]
        total = len(trips)
    offset = (page - 1) * per_page
    return trips[offset:offset + per_page], total


async def create_trip(
    db: AsyncSession,
    push: PushGateway | None,
    user_id: int,
    fields: dict[str, Any],
) -> Trip:
    if not -90 <= fields["latitude"] <= 90 or not -180 <= fields["longitude"] <= 180:
        raise ValidationError("Coordinates are out of range")
    trip = Trip(created_by=user_id, images=[], **{k: fields[k] for k in TRIP_FIELDS if k in fields})
    if trip.tags is None:
        trip.tags = []
    db.add(trip)
    await db.flush()
    await grant_exp(db, push, user_id, get_settings().exp_trip_create, "trip_create")
    logger.info("trip_created", trip_id=trip.id, user_id=user_id)
    return trip


async def update_trip(
    db: AsyncSession, trip_id: int, user_id: int, changes: dict[str, Any], is_admin: bool = False,
) -> Trip:
    trip = await _get_owned_trip(db, trip_id, user_id, is_admin)
    for key in TRIP_FIELDS:
        if key in changes and changes[key] is not None:
            setattr(trip, key, changes[key])
    if not -90 <= trip.latitude <= 90 or not -180 <= trip.longitude <= 180:
        raise ValidationError("Coordinates are out of range")
    await db.flush()
    return trip


async def delete_trip(
    db: AsyncSession, media: MediaHost | None, trip_id: int, user_id: int, is_admin: bool = False,
) -> None:
    """Delete a trip and its images. Groups and posts keep existing, detached."""
    trip = await _get_owned_trip(db, trip_id, user_id, is_admin)
    images = list(trip.images or [])
    await db.delete(trip)
    await db.flush()
    await remove_images(media, images)
    logger.info("trip_deleted", trip_id=trip_id, user_id=user_id)


async def add_trip_image(
    db: AsyncSession,
    media: MediaHost,
    trip_id: int,
    user_id: int,
    data: bytes,
    filename: str,
    main: bool = False,
) -> Trip:
    """Upload an image to the trip gallery, optionally making it the main image."""
    trip = await _get_owned_trip(db, trip_id, user_id)
    uploaded = await media.upload(data, f"trip_images/{trip_id}", filename=filename)
    image = uploaded.as_image("main" if main else "gallery")
    trip.images = [*(trip.images or []), image]
    if main or trip.main_image is None:
        trip.main_image = image
    await db.flush()
    return trip


async def remove_trip_image(
    db: AsyncSession, media: MediaHost | None, trip_id: int, user_id: int, image_id: str,
) -> Trip:
    trip = await _get_owned_trip(db, trip_id, user_id)
    remaining = [img for img in (trip.images or []) if img.get("image_id") != image_id]
    if len(remaining) == len(trip.images or []):
        raise NotFoundError("Image not found")
    trip.images = remaining
    if (trip.main_image or {}).get("image_id") == image_id:
        trip.main_image = remaining[0] if remaining else None
    await db.flush()
    await remove_image(media, image_id)
    return trip
