"""Trip API endpoints: /api/v1/trips/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.dependencies import get_current_user
from hikemeet.database import get_session
from hikemeet.db.models import Trip, User
from hikemeet.errors import DomainError
from hikemeet.media.host import MediaHost, MediaHostError, get_media_host
from hikemeet.media.router import read_upload
from hikemeet.notifications.push import PushGateway, get_push_gateway
from hikemeet.trips.schemas import CreateTripRequest, TripListResponse, TripResponse, UpdateTripRequest
from hikemeet.trips.service import (
    add_trip_image,
    create_trip,
    delete_trip,
    get_trip,
    list_trips,
    remove_trip_image,
    update_trip,
)
from hikemeet.users.schemas import ImageModel

router = APIRouter(prefix="/api/v1/trips", tags=["Trips"])


def _trip_response(trip: Trip) -> TripResponse:
    return TripResponse(
        id=trip.id,
        name=trip.name,
        location_address=trip.location_address,
        latitude=trip.latitude,
        longitude=trip.longitude,
        description=trip.description,
        images=[ImageModel(**img) for img in (trip.images or [])],
        main_image=ImageModel(**trip.main_image) if trip.main_image else None,
        tags=list(trip.tags or []),
        created_by=trip.created_by,
        created_at=trip.created_at,
    )


@router.get("", response_model=TripListResponse)
async def list_trips_endpoint(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    tag: str | None = Query(None),
    created_by: int | None = Query(None),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    trips, total = await list_trips(db, page, per_page, tag, created_by)
    return TripListResponse(trips=[_trip_response(t) for t in trips], total=total, page=page, per_page=per_page)


@router.post("", response_model=TripResponse, status_code=201)
async def create_trip_endpoint(
    body: CreateTripRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    try:
        trip = await create_trip(db, push, user.id, body.model_dump())
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return _trip_response(trip)


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip_endpoint(
    trip_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        trip = await get_trip(db, trip_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return _trip_response(trip)


@router.patch("/{trip_id}", response_model=TripResponse)
async def update_trip_endpoint(
    trip_id: int,
    body: UpdateTripRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Creator (or a site admin) edits a trip."""
    try:
        trip = await update_trip(
            db, trip_id, user.id, body.model_dump(exclude_unset=True), is_admin=user.role == "admin",
        )
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return _trip_response(trip)


@router.delete("/{trip_id}", status_code=204)
async def delete_trip_endpoint(
    trip_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    try:
        await delete_trip(db, media, trip_id, user.id, is_admin=user.role == "admin")
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.post("/{trip_id}/images", response_model=TripResponse, status_code=201)
async def add_trip_image_endpoint(
    trip_id: int,
    main: bool = Query(False),
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    data = await read_upload(file)
    try:
        trip = await add_trip_image(db, media, trip_id, user.id, data, file.filename or "trip", main=main)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    except MediaHostError as e:
        raise HTTPException(status_code=502, detail="Image upload failed") from e
    return _trip_response(trip)


@router.delete("/{trip_id}/images/{image_id:path}", response_model=TripResponse)
async def remove_trip_image_endpoint(
    trip_id: int,
    image_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    try:
        trip = await remove_trip_image(db, media, trip_id, user.id, image_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return _trip_response(trip)
