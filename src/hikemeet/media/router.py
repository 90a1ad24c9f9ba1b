"""Media API endpoints: /api/v1/media/*."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from hikemeet.auth.dependencies import get_current_user
from hikemeet.config import get_settings
from hikemeet.db.models import User
from hikemeet.media.host import MediaHost, MediaHostError, get_media_host

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/media", tags=["Media"])

UPLOAD_FOLDERS = frozenset({"profile_images", "group_images", "trip_images", "post_images"})


async def read_upload(file: UploadFile) -> bytes:
    """Read an uploaded image, enforcing type and size limits."""
    if file.content_type and not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image uploads are allowed")
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty upload")
    if len(data) > get_settings().max_upload_bytes:
        raise HTTPException(status_code=413, detail="Image too large")
    return data


def _check_folder(folder: str) -> str:
    if folder not in UPLOAD_FOLDERS:
        raise HTTPException(status_code=400, detail=f"Unknown upload folder: {folder}")
    return folder


@router.get("/signature")
async def upload_signature(
    folder: str = Query("post_images"),
    _user: User = Depends(get_current_user),
    media: MediaHost = Depends(get_media_host),
) -> dict[str, Any]:
    """Signed parameters for a direct client-side upload."""
    try:
        return media.upload_signature(_check_folder(folder))
    except MediaHostError as e:
        raise HTTPException(status_code=501, detail=str(e)) from e


@router.post("/upload", status_code=201)
async def upload_image(
    folder: str = Query("post_images"),
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    media: MediaHost = Depends(get_media_host),
) -> dict[str, Any]:
    """Upload one image and return its stored shape ``{url, image_id}``."""
    data = await read_upload(file)
    try:
        uploaded = await media.upload(data, _check_folder(folder), filename=file.filename or "upload")
    except MediaHostError as e:
        logger.warning("media_upload_failed", user_id=user.id, folder=folder)
        raise HTTPException(status_code=502, detail="Image upload failed") from e
    return uploaded.as_image()
