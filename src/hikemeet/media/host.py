"""Image hosting on Cloudinary.

Uploads and deletions go through Cloudinary's signed REST API. Every
signed call carries ``signature = sha1("k1=v1&k2=v2..." + api_secret)`` over
the sorted request parameters (``file``, ``api_key`` and ``resource_type``
excluded). The app's default placeholder images are never deleted.
"""

from __future__ import annotations

import hashlib
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from hikemeet.config import Settings, get_settings

logger = structlog.get_logger()

_UNSIGNED_KEYS = frozenset({"file", "api_key", "resource_type", "cloud_name"})


class MediaHostError(Exception):
    """The media host rejected or failed a request."""


@dataclass
class UploadedMedia:
    """Result of an upload: public URL plus the id used to delete it later."""

    secure_url: str
    public_id: str

    def as_image(self, type_: str | None = None) -> dict[str, Any]:
        """Stored image shape: ``{url, image_id[, type]}``."""
        image: dict[str, Any] = {"url": self.secure_url, "image_id": self.public_id}
        if type_:
            image["type"] = type_
        return image


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature."""
    to_sign = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if key not in _UNSIGNED_KEYS and params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()  # noqa: S324


class MediaHost(ABC):
    """Abstract image host."""

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        folder: str,
        filename: str = "upload",
        options: dict[str, Any] | None = None,
    ) -> UploadedMedia:
        """Store an image. Raises MediaHostError."""
        ...

    @abstractmethod
    async def delete(self, public_id: str) -> bool:
        """Delete an image. Returns False if the host reports it missing. Raises MediaHostError."""
        ...

    def upload_signature(self, folder: str) -> dict[str, Any]:
        """Parameters a client needs to upload directly to the host."""
        msg = "Direct uploads are not supported by this media host"
        raise MediaHostError(msg)

    async def close(self) -> None:  # noqa: B027
        """Release network resources."""


class CloudinaryMediaHost(MediaHost):
    """Cloudinary image uploads via its REST API."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        root_folder: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.root_folder = root_folder.strip("/")
        self._client = client or httpx.AsyncClient(timeout=30.0)

    def _url(self, action: str) -> str:
        return f"https://api.cloudinary.com/v1_1/{self.cloud_name}/image/{action}"

    def _folder(self, folder: str) -> str:
        folder = folder.strip("/")
        return f"{self.root_folder}/{folder}" if self.root_folder else folder

    def _signed(self, params: dict[str, Any]) -> dict[str, Any]:
        params = {k: v for k, v in params.items() if v not in (None, "")}
        params["timestamp"] = int(time.time())
        params["signature"] = sign_params(params, self.api_secret)
        params["api_key"] = self.api_key
        return params

    async def upload(
        self,
        data: bytes,
        folder: str,
        filename: str = "upload",
        options: dict[str, Any] | None = None,
    ) -> UploadedMedia:
        params = self._signed({"folder": self._folder(folder), **(options or {})})
        try:
            response = await self._client.post(
                self._url("upload"),
                data={k: str(v) for k, v in params.items()},
                files={"file": (filename, data)},
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise MediaHostError(f"Upload failed: {exc}") from exc

        logger.info("media_uploaded", public_id=body.get("public_id"), bytes=len(data))
        return UploadedMedia(secure_url=body["secure_url"], public_id=body["public_id"])

    async def delete(self, public_id: str) -> bool:
        params = self._signed({"public_id": public_id, "invalidate": "true"})
        try:
            response = await self._client.post(self._url("destroy"), data={k: str(v) for k, v in params.items()})
            response.raise_for_status()
            result = response.json().get("result")
        except (httpx.HTTPError, ValueError) as exc:
            raise MediaHostError(f"Delete failed: {exc}") from exc
        return result == "ok"

    def upload_signature(self, folder: str) -> dict[str, Any]:
        params = self._signed({"folder": self._folder(folder)})
        params["cloud_name"] = self.cloud_name
        return params

    async def close(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Helpers used by the domain services
# ---------------------------------------------------------------------------


def is_default_image(public_id: str | None, settings: Settings | None = None) -> bool:
    """True for the placeholder images that ship with the app."""
    if not public_id:
        return True
    settings = settings or get_settings()
    return public_id in {
        settings.default_profile_image_id,
        settings.default_group_image_id,
        settings.default_trip_image_id,
    }


async def remove_image(host: MediaHost | None, public_id: str | None) -> bool:
    """Delete an image unless it is a default one. Failures are logged, never raised."""
    if host is None or is_default_image(public_id):
        return False
    try:
        return await host.delete(public_id)  # type: ignore[arg-type]
    except MediaHostError:
        logger.warning("media_delete_failed", public_id=public_id, exc_info=True)
        return False


async def remove_images(host: MediaHost | None, images: list[dict[str, Any]] | None) -> int:
    """Delete every non-default image in a stored image list. Returns how many were removed."""
    removed = 0
    for image in images or []:
        if await remove_image(host, image.get("image_id")):
            removed += 1
    return removed


# ---------------------------------------------------------------------------
# Process-wide host
# ---------------------------------------------------------------------------

_host: MediaHost | None = None


def init_media_host(settings: Settings) -> MediaHost:
    """Create the process-wide media host from configuration."""
    global _host  # noqa: PLW0603
    _host = CloudinaryMediaHost(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        root_folder=settings.media_root_folder,
    )
    return _host


async def close_media_host() -> None:
    """Close the process-wide media host."""
    global _host  # noqa: PLW0603
    if _host:
        await _host.close()
        _host = None


def get_media_host() -> MediaHost:
    """Get the media host (FastAPI dependency)."""
    if _host is None:
        msg = "Media host not initialized. Call init_media_host() first."
        raise RuntimeError(msg)
    return _host
