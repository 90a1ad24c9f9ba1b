"""Push delivery through the Expo push service.

Messages are validated against the Expo token format before sending and
posted in chunks of at most ``push_chunk_size`` (the service caps a request
at 100 messages). A failed chunk is logged and skipped; nothing is retried.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from hikemeet.config import Settings

logger = structlog.get_logger()

_TOKEN_RE = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[[^\]]+\]$")


@dataclass
class PushMessage:
    """One push message for one device token."""

    to: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    sound: str = "default"

    def as_payload(self) -> dict[str, Any]:
        return {"to": self.to, "title": self.title, "body": self.body, "data": self.data, "sound": self.sound}


@dataclass
class PushReceipt:
    """Delivery ticket for one message: ``ok`` or ``error``."""

    token: str
    status: str
    message: str | None = None


def is_push_token(token: str) -> bool:
    """Check a string looks like an Expo push token."""
    return bool(_TOKEN_RE.match(token))


def chunked(messages: Sequence[PushMessage], size: int) -> Iterator[list[PushMessage]]:
    """Yield consecutive slices of at most ``size`` messages."""
    if size < 1:
        msg = "chunk size must be positive"
        raise ValueError(msg)
    for start in range(0, len(messages), size):
        yield list(messages[start:start + size])


class PushGateway(ABC):
    """Abstract push delivery service."""

    @abstractmethod
    async def send(self, messages: Sequence[PushMessage]) -> list[PushReceipt]:
        """Deliver a batch of messages. Never raises on delivery failure."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release network resources."""


def _tickets(response: httpx.Response) -> list[dict[str, Any]]:
    """The ``data`` ticket list of an Expo reply. ValueError on any other shape."""
    body = response.json()
    tickets = body.get("data") if isinstance(body, dict) else None
    if not isinstance(tickets, list) or not all(isinstance(t, dict) for t in tickets):
        msg = f"Unexpected push gateway reply: {type(body).__name__}"
        raise ValueError(msg)
    return tickets


class ExpoPushGateway(PushGateway):
    """Send push messages via the Expo HTTP API."""

    def __init__(
        self,
        url: str,
        access_token: str = "",
        chunk_size: int = 100,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.access_token = access_token
        self.chunk_size = chunk_size
        self._client = client or httpx.AsyncClient(timeout=10.0)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def send(self, messages: Sequence[PushMessage]) -> list[PushReceipt]:
        receipts: list[PushReceipt] = []
        valid: list[PushMessage] = []
        for message in messages:
            if is_push_token(message.to):
                valid.append(message)
            else:
                logger.warning("push_token_invalid", token=message.to[:24])
                receipts.append(PushReceipt(token=message.to, status="error", message="invalid token"))

        for chunk in chunked(valid, self.chunk_size):
            try:
                response = await self._client.post(
                    self.url,
                    headers=self._headers(),
                    json=[m.as_payload() for m in chunk],
                )
                response.raise_for_status()
                tickets = _tickets(response)
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("push_chunk_failed", size=len(chunk), error=str(exc))
                receipts.extend(PushReceipt(token=m.to, status="error", message=str(exc)) for m in chunk)
                continue

            for message, ticket in zip(chunk, tickets, strict=False):
                status = ticket.get("status", "error")
                if status != "ok":
                    logger.info("push_ticket_error", token=message.to[:24], detail=ticket.get("message"))
                receipts.append(PushReceipt(token=message.to, status=status, message=ticket.get("message")))

        return receipts

    async def close(self) -> None:
        await self._client.aclose()


class NullPushGateway(PushGateway):
    """Drops every message (push disabled)."""

    async def send(self, messages: Sequence[PushMessage]) -> list[PushReceipt]:
        return []


# ---------------------------------------------------------------------------
# Process-wide gateway
# ---------------------------------------------------------------------------

_gateway: PushGateway | None = None


def init_push_gateway(settings: Settings) -> PushGateway:
    """Create the process-wide gateway from configuration."""
    global _gateway  # noqa: PLW0603
    if settings.push_enabled:
        _gateway = ExpoPushGateway(
            settings.expo_push_url,
            access_token=settings.expo_access_token,
            chunk_size=settings.push_chunk_size,
        )
    else:
        _gateway = NullPushGateway()
    return _gateway


async def close_push_gateway() -> None:
    """Close the process-wide gateway."""
    global _gateway  # noqa: PLW0603
    if _gateway:
        await _gateway.close()
        _gateway = None


def get_push_gateway() -> PushGateway:
    """Get the push gateway (FastAPI dependency)."""
    if _gateway is None:
        msg = "Push gateway not initialized. Call init_push_gateway() first."
        raise RuntimeError(msg)
    return _gateway
