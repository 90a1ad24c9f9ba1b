"""
Transactional email for account events.

Three messages exist: a welcome after registration, the password-reset
code and the "password changed" notice. Each is rendered by
``hikemeet.email.templates`` and handed to one transport chosen by
``HIKEMEET_EMAIL_PROVIDER`` (``smtp`` or ``resend``). Delivery is
best-effort: a transport failure is logged and reported as ``False``.
"""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib
import httpx
import structlog

from hikemeet.config import Settings, get_settings
from hikemeet.email.templates import password_changed, verification_code, welcome_email

logger = structlog.get_logger()

RESEND_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class Outgoing:
    to: str
    subject: str
    html: str
    text: str


class Transport(Protocol):
    name: str

    async def deliver(self, sender: str, message: Outgoing) -> None:
        """Hand ``message`` over; raise on failure."""


class SMTPTransport:
    name = "smtp"

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def deliver(self, sender: str, message: Outgoing) -> None:
        mime = EmailMessage()
        mime["From"] = sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.set_content(message.text)
        mime.add_alternative(message.html, subtype="html")

        s = self._settings
        await aiosmtplib.send(
            mime,
            hostname=s.smtp_host,
            port=s.smtp_port,
            username=s.smtp_username or None,
            password=s.smtp_password or None,
            start_tls=s.smtp_use_tls,
            tls_context=ssl.create_default_context() if s.smtp_use_tls else None,
        )


class ResendTransport:
    name = "resend"

    def __init__(self, api_key: str, client: httpx.AsyncClient | None = None) -> None:
        self._api_key = api_key
        self._client = client

    async def deliver(self, sender: str, message: Outgoing) -> None:
        body = {
            "from": sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if self._client is not None:
            response = await self._client.post(RESEND_URL, json=body, headers=headers, timeout=10.0)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(RESEND_URL, json=body, headers=headers, timeout=10.0)
        response.raise_for_status()


def transport_from_settings(settings: Settings) -> Transport:
    provider = settings.email_provider.lower()
    if provider == "smtp":
        return SMTPTransport(settings)
    if provider == "resend":
        return ResendTransport(settings.resend_api_key)
    msg = f"Unsupported email provider: {provider}"
    raise ValueError(msg)


class EmailService:
    def __init__(self, transport: Transport | None = None, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self.transport = transport or transport_from_settings(self._settings)
        self.sender = f"{self._settings.email_from_name} <{self._settings.email_from_address}>"

    async def _send(self, to: str, rendered: tuple[str, str, str]) -> bool:
        subject, html, text = rendered
        try:
            await self.transport.deliver(self.sender, Outgoing(to, subject, html, text))
        except (aiosmtplib.SMTPException, httpx.HTTPError, OSError):
            logger.exception("email_send_failed", to=to, subject=subject, transport=self.transport.name)
            return False
        logger.info("email_sent", to=to, subject=subject, transport=self.transport.name)
        return True

    async def send_verification_code(self, to: str, name: str | None, code: str) -> bool:
        minutes = max(1, self._settings.verification_code_ttl_seconds // 60)
        return await self._send(to, verification_code(name, code, minutes))

    async def send_welcome(self, to: str, name: str | None) -> bool:
        return await self._send(to, welcome_email(name))

    async def send_password_changed(self, to: str, name: str | None) -> bool:
        return await self._send(to, password_changed(name))


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """FastAPI dependency; built on first use."""
    global _email_service  # noqa: PLW0603
    if _email_service is None:
        _email_service = EmailService()
    return _email_service


def reset_email_service() -> None:
    global _email_service  # noqa: PLW0603
    _email_service = None
