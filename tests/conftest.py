"""Shared test fixtures.

The app runs against a fresh in-memory SQLite database per test, created
from the ORM metadata. Push, media, verification codes and email are
replaced by in-process fakes through ``dependency_overrides``; tokens are
real HS256 JWTs issued for users created directly in the database.
"""

from __future__ import annotations

import os

os.environ["HIKEMEET_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["HIKEMEET_JWT_ALGORITHM"] = "HS256"
os.environ["HIKEMEET_JWT_SECRET"] = "test-secret-with-enough-length-for-hs256"
os.environ["HIKEMEET_PUSH_ENABLED"] = "false"
os.environ["HIKEMEET_LOG_FORMAT"] = "console"

from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from hikemeet.auth.dependencies import get_verification_store  # noqa: E402
from hikemeet.auth.identity import init_identity_provider  # noqa: E402
from hikemeet.auth.jwt import create_access_token, reset_keys  # noqa: E402
from hikemeet.auth.verification import VerificationCodeStore, generate_code  # noqa: E402
from hikemeet.config import get_settings  # noqa: E402
from hikemeet.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from hikemeet.db.base import Base  # noqa: E402
from hikemeet.db.models import Notification, User  # noqa: E402
from hikemeet.email.service import EmailService, get_email_service  # noqa: E402
from hikemeet.errors import ValidationError  # noqa: E402
from hikemeet.main import create_app  # noqa: E402
from hikemeet.media.host import MediaHost, UploadedMedia, get_media_host  # noqa: E402
from hikemeet.notifications.push import PushGateway, PushMessage, PushReceipt, get_push_gateway  # noqa: E402

get_settings.cache_clear()
reset_keys()

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingPushGateway(PushGateway):
    """Keeps every message instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[PushMessage] = []

    async def send(self, messages: Sequence[PushMessage]) -> list[PushReceipt]:
        self.sent.extend(messages)
        return [PushReceipt(token=m.to, status="ok") for m in messages]


class FakeMediaHost(MediaHost):
    """Hands out predictable public ids and records deletions."""

    def __init__(self) -> None:
        self.uploaded: list[str] = []
        self.deleted: list[str] = []

    async def upload(
        self,
        data: bytes,
        folder: str,
        filename: str = "upload",
        options: dict[str, Any] | None = None,
    ) -> UploadedMedia:
        public_id = f"{folder}/img{len(self.uploaded) + 1}"
        self.uploaded.append(public_id)
        return UploadedMedia(secure_url=f"https://media.test/{public_id}.jpg", public_id=public_id)

    async def delete(self, public_id: str) -> bool:
        self.deleted.append(public_id)
        return True

    def upload_signature(self, folder: str) -> dict[str, Any]:
        return {"folder": folder, "timestamp": 1, "signature": "sig", "api_key": "key", "cloud_name": "test"}


class MemoryVerificationStore(VerificationCodeStore):
    """Single-use codes in a dict. ``issued`` keeps the last code per email."""

    def __init__(self) -> None:
        self.codes: dict[str, str] = {}
        self.issued: dict[str, str] = {}
        self.redeemed: set[str] = set()

    async def issue(self, email: str) -> str:
        email = email.lower()
        if email in self.codes:
            raise ValidationError("Please wait before requesting another code.")
        code = generate_code()
        self.codes[email] = code
        self.issued[email] = code
        return code

    async def consume(self, email: str, code: str) -> bool:
        email = email.lower()
        if self.codes.get(email) != code:
            return False
        del self.codes[email]
        return True

    async def discard(self, email: str) -> None:
        self.codes.pop(email.lower(), None)

    async def redeem(self, token_id: str, ttl_seconds: int) -> bool:
        if token_id in self.redeemed:
            return False
        self.redeemed.add(token_id)
        return True


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def app_db() -> AsyncGenerator[None, None]:
    """Fresh schema for one test."""
    await init_db(TEST_DATABASE_URL)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(app_db: None) -> AsyncGenerator[AsyncSession, None]:
    """Direct session for service calls and assertions."""
    async with get_session_factory()() as session:
        yield session


UserFactory = Callable[..., Awaitable[User]]


@pytest_asyncio.fixture
async def user_factory(db_session: AsyncSession) -> UserFactory:
    """Create committed users without going through the password hasher."""
    counter = {"n": 0}

    async def make(username: str | None = None, role: str = "user", **fields: Any) -> User:
        counter["n"] += 1
        name = username or f"hiker{counter['n']}"
        user = User(
            auth_uid=f"uid-{name}",
            username=name,
            email=f"{name}@example.com",
            first_name=fields.pop("first_name", name.capitalize()),
            last_name=fields.pop("last_name", "Test"),
            role=role,
            muted_groups=[],
            muted_notification_types=[],
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return make


def auth_headers(user: User) -> dict[str, str]:
    """Bearer header for a user created by ``user_factory``."""
    return {"Authorization": f"Bearer {create_access_token(user.auth_uid, user.email)}"}


async def unread_counter(db: AsyncSession, user_id: int) -> int:
    """Stored counter, read straight from the row."""
    result = await db.execute(select(User.unread_notifications).where(User.id == user_id))
    return result.scalar_one()


async def notifications_for(db: AsyncSession, user_id: int, type_: str | None = None) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id).execution_options(populate_existing=True)
    if type_ is not None:
        query = query.where(Notification.type == type_)
    result = await db.execute(query.order_by(Notification.id))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# App + client
# ---------------------------------------------------------------------------


@pytest.fixture
def push_gateway() -> RecordingPushGateway:
    return RecordingPushGateway()


@pytest.fixture
def media_host() -> FakeMediaHost:
    return FakeMediaHost()


@pytest.fixture
def verification_store() -> MemoryVerificationStore:
    return MemoryVerificationStore()


@pytest.fixture
def email_service() -> AsyncMock:
    return AsyncMock(spec=EmailService)


@pytest_asyncio.fixture
async def app(
    app_db: None,
    push_gateway: RecordingPushGateway,
    media_host: FakeMediaHost,
    verification_store: MemoryVerificationStore,
    email_service: AsyncMock,
) -> AsyncGenerator[FastAPI, None]:
    application = create_app()
    init_identity_provider()
    application.dependency_overrides[get_push_gateway] = lambda: push_gateway
    application.dependency_overrides[get_media_host] = lambda: media_host
    application.dependency_overrides[get_verification_store] = lambda: verification_store
    application.dependency_overrides[get_email_service] = lambda: email_service
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
