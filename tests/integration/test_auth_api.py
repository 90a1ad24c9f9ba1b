"""Integration tests for registration, login and password recovery."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

REGISTRATION = {
    "email": "Noa@Example.com",
    "password": "trailhead42",
    "username": "noa_hikes",
    "first_name": "Noa",
    "last_name": "Levi",
}


async def _register(client: AsyncClient, **overrides) -> dict:
    response = await client.post("/api/v1/auth/register", json={**REGISTRATION, **overrides})
    assert response.status_code == 201, response.text
    return response.json()


class TestRegisterAndLogin:

    @pytest.mark.asyncio
    async def test_register_returns_token_and_profile(self, client: AsyncClient, email_service):
        data = await _register(client)
        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == "noa@example.com"
        assert data["user"]["rank"] == "Rookie"
        assert data["user"]["unread_notifications"] == 0
        email_service.send_welcome.assert_awaited_once_with("noa@example.com", "Noa")

        me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.json()["id"] == data["user"]["id"]

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, client: AsyncClient):
        await _register(client)
        response = await client.post(
            "/api/v1/auth/register", json={**REGISTRATION, "username": "someone_else"},
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_weak_password_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/register", json={**REGISTRATION, "password": "onlyletters"})
        assert response.status_code == 400
        assert "digit" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_login(self, client: AsyncClient):
        await _register(client)
        ok = await client.post("/api/v1/auth/login", json={"email": "noa@example.com", "password": "trailhead42"})
        assert ok.status_code == 200
        assert ok.json()["user"]["username"] == "noa_hikes"

        bad = await client.post("/api/v1/auth/login", json={"email": "noa@example.com", "password": "wrong-pass1"})
        assert bad.status_code == 401

    @pytest.mark.asyncio
    async def test_me_requires_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code in (401, 403)

    @pytest.mark.asyncio
    async def test_garbage_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401


class TestPasswordRecovery:

    @pytest.mark.asyncio
    async def test_code_reset_flow(self, client: AsyncClient, verification_store, email_service):
        await _register(client)

        sent = await client.post("/api/v1/auth/send-verification-code", json={"email": "noa@example.com"})
        assert sent.status_code == 200
        code = verification_store.issued["noa@example.com"]
        email_service.send_verification_code.assert_awaited_once()

        again = await client.post("/api/v1/auth/send-verification-code", json={"email": "noa@example.com"})
        assert again.status_code == 400

        verified = await client.post("/api/v1/auth/verify-code", json={"email": "noa@example.com", "code": code})
        assert verified.status_code == 200
        reset_token = verified.json()["reset_token"]

        reused = await client.post("/api/v1/auth/verify-code", json={"email": "noa@example.com", "code": code})
        assert reused.status_code == 400

        updated = await client.post(
            "/api/v1/auth/update-password",
            json={"reset_token": reset_token, "new_password": "newtrail77"},
        )
        assert updated.status_code == 200
        email_service.send_password_changed.assert_awaited_once()

        old = await client.post("/api/v1/auth/login", json={"email": "noa@example.com", "password": "trailhead42"})
        new = await client.post("/api/v1/auth/login", json={"email": "noa@example.com", "password": "newtrail77"})
        assert (old.status_code, new.status_code) == (401, 200)

    @pytest.mark.asyncio
    async def test_reset_token_works_once(self, client: AsyncClient, verification_store):
        await _register(client)
        await client.post("/api/v1/auth/send-verification-code", json={"email": "noa@example.com"})
        code = verification_store.issued["noa@example.com"]
        verified = await client.post("/api/v1/auth/verify-code", json={"email": "noa@example.com", "code": code})
        reset_token = verified.json()["reset_token"]

        weak = await client.post(
            "/api/v1/auth/update-password", json={"reset_token": reset_token, "new_password": "short"},
        )
        assert weak.status_code == 400

        first = await client.post(
            "/api/v1/auth/update-password", json={"reset_token": reset_token, "new_password": "newtrail77"},
        )
        assert first.status_code == 200

        second = await client.post(
            "/api/v1/auth/update-password", json={"reset_token": reset_token, "new_password": "takeover99"},
        )
        assert second.status_code == 401

        takeover = await client.post(
            "/api/v1/auth/login", json={"email": "noa@example.com", "password": "takeover99"},
        )
        kept = await client.post("/api/v1/auth/login", json={"email": "noa@example.com", "password": "newtrail77"})
        assert (takeover.status_code, kept.status_code) == (401, 200)

    @pytest.mark.asyncio
    async def test_unknown_email(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/send-verification-code", json={"email": "ghost@example.com"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_reset_token(self, client: AsyncClient):
        data = await _register(client)
        response = await client.post(
            "/api/v1/auth/update-password",
            json={"reset_token": data["access_token"], "new_password": "newtrail77"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_change_password(self, client: AsyncClient):
        data = await _register(client)
        headers = {"Authorization": f"Bearer {data['access_token']}"}

        wrong = await client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "nottheone1", "new_password": "newtrail77"},
            headers=headers,
        )
        assert wrong.status_code == 400

        ok = await client.post(
            "/api/v1/auth/change-password",
            json={"current_password": "trailhead42", "new_password": "newtrail77"},
            headers=headers,
        )
        assert ok.status_code == 200
