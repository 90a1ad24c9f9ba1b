"""Profiles, media, trips, reports, search and admin over HTTP."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from hikemeet.config import get_settings
from tests.conftest import auth_headers

MASADA = {"name": "Masada", "location_address": "Judean Desert", "latitude": 31.31, "longitude": 35.35}


class TestUsersApi:

    @pytest.mark.asyncio
    async def test_me_and_profile_update(self, client: AsyncClient, user_factory):
        user = await user_factory("maya")
        taken = await user_factory("taken")

        me = await client.get("/api/v1/users/me", headers=auth_headers(user))
        assert me.status_code == 200
        assert me.json()["username"] == "maya"

        updated = await client.patch("/api/v1/users/me", json={"bio": "Peaks only"}, headers=auth_headers(user))
        assert updated.json()["bio"] == "Peaks only"

        clash = await client.patch("/api/v1/users/me", json={"username": taken.username}, headers=auth_headers(user))
        assert clash.status_code == 409

        public = await client.get(f"/api/v1/users/{user.id}", headers=auth_headers(taken))
        assert "email" not in public.json()

    @pytest.mark.asyncio
    async def test_privacy_and_mutes(self, client: AsyncClient, user_factory):
        user = await user_factory()
        privacy = await client.put(
            "/api/v1/users/me/privacy", json={"post_visibility": "private"}, headers=auth_headers(user),
        )
        assert privacy.json()["post_visibility"] == "private"

        muted = await client.post("/api/v1/users/me/muted-types", json={"type": "post_like"}, headers=auth_headers(user))
        assert muted.json() == {"muted_notification_types": ["post_like"]}
        unmuted = await client.delete("/api/v1/users/me/muted-types/post_like", headers=auth_headers(user))
        assert unmuted.json() == {"muted_notification_types": []}

    @pytest.mark.asyncio
    async def test_push_token_registration(self, client: AsyncClient, user_factory):
        user = await user_factory()
        body = {"token": "ExponentPushToken[device-1]"}
        first = await client.post("/api/v1/users/me/push-tokens", json=body, headers=auth_headers(user))
        second = await client.post("/api/v1/users/me/push-tokens", json=body, headers=auth_headers(user))
        assert (first.json(), second.json()) == ({"added": True}, {"added": False})

    @pytest.mark.asyncio
    async def test_profile_picture_replace_and_reset(self, client: AsyncClient, user_factory, media_host):
        user = await user_factory()
        files = {"file": ("me.jpg", b"\xff\xd8jpeg", "image/jpeg")}

        first = await client.post("/api/v1/users/me/profile-picture", files=files, headers=auth_headers(user))
        assert first.status_code == 200
        assert first.json()["profile_picture"]["image_id"] == "profile_images/img1"

        await client.post("/api/v1/users/me/profile-picture", files=files, headers=auth_headers(user))
        assert media_host.deleted == ["profile_images/img1"]

        reset = await client.delete("/api/v1/users/me/profile-picture", headers=auth_headers(user))
        assert reset.json()["profile_picture"]["image_id"] == get_settings().default_profile_image_id
        assert media_host.deleted == ["profile_images/img1", "profile_images/img2"]


class TestMediaApi:

    @pytest.mark.asyncio
    async def test_upload(self, client: AsyncClient, user_factory):
        user = await user_factory()
        response = await client.post(
            "/api/v1/media/upload?folder=post_images",
            files={"file": ("a.png", b"png-bytes", "image/png")},
            headers=auth_headers(user),
        )
        assert response.status_code == 201
        assert response.json() == {"url": "https://media.test/post_images/img1.jpg", "image_id": "post_images/img1"}

    @pytest.mark.asyncio
    async def test_rejects_non_images_and_unknown_folders(self, client: AsyncClient, user_factory):
        user = await user_factory()
        text = await client.post(
            "/api/v1/media/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=auth_headers(user),
        )
        assert text.status_code == 400
        folder = await client.post(
            "/api/v1/media/upload?folder=secrets",
            files={"file": ("a.png", b"png-bytes", "image/png")},
            headers=auth_headers(user),
        )
        assert folder.status_code == 400

    @pytest.mark.asyncio
    async def test_too_large(self, client: AsyncClient, user_factory, monkeypatch):
        user = await user_factory()
        monkeypatch.setattr(get_settings(), "max_upload_bytes", 4)
        response = await client.post(
            "/api/v1/media/upload",
            files={"file": ("a.png", b"12345", "image/png")},
            headers=auth_headers(user),
        )
        assert response.status_code == 413


class TestTripsApi:

    @pytest.mark.asyncio
    async def test_create_update_delete(self, client: AsyncClient, user_factory):
        owner = await user_factory()
        other = await user_factory()

        created = await client.post("/api/v1/trips", json=MASADA, headers=auth_headers(owner))
        assert created.status_code == 201
        trip_id = created.json()["id"]

        denied = await client.patch(f"/api/v1/trips/{trip_id}", json={"name": "Mine"}, headers=auth_headers(other))
        assert denied.status_code == 403

        bad = await client.patch(f"/api/v1/trips/{trip_id}", json={"latitude": 120}, headers=auth_headers(owner))
        assert bad.status_code == 400

        listing = await client.get("/api/v1/trips", headers=auth_headers(other))
        assert listing.json()["total"] == 1

        deleted = await client.delete(f"/api/v1/trips/{trip_id}", headers=auth_headers(owner))
        assert deleted.status_code == 204


class TestReportsApi:

    @pytest.mark.asyncio
    async def test_report_and_triage(self, client: AsyncClient, user_factory):
        reporter = await user_factory("reporter")
        target = await user_factory("target")
        admin = await user_factory("moderator", role="admin")

        created = await client.post(
            "/api/v1/reports",
            json={"target_type": "user", "target_id": target.id, "reason": "fake profile"},
            headers=auth_headers(reporter),
        )
        assert created.status_code == 201
        report_id = created.json()["id"]

        forbidden = await client.get("/api/v1/reports", headers=auth_headers(reporter))
        assert forbidden.status_code == 403

        listing = await client.get("/api/v1/reports", headers=auth_headers(admin))
        assert listing.json()["reports"][0]["reporter_username"] == "reporter"

        patched = await client.patch(
            f"/api/v1/reports/{report_id}", json={"status": "resolved"}, headers=auth_headers(admin),
        )
        assert patched.json()["status"] == "resolved"

        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(admin))
        assert count.json()["unread_count"] == 1

    @pytest.mark.asyncio
    async def test_missing_target(self, client: AsyncClient, user_factory):
        reporter = await user_factory()
        response = await client.post(
            "/api/v1/reports",
            json={"target_type": "post", "target_id": 12345, "reason": "spam"},
            headers=auth_headers(reporter),
        )
        assert response.status_code == 404


class TestSearchApi:

    @pytest.mark.asyncio
    async def test_search_by_kind(self, client: AsyncClient, user_factory):
        user = await user_factory("galilee_guide")
        await client.post(
            "/api/v1/trips",
            json={**MASADA, "name": "Galilee loop", "location_address": "Upper Galilee"},
            headers=auth_headers(user),
        )

        everything = await client.get("/api/v1/search?q=galilee", headers=auth_headers(user))
        data = everything.json()
        assert [u["username"] for u in data["users"]] == ["galilee_guide"]
        assert [t["name"] for t in data["trips"]] == ["Galilee loop"]

        trips_only = await client.get("/api/v1/search?q=galilee&kind=trips", headers=auth_headers(user))
        assert trips_only.json()["users"] == []


class TestAdminApi:

    @pytest.mark.asyncio
    async def test_admin_endpoints_require_admin(self, client: AsyncClient, user_factory):
        user = await user_factory()
        response = await client.get("/api/v1/admin/users", headers=auth_headers(user))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_promote_and_delete(self, client: AsyncClient, user_factory):
        admin = await user_factory(role="admin")
        user = await user_factory()

        promoted = await client.put(
            f"/api/v1/admin/users/{user.id}/role", json={"role": "admin"}, headers=auth_headers(admin),
        )
        assert promoted.json()["role"] == "admin"

        self_demote = await client.put(
            f"/api/v1/admin/users/{admin.id}/role", json={"role": "user"}, headers=auth_headers(admin),
        )
        assert self_demote.status_code == 400

        deleted = await client.delete(f"/api/v1/admin/users/{user.id}", headers=auth_headers(admin))
        assert deleted.status_code == 204

        listing = await client.get("/api/v1/admin/users", headers=auth_headers(admin))
        assert listing.json()["total"] == 1

        gone = await client.get("/api/v1/users/me", headers=auth_headers(user))
        assert gone.status_code == 401
