"""Friends, groups, posts and notifications over HTTP."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from hikemeet.db.models import GroupMember

from tests.conftest import auth_headers


class TestFriendsApi:

    @pytest.mark.asyncio
    async def test_request_accept_and_notifications(self, client: AsyncClient, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")

        sent = await client.post(f"/api/v1/friends/{bob.id}/request", headers=auth_headers(alice))
        assert sent.status_code == 201
        assert sent.json()["status"] == "request_sent"

        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(bob))
        assert count.json() == {"unread_count": 1}

        accepted = await client.post(f"/api/v1/friends/{alice.id}/accept", headers=auth_headers(bob))
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"

        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(bob))
        assert count.json() == {"unread_count": 0}

        listing = await client.get("/api/v1/notifications", headers=auth_headers(alice))
        types = [n["type"] for n in listing.json()["notifications"]]
        assert "friend_accept" in types

        friends = await client.get("/api/v1/friends", headers=auth_headers(alice))
        assert friends.json()["total"] == 1
        assert friends.json()["friends"][0]["username"] == "bob"

    @pytest.mark.asyncio
    async def test_self_request_and_duplicate(self, client: AsyncClient, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")

        own = await client.post(f"/api/v1/friends/{alice.id}/request", headers=auth_headers(alice))
        assert own.status_code == 400

        await client.post(f"/api/v1/friends/{bob.id}/request", headers=auth_headers(alice))
        again = await client.post(f"/api/v1/friends/{bob.id}/request", headers=auth_headers(alice))
        assert again.status_code == 409


class TestGroupsApi:

    @pytest.mark.asyncio
    async def test_private_join_request_approval(self, client: AsyncClient, user_factory):
        owner = await user_factory("owner")
        hiker = await user_factory("hiker")

        created = await client.post(
            "/api/v1/groups",
            json={"name": "Golan waterfalls", "max_members": 4, "privacy": "private"},
            headers=auth_headers(owner),
        )
        assert created.status_code == 201
        group = created.json()
        assert group["member_count"] == 1
        assert group["status"] == "planned"

        joined = await client.post(f"/api/v1/groups/{group['id']}/join", headers=auth_headers(hiker))
        assert joined.json()["result"] == "requested"

        pending = await client.get(f"/api/v1/groups/{group['id']}/pending", headers=auth_headers(owner))
        assert [p["username"] for p in pending.json()] == ["hiker"]

        forbidden = await client.post(
            f"/api/v1/groups/{group['id']}/requests/{hiker.id}/approve", headers=auth_headers(hiker),
        )
        assert forbidden.status_code == 403

        approved = await client.post(
            f"/api/v1/groups/{group['id']}/requests/{hiker.id}/approve", headers=auth_headers(owner),
        )
        assert approved.status_code == 200

        members = await client.get(f"/api/v1/groups/{group['id']}/members", headers=auth_headers(owner))
        assert sorted(m["username"] for m in members.json()) == ["hiker", "owner"]

    @pytest.mark.asyncio
    async def test_invite_then_accept(self, client: AsyncClient, user_factory, db_session):
        owner = await user_factory("owner")
        guest = await user_factory("guest")
        created = await client.post(
            "/api/v1/groups", json={"name": "Negev stars", "max_members": 3}, headers=auth_headers(owner),
        )
        group_id = created.json()["id"]

        invited = await client.post(
            f"/api/v1/groups/{group_id}/invites", json={"user_id": guest.id}, headers=auth_headers(owner),
        )
        assert invited.status_code == 201

        accepted = await client.post(f"/api/v1/groups/{group_id}/invites/accept", headers=auth_headers(guest))
        assert accepted.status_code == 200
        assert accepted.json()["role"] == "companion"

        again = await client.post(f"/api/v1/groups/{group_id}/invites/accept", headers=auth_headers(guest))
        assert again.status_code == 200

        rows = await db_session.execute(
            select(func.count()).select_from(GroupMember).where(
                GroupMember.group_id == group_id, GroupMember.user_id == guest.id,
            ),
        )
        assert rows.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_invalid_body_is_422(self, client: AsyncClient, user_factory):
        owner = await user_factory("owner")
        response = await client.post(
            "/api/v1/groups", json={"name": "x", "max_members": 1}, headers=auth_headers(owner),
        )
        assert response.status_code == 422
        assert response.json()["detail"]

    @pytest.mark.asyncio
    async def test_delete_requires_creator(self, client: AsyncClient, user_factory):
        owner = await user_factory("owner")
        other = await user_factory("other")
        created = await client.post(
            "/api/v1/groups", json={"name": "Arbel cliff", "max_members": 5}, headers=auth_headers(owner),
        )
        group_id = created.json()["id"]

        denied = await client.delete(f"/api/v1/groups/{group_id}", headers=auth_headers(other))
        assert denied.status_code == 403
        deleted = await client.delete(f"/api/v1/groups/{group_id}", headers=auth_headers(owner))
        assert deleted.status_code == 204
        missing = await client.get(f"/api/v1/groups/{group_id}", headers=auth_headers(owner))
        assert missing.status_code == 404


class TestPostsApi:

    @pytest.mark.asyncio
    async def test_post_like_comment_flow(self, client: AsyncClient, user_factory):
        author = await user_factory("author")
        fan = await user_factory("fan")

        created = await client.post("/api/v1/posts", json={"content": "Sunrise at Masada"}, headers=auth_headers(author))
        assert created.status_code == 201
        post_id = created.json()["id"]

        liked = await client.post(f"/api/v1/posts/{post_id}/like", headers=auth_headers(fan))
        assert liked.json() == {"post_id": post_id, "count": 1}
        twice = await client.post(f"/api/v1/posts/{post_id}/like", headers=auth_headers(fan))
        assert twice.status_code == 409

        comment = await client.post(
            f"/api/v1/posts/{post_id}/comments", json={"text": "Stunning"}, headers=auth_headers(fan),
        )
        assert comment.status_code == 201

        fetched = await client.get(f"/api/v1/posts/{post_id}", headers=auth_headers(fan))
        body = fetched.json()
        assert (body["likes"], body["comments"], body["liked"]) == (1, 1, True)

        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(author))
        assert count.json()["unread_count"] == 2

        deleted = await client.delete(f"/api/v1/posts/{post_id}", headers=auth_headers(author))
        assert deleted.status_code == 204
        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(author))
        assert count.json()["unread_count"] == 0

    @pytest.mark.asyncio
    async def test_private_post_is_404_for_others(self, client: AsyncClient, user_factory):
        author = await user_factory("author")
        other = await user_factory("other")
        created = await client.post(
            "/api/v1/posts", json={"content": "diary", "privacy": "private"}, headers=auth_headers(author),
        )
        post_id = created.json()["id"]

        assert (await client.get(f"/api/v1/posts/{post_id}", headers=auth_headers(other))).status_code == 404
        assert (await client.get(f"/api/v1/posts/{post_id}", headers=auth_headers(author))).status_code == 200


class TestNotificationsApi:

    @pytest.mark.asyncio
    async def test_read_and_delete(self, client: AsyncClient, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        carol = await user_factory("carol")
        await client.post(f"/api/v1/friends/{bob.id}/request", headers=auth_headers(alice))
        await client.post(f"/api/v1/friends/{bob.id}/request", headers=auth_headers(carol))

        listing = (await client.get("/api/v1/notifications", headers=auth_headers(bob))).json()
        assert listing["total"] == 2
        assert listing["unread_count"] == 2
        first, second = listing["notifications"]

        read = await client.post(f"/api/v1/notifications/{first['id']}/read", headers=auth_headers(bob))
        assert read.status_code == 200
        foreign = await client.post(f"/api/v1/notifications/{first['id']}/read", headers=auth_headers(alice))
        assert foreign.status_code == 404

        removed = await client.delete(f"/api/v1/notifications/{second['id']}", headers=auth_headers(bob))
        assert removed.status_code == 204

        unread = await client.get("/api/v1/notifications?unread_only=true", headers=auth_headers(bob))
        assert unread.json()["total"] == 0
        assert unread.json()["unread_count"] == 0


class TestChatApi:

    @pytest.mark.asyncio
    async def test_open_list_close(self, client: AsyncClient, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")

        opened = await client.post(f"/api/v1/chat/{bob.id}", headers=auth_headers(alice))
        assert opened.status_code == 200
        assert [p["username"] for p in opened.json()["partners"]] == ["bob"]

        theirs = await client.get("/api/v1/chat", headers=auth_headers(bob))
        assert theirs.json()["total"] == 1
        assert theirs.json()["partners"][0]["user_id"] == alice.id

        closed = await client.delete(f"/api/v1/chat/{bob.id}", headers=auth_headers(alice))
        assert closed.json() == {"partners": [], "total": 0}
        assert (await client.get("/api/v1/chat", headers=auth_headers(bob))).json()["total"] == 1

    @pytest.mark.asyncio
    async def test_errors_mapped(self, client: AsyncClient, user_factory):
        alice = await user_factory("alice")
        assert (await client.post(f"/api/v1/chat/{alice.id}", headers=auth_headers(alice))).status_code == 400
        assert (await client.post("/api/v1/chat/999999", headers=auth_headers(alice))).status_code == 404
        assert (await client.get("/api/v1/chat")).status_code in (401, 403)
