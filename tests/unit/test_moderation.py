"""Reports, search and admin account management."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from hikemeet.admin.service import delete_user, list_users, set_role
from hikemeet.auth.identity import LocalIdentityProvider
from hikemeet.db.models import Friendship, Group, GroupMember, Notification, Post, User
from hikemeet.errors import NotFoundError, ValidationError
from hikemeet.notifications.service import notify
from hikemeet.posts.service import create_post, like_post
from hikemeet.reports.service import create_report, list_reports, update_report_status
from hikemeet.search.service import search_all
from hikemeet.trips.service import create_trip
from tests.conftest import notifications_for, unread_counter


class TestReports:

    @pytest.mark.asyncio
    async def test_report_notifies_other_admins(self, db_session, user_factory):
        reporter = await user_factory()
        target = await user_factory()
        admin_one = await user_factory(role="admin")
        admin_two = await user_factory(role="admin")

        report = await create_report(db_session, None, reporter.id, "user", target.id, "spam messages")
        await db_session.commit()

        for admin in (admin_one, admin_two):
            notes = await notifications_for(db_session, admin.id, "report_created")
            assert len(notes) == 1
            assert notes[0].data["reportId"] == report.id
            assert notes[0].data["targetType"] == "user"
        assert await notifications_for(db_session, target.id) == []

    @pytest.mark.asyncio
    async def test_admin_reporter_not_self_notified(self, db_session, user_factory):
        admin = await user_factory(role="admin")
        target = await user_factory()
        await create_report(db_session, None, admin.id, "user", target.id, "impersonation")
        await db_session.commit()
        assert await unread_counter(db_session, admin.id) == 0

    @pytest.mark.asyncio
    async def test_unknown_type_and_missing_target(self, db_session, user_factory):
        reporter = await user_factory()
        with pytest.raises(ValidationError):
            await create_report(db_session, None, reporter.id, "comment", 1, "rude")
        with pytest.raises(NotFoundError):
            await create_report(db_session, None, reporter.id, "post", 999, "rude")

    @pytest.mark.asyncio
    async def test_status_triage(self, db_session, user_factory):
        reporter = await user_factory()
        target = await user_factory()
        report = await create_report(db_session, None, reporter.id, "user", target.id, "spam messages")
        await db_session.commit()

        await update_report_status(db_session, report.id, "resolved")
        await db_session.commit()
        rows, total = await list_reports(db_session, status="resolved")
        assert total == 1
        assert rows[0][1].id == reporter.id

        with pytest.raises(ValidationError):
            await update_report_status(db_session, report.id, "closed")
        with pytest.raises(NotFoundError):
            await update_report_status(db_session, 999, "resolved")


class TestSearch:

    @pytest.mark.asyncio
    async def test_matches_across_kinds_case_insensitively(self, db_session, user_factory):
        user = await user_factory("carmelwalker")
        await create_trip(
            db_session, None, user.id,
            {"name": "Carmel Ridge", "location_address": "Haifa", "latitude": 32.7, "longitude": 35.0},
        )
        db_session.add(Group(name="carmel sunset", max_members=5, privacy="public", created_by=user.id))
        await db_session.commit()

        results = await search_all(db_session, "CARMEL")
        assert [u.username for u in results["users"]] == ["carmelwalker"]
        assert [t.name for t in results["trips"]] == ["Carmel Ridge"]
        assert [g.name for g in results["groups"]] == ["carmel sunset"]

    @pytest.mark.asyncio
    async def test_wildcards_are_literal(self, db_session, user_factory):
        await user_factory("plain")
        await user_factory("with_underscore")
        results = await search_all(db_session, "_", kinds=("users",))
        assert [u.username for u in results["users"]] == ["with_underscore"]

    @pytest.mark.asyncio
    async def test_blank_term(self, db_session, user_factory):
        await user_factory()
        assert await search_all(db_session, "   ") == {"users": [], "trips": [], "groups": []}


class TestAdminUsers:

    @pytest.mark.asyncio
    async def test_role_changes(self, db_session, user_factory):
        admin = await user_factory(role="admin")
        user = await user_factory()

        await set_role(db_session, admin.id, user.id, "admin")
        await db_session.commit()
        admins, total = await list_users(db_session, role="admin")
        assert total == 2

        with pytest.raises(ValidationError):
            await set_role(db_session, admin.id, admin.id, "user")
        with pytest.raises(ValidationError):
            await set_role(db_session, admin.id, user.id, "owner")

    @pytest.mark.asyncio
    async def test_delete_user_cascade(self, db_session, user_factory, media_host):
        admin = await user_factory(role="admin")
        doomed = await user_factory(profile_picture={"url": "https://media.test/p.jpg", "image_id": "profile/doomed"})
        friend = await user_factory()
        companion = await user_factory()

        db_session.add_all([
            Friendship(user_id=doomed.id, peer_id=friend.id, status="accepted"),
            Friendship(user_id=friend.id, peer_id=doomed.id, status="accepted"),
        ])
        group = Group(name="Night hike", max_members=6, privacy="public", created_by=doomed.id)
        db_session.add(group)
        await db_session.flush()
        db_session.add_all([
            GroupMember(group_id=group.id, user_id=doomed.id, role="admin"),
            GroupMember(group_id=group.id, user_id=companion.id, role="companion"),
        ])
        await db_session.commit()

        friend_post = await create_post(db_session, None, friend.id, {"content": "my trail"})
        await like_post(db_session, None, friend_post.id, doomed.id)
        await create_post(db_session, None, doomed.id, {"content": "bye"})
        await notify(db_session, None, to=doomed.id, type_="group_updated", title="Updated", group_id=group.id)
        await db_session.commit()
        assert await unread_counter(db_session, friend.id) == 1

        await delete_user(db_session, LocalIdentityProvider(), media_host, admin.id, doomed.id)
        await db_session.commit()

        assert await db_session.get(User, doomed.id) is None
        assert (await db_session.execute(
            select(func.count()).select_from(Post).where(Post.author_id == doomed.id)
        )).scalar_one() == 0
        assert (await db_session.execute(
            select(func.count()).select_from(Friendship).where(Friendship.peer_id == doomed.id)
        )).scalar_one() == 0
        assert (await db_session.execute(
            select(func.count()).select_from(Notification).where(Notification.user_id == doomed.id)
        )).scalar_one() == 0
        assert await unread_counter(db_session, friend.id) == 0
        role = (await db_session.execute(
            select(GroupMember.role).where(GroupMember.group_id == group.id, GroupMember.user_id == companion.id)
        )).scalar_one()
        assert role == "admin"
        assert media_host.deleted == ["profile/doomed"]

    @pytest.mark.asyncio
    async def test_cannot_delete_self_or_missing(self, db_session, user_factory):
        admin = await user_factory(role="admin")
        with pytest.raises(ValidationError):
            await delete_user(db_session, LocalIdentityProvider(), None, admin.id, admin.id)
        with pytest.raises(NotFoundError):
            await delete_user(db_session, LocalIdentityProvider(), None, admin.id, 999)
