"""Friend workflow unit tests: symmetric rows, notifications, counters."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from hikemeet.db.models import Friendship, User
from hikemeet.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from hikemeet.friends.service import (
    accept_request,
    block_user,
    cancel_request,
    decline_request,
    get_status,
    list_friendships,
    remove_friend,
    send_request,
    unblock_user,
)
from hikemeet.notifications.service import count_unread_rows
from tests.conftest import notifications_for, unread_counter


async def _row_count(db, a: int, b: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Friendship).where(
            ((Friendship.user_id == a) & (Friendship.peer_id == b))
            | ((Friendship.user_id == b) & (Friendship.peer_id == a))
        )
    )
    return result.scalar_one()


class TestSendRequest:

    @pytest.mark.asyncio
    async def test_writes_symmetric_rows(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")

        await send_request(db_session, push_gateway, alice.id, bob.id)
        await db_session.commit()

        assert await get_status(db_session, alice.id, bob.id) == "request_sent"
        assert await get_status(db_session, bob.id, alice.id) == "request_received"

        notes = await notifications_for(db_session, bob.id, "friend_request")
        assert len(notes) == 1
        assert notes[0].actor_id == alice.id
        assert await unread_counter(db_session, bob.id) == 1

    @pytest.mark.asyncio
    async def test_second_send_conflicts(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await send_request(db_session, push_gateway, alice.id, bob.id)
        await db_session.commit()

        with pytest.raises(ConflictError):
            await send_request(db_session, push_gateway, alice.id, bob.id)
        with pytest.raises(ConflictError):
            await send_request(db_session, push_gateway, bob.id, alice.id)

    @pytest.mark.asyncio
    async def test_self_request_rejected(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        with pytest.raises(ValidationError):
            await send_request(db_session, push_gateway, alice.id, alice.id)

    @pytest.mark.asyncio
    async def test_blocked_sender_forbidden(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await block_user(db_session, bob.id, alice.id)
        await db_session.commit()

        with pytest.raises(ForbiddenError):
            await send_request(db_session, push_gateway, alice.id, bob.id)


class TestAcceptDecline:

    @pytest.mark.asyncio
    async def test_accept_marks_both_sides_and_notifies(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await send_request(db_session, push_gateway, alice.id, bob.id)
        await db_session.commit()

        await accept_request(db_session, push_gateway, bob.id, alice.id)
        await db_session.commit()

        assert await get_status(db_session, alice.id, bob.id) == "accepted"
        assert await get_status(db_session, bob.id, alice.id) == "accepted"

        request_note = (await notifications_for(db_session, bob.id, "friend_request"))[0]
        assert request_note.read is True
        assert await unread_counter(db_session, bob.id) == 0

        accepted = await notifications_for(db_session, alice.id, "friend_accept")
        assert len(accepted) == 1
        assert await unread_counter(db_session, alice.id) == await count_unread_rows(db_session, alice.id)

        exp = await db_session.execute(select(User.exp).where(User.id.in_([alice.id, bob.id])))
        assert all(value > 0 for value in exp.scalars().all())

    @pytest.mark.asyncio
    async def test_accept_without_request_is_not_found(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        with pytest.raises(NotFoundError):
            await accept_request(db_session, push_gateway, bob.id, alice.id)

    @pytest.mark.asyncio
    async def test_decline_drops_rows_and_notification(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await send_request(db_session, push_gateway, alice.id, bob.id)
        await db_session.commit()

        await decline_request(db_session, bob.id, alice.id)
        await db_session.commit()

        assert await _row_count(db_session, alice.id, bob.id) == 0
        assert await notifications_for(db_session, bob.id, "friend_request") == []
        assert await unread_counter(db_session, bob.id) == 0

    @pytest.mark.asyncio
    async def test_cancel_by_sender(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await send_request(db_session, push_gateway, alice.id, bob.id)
        await db_session.commit()

        with pytest.raises(NotFoundError):
            await cancel_request(db_session, bob.id, alice.id)

        await cancel_request(db_session, alice.id, bob.id)
        await db_session.commit()
        assert await _row_count(db_session, alice.id, bob.id) == 0
        assert await unread_counter(db_session, bob.id) == 0


class TestRemoveAndBlock:

    @pytest.mark.asyncio
    async def test_remove_friend(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await send_request(db_session, push_gateway, alice.id, bob.id)
        await accept_request(db_session, push_gateway, bob.id, alice.id)
        await db_session.commit()

        await remove_friend(db_session, bob.id, alice.id)
        await db_session.commit()
        assert await _row_count(db_session, alice.id, bob.id) == 0

        with pytest.raises(NotFoundError):
            await remove_friend(db_session, bob.id, alice.id)

    @pytest.mark.asyncio
    async def test_block_removes_pending_request(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await send_request(db_session, push_gateway, alice.id, bob.id)
        await db_session.commit()

        await block_user(db_session, bob.id, alice.id)
        await db_session.commit()

        assert await get_status(db_session, bob.id, alice.id) == "blocked"
        assert await get_status(db_session, alice.id, bob.id) == "none"
        assert await unread_counter(db_session, bob.id) == 0

        await unblock_user(db_session, bob.id, alice.id)
        await db_session.commit()
        assert await get_status(db_session, bob.id, alice.id) == "none"

    @pytest.mark.asyncio
    async def test_blocking_someone_you_asked_withdraws_the_request(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await send_request(db_session, push_gateway, alice.id, bob.id)
        await db_session.commit()
        assert await unread_counter(db_session, bob.id) == 1

        await block_user(db_session, alice.id, bob.id)
        await db_session.commit()

        assert await notifications_for(db_session, bob.id, "friend_request") == []
        assert await unread_counter(db_session, bob.id) == 0
        assert await count_unread_rows(db_session, bob.id) == 0
        assert await get_status(db_session, bob.id, alice.id) == "none"
        with pytest.raises(NotFoundError):
            await accept_request(db_session, push_gateway, bob.id, alice.id)

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, db_session, user_factory, push_gateway):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        carol = await user_factory("carol")
        await send_request(db_session, push_gateway, alice.id, bob.id)
        await send_request(db_session, push_gateway, alice.id, carol.id)
        await accept_request(db_session, push_gateway, carol.id, alice.id)
        await db_session.commit()

        sent = await list_friendships(db_session, alice.id, "request_sent")
        assert [peer.username for _, peer in sent] == ["bob"]
        accepted = await list_friendships(db_session, alice.id, "accepted")
        assert [peer.username for _, peer in accepted] == ["carol"]

        with pytest.raises(ValidationError):
            await list_friendships(db_session, alice.id, "bogus")
