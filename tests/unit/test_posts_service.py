"""Post service tests: likes, shares, comments and the delete cascade."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from hikemeet.db.models import Comment, Group, GroupMember, Post, PostLike, PostShare, User
from hikemeet.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from hikemeet.posts.service import (
    add_comment,
    create_post,
    delete_comment,
    delete_post,
    get_visible_post,
    like_comment,
    like_post,
    list_posts,
    share_post,
    unlike_comment,
    unlike_post,
)
from tests.conftest import notifications_for, unread_counter


async def _exp(db, user_id: int) -> int:
    return (await db.execute(select(User.exp).where(User.id == user_id))).scalar_one()


async def _count(db, model, *criteria) -> int:
    return (await db.execute(select(func.count()).select_from(model).where(*criteria))).scalar_one()


class TestCreate:

    @pytest.mark.asyncio
    async def test_empty_post_rejected(self, db_session, user_factory):
        author = await user_factory()
        with pytest.raises(ValidationError):
            await create_post(db_session, None, author.id, {"content": "", "images": []})

    @pytest.mark.asyncio
    async def test_group_post_requires_membership_and_notifies_members(self, db_session, user_factory, push_gateway):
        owner = await user_factory()
        member = await user_factory()
        outsider = await user_factory()
        group = Group(name="Dawn patrol", max_members=5, privacy="public", created_by=owner.id)
        db_session.add(group)
        await db_session.flush()
        db_session.add_all([
            GroupMember(group_id=group.id, user_id=owner.id, role="admin"),
            GroupMember(group_id=group.id, user_id=member.id, role="companion"),
        ])
        await db_session.commit()

        with pytest.raises(ForbiddenError):
            await create_post(db_session, push_gateway, outsider.id, {"content": "hi", "group_id": group.id})

        post = await create_post(db_session, push_gateway, owner.id, {"content": "Meet at 6", "group_id": group.id})
        await db_session.commit()

        notes = await notifications_for(db_session, member.id, "post_create_in_group")
        assert [n.post_id for n in notes] == [post.id]
        assert await notifications_for(db_session, owner.id, "post_create_in_group") == []
        assert await _exp(db_session, owner.id) == 5

    @pytest.mark.asyncio
    async def test_default_privacy_follows_user_setting(self, db_session, user_factory):
        author = await user_factory(post_visibility="private")
        post = await create_post(db_session, None, author.id, {"content": "just me"})
        await db_session.commit()
        assert post.privacy == "private"


class TestVisibility:

    @pytest.mark.asyncio
    async def test_private_post_hidden_from_others(self, db_session, user_factory):
        author = await user_factory()
        other = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "secret", "privacy": "private"})
        await create_post(db_session, None, author.id, {"content": "hello world", "privacy": "public"})
        await db_session.commit()

        with pytest.raises(NotFoundError):
            await get_visible_post(db_session, post.id, other.id)
        assert (await get_visible_post(db_session, post.id, author.id)).id == post.id

        _, total_other = await list_posts(db_session, other.id)
        _, total_author = await list_posts(db_session, author.id)
        assert (total_other, total_author) == (1, 2)


class TestLikes:

    @pytest.mark.asyncio
    async def test_second_like_conflicts(self, db_session, user_factory):
        author = await user_factory()
        fan = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "summit!"})
        await db_session.commit()

        assert await like_post(db_session, None, post.id, fan.id) == 1
        await db_session.commit()
        with pytest.raises(ConflictError):
            await like_post(db_session, None, post.id, fan.id)

    @pytest.mark.asyncio
    async def test_unlike_removes_notification_and_counter(self, db_session, user_factory):
        author = await user_factory()
        fan = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "summit!"})
        await like_post(db_session, None, post.id, fan.id)
        await db_session.commit()
        assert await unread_counter(db_session, author.id) == 1

        assert await unlike_post(db_session, post.id, fan.id) == 0
        await db_session.commit()
        assert await notifications_for(db_session, author.id, "post_like") == []
        assert await unread_counter(db_session, author.id) == 0

        with pytest.raises(NotFoundError):
            await unlike_post(db_session, post.id, fan.id)

    @pytest.mark.asyncio
    async def test_self_like_not_notified(self, db_session, user_factory):
        author = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "me"})
        await like_post(db_session, None, post.id, author.id)
        await db_session.commit()
        assert await unread_counter(db_session, author.id) == 0


class TestShares:

    @pytest.mark.asyncio
    async def test_sharing_a_share_points_at_the_root(self, db_session, user_factory):
        author = await user_factory()
        first = await user_factory()
        second = await user_factory()
        root = await create_post(db_session, None, author.id, {"content": "view from the top"})
        await db_session.commit()

        shared = await share_post(db_session, None, root.id, first.id)
        again = await share_post(db_session, None, shared.id, second.id)
        await db_session.commit()

        assert shared.original_post_id == root.id
        assert again.original_post_id == root.id
        assert await _count(db_session, PostShare, PostShare.post_id == root.id) == 2
        assert len(await notifications_for(db_session, author.id, "post_shared")) == 2

    @pytest.mark.asyncio
    async def test_private_post_cannot_be_shared(self, db_session, user_factory):
        author = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "mine", "privacy": "private"})
        await db_session.commit()
        with pytest.raises(ValidationError):
            await share_post(db_session, None, post.id, author.id)


class TestComments:

    @pytest.mark.asyncio
    async def test_post_author_deleting_comment_keeps_commenter_exp(self, db_session, user_factory):
        author = await user_factory()
        fan = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "trail report"})
        comment = await add_comment(db_session, None, post.id, fan.id, "nice")
        await db_session.commit()
        assert await _exp(db_session, fan.id) == 2

        author_row = await db_session.get(User, author.id)
        await delete_comment(db_session, None, post.id, comment.id, author_row)
        await db_session.commit()
        assert await _exp(db_session, fan.id) == 2

    @pytest.mark.asyncio
    async def test_own_comment_delete_takes_exp_back(self, db_session, user_factory):
        author = await user_factory()
        fan = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "trail report"})
        comment = await add_comment(db_session, None, post.id, fan.id, "nice")
        await db_session.commit()

        fan_row = await db_session.get(User, fan.id)
        await delete_comment(db_session, None, post.id, comment.id, fan_row)
        await db_session.commit()
        assert await _exp(db_session, fan.id) == 0

    @pytest.mark.asyncio
    async def test_stranger_cannot_delete_comment(self, db_session, user_factory):
        author = await user_factory()
        fan = await user_factory()
        stranger = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "trail report"})
        comment = await add_comment(db_session, None, post.id, fan.id, "nice")
        await db_session.commit()

        with pytest.raises(ForbiddenError):
            await delete_comment(db_session, None, post.id, comment.id, stranger)

    @pytest.mark.asyncio
    async def test_deleting_comment_drops_its_notifications(self, db_session, user_factory):
        author = await user_factory()
        fan = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "trail report"})
        comment = await add_comment(db_session, None, post.id, fan.id, "nice")
        await like_comment(db_session, None, post.id, comment.id, author.id)
        await db_session.commit()
        assert len(await notifications_for(db_session, author.id, "post_comment")) == 1
        assert len(await notifications_for(db_session, fan.id, "comment_like")) == 1

        author_row = await db_session.get(User, author.id)
        await delete_comment(db_session, None, post.id, comment.id, author_row)
        await db_session.commit()

        assert await notifications_for(db_session, author.id, "post_comment") == []
        assert await notifications_for(db_session, fan.id, "comment_like") == []
        assert await unread_counter(db_session, author.id) == 0
        assert await unread_counter(db_session, fan.id) == 0

    @pytest.mark.asyncio
    async def test_unlike_comment_removes_like_notification(self, db_session, user_factory):
        author = await user_factory()
        fan = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "trail report"})
        comment = await add_comment(db_session, None, post.id, fan.id, "nice")
        await like_comment(db_session, None, post.id, comment.id, author.id)
        await db_session.commit()
        assert await unread_counter(db_session, fan.id) == 1

        await unlike_comment(db_session, post.id, comment.id, author.id)
        await db_session.commit()

        assert await notifications_for(db_session, fan.id, "comment_like") == []
        assert await unread_counter(db_session, fan.id) == 0

    @pytest.mark.asyncio
    async def test_likes_on_different_comments_notify_separately(self, db_session, user_factory):
        author = await user_factory()
        fan = await user_factory()
        post = await create_post(db_session, None, author.id, {"content": "trail report"})
        first = await add_comment(db_session, None, post.id, fan.id, "nice")
        second = await add_comment(db_session, None, post.id, fan.id, "great views")
        await like_comment(db_session, None, post.id, first.id, author.id)
        await like_comment(db_session, None, post.id, second.id, author.id)
        await db_session.commit()

        likes = await notifications_for(db_session, fan.id, "comment_like")
        assert sorted(n.comment_id for n in likes) == sorted([first.id, second.id])
        assert await unread_counter(db_session, fan.id) == 2


class TestDeleteCascade:

    @pytest.mark.asyncio
    async def test_delete_removes_dependents_media_and_exp(self, db_session, user_factory, media_host):
        author = await user_factory()
        fan = await user_factory()
        post = await create_post(
            db_session, None, author.id,
            {"content": "photos", "images": [{"url": "https://media.test/a.jpg", "image_id": "posts/a"}]},
        )
        await like_post(db_session, None, post.id, fan.id)
        await add_comment(db_session, None, post.id, fan.id, "wow")
        await db_session.commit()
        assert await unread_counter(db_session, author.id) == 2

        author_row = await db_session.get(User, author.id)
        await delete_post(db_session, None, media_host, post.id, author_row)
        await db_session.commit()

        assert await _count(db_session, Post, Post.id == post.id) == 0
        assert await _count(db_session, PostLike, PostLike.post_id == post.id) == 0
        assert await _count(db_session, Comment, Comment.post_id == post.id) == 0
        assert await notifications_for(db_session, author.id) == []
        assert await unread_counter(db_session, author.id) == 0
        assert media_host.deleted == ["posts/a"]
        assert await _exp(db_session, author.id) == 0

    @pytest.mark.asyncio
    async def test_only_author_or_admin_deletes(self, db_session, user_factory):
        author = await user_factory()
        other = await user_factory()
        admin = await user_factory(role="admin")
        post = await create_post(db_session, None, author.id, {"content": "x"})
        await db_session.commit()

        with pytest.raises(ForbiddenError):
            await delete_post(db_session, None, None, post.id, other)
        await delete_post(db_session, None, None, post.id, admin)
        await db_session.commit()
        assert await _count(db_session, Post, Post.id == post.id) == 0
