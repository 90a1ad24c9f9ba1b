"""Posts, comments and the social graph around them.

Rules:
- Group posts require membership; other members get ``post_create_in_group``
- Private posts are visible to their author only and cannot be shared
- Sharing always points at the root original (lineage collapses)
- Likes are a set: a second like is a conflict
- Deleting a post runs the post cascade and takes back the author's EXP
- Deleting a comment takes back EXP only when its own author deletes it
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.config import get_settings
from hikemeet.db.models import (
    Comment,
    CommentLike,
    Group,
    GroupMember,
    Notification,
    Post,
    PostLike,
    PostSave,
    PostShare,
    Trip,
    User,
)
from hikemeet.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from hikemeet.gamification.exp_service import grant_exp
from hikemeet.media.host import MediaHost, remove_image
from hikemeet.notifications.push import PushGateway
from hikemeet.notifications.service import delete_notifications_where, notify, notify_or_bump
from hikemeet.posts.cascade import purge_posts

logger = structlog.get_logger()

EDITABLE_FIELDS = ("content", "images", "privacy", "attached_trip_id", "attached_group_id")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _display_name(db: AsyncSession, user_id: int) -> str:
    result = await db.execute(select(User.first_name, User.last_name, User.username).where(User.id == user_id))
    row = result.one_or_none()
    if row is None:
        return "Someone"
    first, last, username = row
    return f"{first} {last}".strip() or username


async def _is_member(db: AsyncSession, group_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(GroupMember.id).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )
    return result.first() is not None


async def _group_member_ids(db: AsyncSession, group_id: int) -> list[int]:
    result = await db.execute(select(GroupMember.user_id).where(GroupMember.group_id == group_id))
    return list(result.scalars().all())


async def _check_attachments(db: AsyncSession, fields: dict[str, Any]) -> None:
    if fields.get("attached_trip_id") is not None:
        found = await db.execute(select(Trip.id).where(Trip.id == fields["attached_trip_id"]))
        if found.first() is None:
            raise NotFoundError("Attached trip not found")
    if fields.get("attached_group_id") is not None:
        found = await db.execute(select(Group.id).where(Group.id == fields["attached_group_id"]))
        if found.first() is None:
            raise NotFoundError("Attached group not found")


async def get_post(db: AsyncSession, post_id: int) -> Post:
    result = await db.execute(select(Post).where(Post.id == post_id))
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFoundError("Post not found")
    return post


async def get_visible_post(db: AsyncSession, post_id: int, viewer_id: int) -> Post:
    """Get a post the viewer may see. Private posts of others look missing."""
    post = await get_post(db, post_id)
    if post.privacy == "private" and post.author_id != viewer_id:
        raise NotFoundError("Post not found")
    return post


async def post_stats(db: AsyncSession, post_ids: list[int], viewer_id: int) -> dict[int, dict[str, Any]]:
    """Like/comment/share/save counts plus the viewer's own like and save flags."""
    stats: dict[int, dict[str, Any]] = {
        pid: {"likes": 0, "comments": 0, "shares": 0, "saves": 0, "liked": False, "saved": False}
        for pid in post_ids
    }
    if not post_ids:
        return stats

    for model, key in ((PostLike, "likes"), (Comment, "comments"), (PostShare, "shares"), (PostSave, "saves")):
        result = await db.execute(
            select(model.post_id, func.count()).where(model.post_id.in_(post_ids)).group_by(model.post_id)
        )
        for post_id, count in result.all():
            stats[post_id][key] = count

    liked = await db.execute(select(PostLike.post_id).where(PostLike.post_id.in_(post_ids), PostLike.user_id == viewer_id))
    for post_id in liked.scalars().all():
        stats[post_id]["liked"] = True
    saved = await db.execute(select(PostSave.post_id).where(PostSave.post_id.in_(post_ids), PostSave.user_id == viewer_id))
    for post_id in saved.scalars().all():
        stats[post_id]["saved"] = True
    return stats


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


async def create_post(db: AsyncSession, push: PushGateway | None, author_id: int, fields: dict[str, Any]) -> Post:
    """Create a post, in a group or on the author's own feed."""
    group_id = fields.get("group_id")
    if group_id is not None and not await _is_member(db, group_id, author_id):
        raise ForbiddenError("Only group members can post in this group")
    if not fields.get("content") and not fields.get("images"):
        raise ValidationError("A post needs text or at least one image")
    await _check_attachments(db, fields)

    privacy = fields.get("privacy")
    if privacy is None:
        result = await db.execute(select(User.post_visibility).where(User.id == author_id))
        privacy = result.scalar_one_or_none() or "public"

    post = Post(
        author_id=author_id,
        group_id=group_id,
        content=fields.get("content") or "",
        images=list(fields.get("images") or []),
        attached_trip_id=fields.get("attached_trip_id"),
        attached_group_id=fields.get("attached_group_id"),
        type=fields.get("type") or "regular",
        privacy=privacy,
        is_shared=False,
    )
    db.add(post)
    await db.flush()

    await grant_exp(db, push, author_id, get_settings().exp_post_create, "post_create")

    if group_id is not None:
        name = await _display_name(db, author_id)
        for member_id in await _group_member_ids(db, group_id):
            if member_id == author_id:
                continue
            await notify(
                db, push,
                to=member_id,
                type_="post_create_in_group",
                title="New group post",
                body=f"{name} posted in your group",
                actor=author_id,
                group_id=group_id,
                post_id=post.id,
            )
    logger.info("post_created", post_id=post.id, author_id=author_id, group_id=group_id)
    return post


async def list_posts(
    db: AsyncSession,
    viewer_id: int,
    page: int = 1,
    per_page: int = 20,
    author_id: int | None = None,
    group_id: int | None = None,
    privacy: str | None = None,
) -> tuple[list[Post], int]:
    """Posts the viewer may see, newest first (paginated)."""
    query = select(Post).where(or_(Post.privacy == "public", Post.author_id == viewer_id))
    if author_id is not None:
        query = query.where(Post.author_id == author_id)
    if group_id is not None:
        query = query.where(Post.group_id == group_id)
    if privacy is not None:
        query = query.where(Post.privacy == privacy)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar_one()
    result = await db.execute(
        query.order_by(Post.created_at.desc(), Post.id.desc()).offset((page - 1) * per_page).limit(per_page)
    )
    return list(result.scalars().all()), total


async def update_post(
    db: AsyncSession, media: MediaHost | None, post_id: int, user_id: int, changes: dict[str, Any],
) -> Post:
    """Author edit. Images dropped from the post are removed from the media host."""
    post = await get_post(db, post_id)
    if post.author_id != user_id:
        raise ForbiddenError("Only the author can edit this post")
    await _check_attachments(db, changes)

    dropped: list[str] = []
    if changes.get("images") is not None:
        kept = {img.get("image_id") for img in changes["images"]}
        dropped = [img.get("image_id") for img in (post.images or []) if img.get("image_id") not in kept]

    for key in EDITABLE_FIELDS:
        if key in changes and changes[key] is not None:
            setattr(post, key, list(changes[key]) if key == "images" else changes[key])
    await db.flush()

    for image_id in dropped:
        await remove_image(media, image_id)
    return post


async def delete_post(
    db: AsyncSession,
    push: PushGateway | None,
    media: MediaHost | None,
    post_id: int,
    user: User,
) -> None:
    """Author or site admin deletes a post; the author loses the post's EXP."""
    post = await get_post(db, post_id)
    if post.author_id != user.id and user.role != "admin":
        raise ForbiddenError("Only the author or an admin can delete this post")

    author_id = post.author_id
    await purge_posts(db, media, Post.id == post_id)
    await grant_exp(db, push, author_id, -get_settings().exp_post_create, "post_delete")
    logger.info("post_deleted", post_id=post_id, deleted_by=user.id)


# ---------------------------------------------------------------------------
# Likes / saves / shares
# ---------------------------------------------------------------------------


async def like_post(db: AsyncSession, push: PushGateway | None, post_id: int, user_id: int) -> int:
    """Like a post. Returns the new like count."""
    post = await get_visible_post(db, post_id, user_id)
    existing = await db.execute(select(PostLike.id).where(PostLike.post_id == post_id, PostLike.user_id == user_id))
    if existing.first() is not None:
        raise ConflictError("You already liked this post")

    db.add(PostLike(post_id=post_id, user_id=user_id))
    await db.flush()

    if post.author_id != user_id:
        await notify_or_bump(
            db, push,
            to=post.author_id,
            type_="post_like",
            title="New like",
            body=f"{await _display_name(db, user_id)} liked your post",
            actor=user_id,
            post_id=post_id,
        )
    return (await post_stats(db, [post_id], user_id))[post_id]["likes"]


async def unlike_post(db: AsyncSession, post_id: int, user_id: int) -> int:
    post = await get_post(db, post_id)
    result = await db.execute(delete(PostLike).where(PostLike.post_id == post_id, PostLike.user_id == user_id))
    if result.rowcount == 0:
        raise NotFoundError("You have not liked this post")
    await delete_notifications_where(
        db,
        Notification.user_id == post.author_id,
        Notification.actor_id == user_id,
        Notification.type == "post_like",
        Notification.post_id == post_id,
    )
    return (await post_stats(db, [post_id], user_id))[post_id]["likes"]


async def save_post(db: AsyncSession, post_id: int, user_id: int) -> bool:
    """Bookmark a post. Returns False if it was already saved."""
    await get_visible_post(db, post_id, user_id)
    existing = await db.execute(select(PostSave.id).where(PostSave.post_id == post_id, PostSave.user_id == user_id))
    if existing.first() is not None:
        return False
    db.add(PostSave(post_id=post_id, user_id=user_id))
    await db.flush()
    return True


async def unsave_post(db: AsyncSession, post_id: int, user_id: int) -> bool:
    result = await db.execute(delete(PostSave).where(PostSave.post_id == post_id, PostSave.user_id == user_id))
    return result.rowcount > 0


async def list_saved_posts(db: AsyncSession, user_id: int) -> list[Post]:
    """Saved posts, most recently saved first. Posts since made private by others drop out."""
    result = await db.execute(
        select(Post)
        .join(PostSave, PostSave.post_id == Post.id)
        .where(PostSave.user_id == user_id, or_(Post.privacy == "public", Post.author_id == user_id))
        .order_by(PostSave.created_at.desc(), PostSave.id.desc())
    )
    return list(result.scalars().all())


async def share_post(
    db: AsyncSession,
    push: PushGateway | None,
    post_id: int,
    user_id: int,
    content: str = "",
    group_id: int | None = None,
) -> Post:
    """Share a post to the sharer's feed or into a group."""
    post = await get_visible_post(db, post_id, user_id)
    root = post
    if post.is_shared and post.original_post_id is not None:
        result = await db.execute(select(Post).where(Post.id == post.original_post_id))
        root = result.scalar_one_or_none() or post
    if root.privacy == "private":
        raise ValidationError("Private posts cannot be shared")
    if group_id is not None and not await _is_member(db, group_id, user_id):
        raise ForbiddenError("Only group members can share into this group")

    shared = Post(
        author_id=user_id,
        group_id=group_id,
        content=content,
        images=[],
        type="shared",
        privacy="public",
        is_shared=True,
        original_post_id=root.id,
    )
    db.add(shared)
    recorded = await db.execute(select(PostShare.id).where(PostShare.post_id == root.id, PostShare.user_id == user_id))
    if recorded.first() is None:
        db.add(PostShare(post_id=root.id, user_id=user_id))
    await db.flush()

    name = await _display_name(db, user_id)
    if root.author_id != user_id:
        await notify_or_bump(
            db, push,
            to=root.author_id,
            type_="post_shared",
            title="Your post was shared",
            body=f"{name} shared your post",
            actor=user_id,
            post_id=root.id,
        )
    if group_id is not None:
        for member_id in await _group_member_ids(db, group_id):
            if member_id == user_id:
                continue
            await notify(
                db, push,
                to=member_id,
                type_="post_shared_in_group",
                title="Post shared in your group",
                body=f"{name} shared a post in your group",
                actor=user_id,
                group_id=group_id,
                post_id=shared.id,
            )

    await grant_exp(db, push, user_id, get_settings().exp_share, "post_share")
    logger.info("post_shared", post_id=root.id, shared_id=shared.id, user_id=user_id, group_id=group_id)
    return shared


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


async def get_comment(db: AsyncSession, post_id: int, comment_id: int) -> Comment:
    result = await db.execute(select(Comment).where(Comment.id == comment_id, Comment.post_id == post_id))
    comment = result.scalar_one_or_none()
    if comment is None:
        raise NotFoundError("Comment not found")
    return comment


async def list_comments(db: AsyncSession, post_id: int, viewer_id: int) -> list[dict[str, Any]]:
    """Comments oldest first with like counts and the viewer's like flag."""
    await get_visible_post(db, post_id, viewer_id)
    result = await db.execute(
        select(Comment, User.username)
        .join(User, User.id == Comment.user_id)
        .where(Comment.post_id == post_id)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    rows = result.all()
    ids = [comment.id for comment, _ in rows]
    likes: dict[int, int] = {}
    mine: set[int] = set()
    if ids:
        counts = await db.execute(
            select(CommentLike.comment_id, func.count())
            .where(CommentLike.comment_id.in_(ids))
            .group_by(CommentLike.comment_id)
        )
        likes = dict(counts.all())
        own = await db.execute(
            select(CommentLike.comment_id).where(CommentLike.comment_id.in_(ids), CommentLike.user_id == viewer_id)
        )
        mine = set(own.scalars().all())
    return [
        {
            "id": comment.id,
            "post_id": comment.post_id,
            "user_id": comment.user_id,
            "username": username,
            "text": comment.text,
            "likes": likes.get(comment.id, 0),
            "liked": comment.id in mine,
            "created_at": comment.created_at,
        }
        for comment, username in rows
    ]


async def add_comment(db: AsyncSession, push: PushGateway | None, post_id: int, user_id: int, text: str) -> Comment:
    post = await get_visible_post(db, post_id, user_id)
    comment = Comment(post_id=post_id, user_id=user_id, text=text)
    db.add(comment)
    await db.flush()

    await grant_exp(db, push, user_id, get_settings().exp_comment, "comment")
    if post.author_id != user_id:
        await notify(
            db, push,
            to=post.author_id,
            type_="post_comment",
            title="New comment",
            body=f"{await _display_name(db, user_id)} commented on your post",
            actor=user_id,
            post_id=post_id,
            comment_id=comment.id,
        )
    return comment


async def delete_comment(db: AsyncSession, push: PushGateway | None, post_id: int, comment_id: int, user: User) -> None:
    """Comment author, post author or site admin may delete.

    EXP is taken back only when the comment's own author deletes it.
    """
    post = await get_post(db, post_id)
    comment = await get_comment(db, post_id, comment_id)
    if user.id not in (comment.user_id, post.author_id) and user.role != "admin":
        raise ForbiddenError("You cannot delete this comment")

    author_id = comment.user_id
    await db.delete(comment)
    await db.flush()
    await delete_notifications_where(
        db,
        Notification.type.in_(("post_comment", "comment_like")),
        Notification.post_id == post_id,
        Notification.comment_id == comment_id,
    )
    if user.id == author_id:
        await grant_exp(db, push, author_id, -get_settings().exp_comment, "comment_delete")


async def like_comment(db: AsyncSession, push: PushGateway | None, post_id: int, comment_id: int, user_id: int) -> None:
    await get_visible_post(db, post_id, user_id)
    comment = await get_comment(db, post_id, comment_id)
    existing = await db.execute(
        select(CommentLike.id).where(CommentLike.comment_id == comment_id, CommentLike.user_id == user_id)
    )
    if existing.first() is not None:
        raise ConflictError("You already liked this comment")
    db.add(CommentLike(comment_id=comment_id, user_id=user_id))
    await db.flush()

    if comment.user_id != user_id:
        await notify_or_bump(
            db, push,
            to=comment.user_id,
            type_="comment_like",
            title="New like",
            body=f"{await _display_name(db, user_id)} liked your comment",
            actor=user_id,
            post_id=post_id,
            comment_id=comment_id,
        )


async def unlike_comment(db: AsyncSession, post_id: int, comment_id: int, user_id: int) -> None:
    comment = await get_comment(db, post_id, comment_id)
    result = await db.execute(
        delete(CommentLike).where(CommentLike.comment_id == comment_id, CommentLike.user_id == user_id)
    )
    if result.rowcount == 0:
        raise NotFoundError("You have not liked this comment")
    await delete_notifications_where(
        db,
        Notification.user_id == comment.user_id,
        Notification.actor_id == user_id,
        Notification.type == "comment_like",
        Notification.comment_id == comment_id,
    )
