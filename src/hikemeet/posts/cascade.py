"""Post deletion cascade shared by posts, groups and admin."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from hikemeet.db.models import Notification, Post
from hikemeet.media.host import MediaHost, remove_images
from hikemeet.notifications.service import delete_notifications_where

logger = structlog.get_logger()


async def purge_posts(db: AsyncSession, media: MediaHost | None, *criteria: ColumnElement[bool]) -> int:
    """Delete every post matching ``criteria`` with its dependents.

    Likes, saves, shares and comments go with the row (FK cascade). Every
    notification carrying one of the post ids is deleted with counter
    correction. Images are removed from the media host last; failures
    there are logged and never undo the delete. Returns posts deleted.
    """
    result = await db.execute(select(Post.id, Post.images).where(*criteria))
    rows = result.all()
    if not rows:
        return 0

    post_ids = [post_id for post_id, _ in rows]
    images: list[dict[str, Any]] = [image for _, post_images in rows for image in (post_images or [])]

    await delete_notifications_where(db, Notification.post_id.in_(post_ids))
    await db.execute(delete(Post).where(Post.id.in_(post_ids)).execution_options(synchronize_session="fetch"))
    await db.flush()

    removed = await remove_images(media, images)
    logger.info("posts_purged", count=len(post_ids), images_removed=removed)
    return len(post_ids)
