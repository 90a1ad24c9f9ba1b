"""Post API endpoints: /api/v1/posts/*.

Posts (5), Likes (2), Saves (3), Share (1), Comments (5).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.dependencies import get_current_user
from hikemeet.database import get_session
from hikemeet.db.models import Post, User
from hikemeet.errors import DomainError
from hikemeet.media.host import MediaHost, get_media_host
from hikemeet.notifications.push import PushGateway, get_push_gateway
from hikemeet.posts.schemas import (
    CommentRequest,
    CommentResponse,
    CountResponse,
    CreatePostRequest,
    PostListResponse,
    PostResponse,
    SharePostRequest,
    UpdatePostRequest,
)
from hikemeet.posts.service import (
    add_comment,
    create_post,
    delete_comment,
    delete_post,
    get_visible_post,
    like_comment,
    like_post,
    list_comments,
    list_posts,
    list_saved_posts,
    post_stats,
    save_post,
    share_post,
    unlike_comment,
    unlike_post,
    unsave_post,
    update_post,
)
from hikemeet.users.schemas import ImageModel

router = APIRouter(prefix="/api/v1/posts", tags=["Posts"])


# ── Helper ──


def _post_response(post: Post, stats: dict[str, Any]) -> PostResponse:
    return PostResponse(
        id=post.id,
        author_id=post.author_id,
        group_id=post.group_id,
        content=post.content,
        images=[ImageModel(**img) for img in (post.images or [])],
        attached_trip_id=post.attached_trip_id,
        attached_group_id=post.attached_group_id,
        type=post.type,
        privacy=post.privacy,
        is_shared=post.is_shared,
        original_post_id=post.original_post_id,
        created_at=post.created_at,
        updated_at=post.updated_at,
        **stats,
    )


async def _responses(db: AsyncSession, posts: list[Post], viewer_id: int) -> list[PostResponse]:
    stats = await post_stats(db, [p.id for p in posts], viewer_id)
    return [_post_response(p, stats[p.id]) for p in posts]


# ── Posts ──


@router.get("", response_model=PostListResponse)
async def list_posts_endpoint(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    author_id: int | None = Query(None),
    group_id: int | None = Query(None),
    privacy: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Feed (paginated, filterable)."""
    posts, total = await list_posts(db, user.id, page, per_page, author_id, group_id, privacy)
    return PostListResponse(posts=await _responses(db, posts, user.id), total=total, page=page, per_page=per_page)


@router.post("", response_model=PostResponse, status_code=201)
async def create_post_endpoint(
    body: CreatePostRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    try:
        post = await create_post(db, push, user.id, body.model_dump(exclude_none=True))
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return (await _responses(db, [post], user.id))[0]


@router.get("/saved", response_model=list[PostResponse])
async def saved_posts_endpoint(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Own saved posts."""
    return await _responses(db, await list_saved_posts(db, user.id), user.id)


@router.get("/{post_id}", response_model=PostResponse)
async def get_post_endpoint(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        post = await get_visible_post(db, post_id, user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return (await _responses(db, [post], user.id))[0]


@router.patch("/{post_id}", response_model=PostResponse)
async def update_post_endpoint(
    post_id: int,
    body: UpdatePostRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaHost = Depends(get_media_host),
):
    try:
        post = await update_post(db, media, post_id, user.id, body.model_dump(exclude_unset=True))
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return (await _responses(db, [post], user.id))[0]


@router.delete("/{post_id}", status_code=204)
async def delete_post_endpoint(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
    media: MediaHost = Depends(get_media_host),
):
    """Author or admin deletes a post with its comments, likes and notifications."""
    try:
        await delete_post(db, push, media, post_id, user)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


# ── Likes / saves / share ──


@router.post("/{post_id}/like", response_model=CountResponse)
async def like_endpoint(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    try:
        count = await like_post(db, push, post_id, user.id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return CountResponse(post_id=post_id, count=count)


@router.delete("/{post_id}/like", response_model=CountResponse)
async def unlike_endpoint(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        count = await unlike_post(db, post_id, user.id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return CountResponse(post_id=post_id, count=count)


@router.post("/{post_id}/save")
async def save_endpoint(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    try:
        added = await save_post(db, post_id, user.id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return {"saved": True, "added": added}


@router.delete("/{post_id}/save", status_code=204)
async def unsave_endpoint(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    await unsave_post(db, post_id, user.id)
    await db.commit()


@router.post("/{post_id}/share", response_model=PostResponse, status_code=201)
async def share_endpoint(
    post_id: int,
    body: SharePostRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    """Share to own feed, or into a group the user belongs to."""
    try:
        shared = await share_post(db, push, post_id, user.id, body.content, body.group_id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return (await _responses(db, [shared], user.id))[0]


# ── Comments ──


@router.get("/{post_id}/comments", response_model=list[CommentResponse])
async def list_comments_endpoint(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        rows = await list_comments(db, post_id, user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return [CommentResponse(**row) for row in rows]


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment_endpoint(
    post_id: int,
    body: CommentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    try:
        comment = await add_comment(db, push, post_id, user.id, body.text)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return CommentResponse(
        id=comment.id,
        post_id=post_id,
        user_id=user.id,
        username=user.username,
        text=comment.text,
        created_at=comment.created_at,
    )


@router.delete("/{post_id}/comments/{comment_id}", status_code=204)
async def delete_comment_endpoint(
    post_id: int,
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    try:
        await delete_comment(db, push, post_id, comment_id, user)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.post("/{post_id}/comments/{comment_id}/like", status_code=204)
async def like_comment_endpoint(
    post_id: int,
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    try:
        await like_comment(db, push, post_id, comment_id, user.id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.delete("/{post_id}/comments/{comment_id}/like", status_code=204)
async def unlike_comment_endpoint(
    post_id: int,
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        await unlike_comment(db, post_id, comment_id, user.id)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
