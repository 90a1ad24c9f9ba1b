"""ORM models for the HikeMeet schema.

Embedded collections of the mobile app's data model (friend list, group
members, pending queue, likes, comments) are child tables ordered by
their creation timestamp, with a unique constraint standing in for set
semantics.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from hikemeet.db.base import Base, BigIntId, JsonB, utcnow


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    auth_uid: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    gender: Mapped[str | None] = mapped_column(String(16), nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    bio: Mapped[str | None] = mapped_column(String(500), nullable=True)
    profile_picture: Mapped[dict[str, Any] | None] = mapped_column(JsonB, nullable=True)
    facebook_link: Mapped[str | None] = mapped_column(String(255), nullable=True)
    instagram_link: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user", server_default="user")
    exp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    rank: Mapped[str] = mapped_column(String(32), nullable=False, default="Rookie", server_default="Rookie")
    unread_notifications: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    muted_groups: Mapped[list[int]] = mapped_column(JsonB, nullable=False, default=list)
    muted_notification_types: Mapped[list[str]] = mapped_column(JsonB, nullable=False, default=list)
    post_visibility: Mapped[str] = mapped_column(String(16), nullable=False, default="public")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(),
    )


class Friendship(Base):
    """One side of a friend relationship: ``user_id``'s view of ``peer_id``."""

    __tablename__ = "friendships"
    __table_args__ = (UniqueConstraint("user_id", "peer_id", name="uq_friendships_pair"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    peer_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(),
    )


class ChatPartner(Base):
    """``user_id`` has a chat thread with ``partner_id`` in its chat list.

    Opening a chat writes both directions; closing it removes only the
    caller's row.
    """

    __tablename__ = "chat_partners"
    __table_args__ = (UniqueConstraint("user_id", "partner_id", name="uq_chat_partners_pair"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    partner_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


class PushToken(Base):
    """Expo push token registered by one of a user's devices."""

    __tablename__ = "push_tokens"
    __table_args__ = (UniqueConstraint("user_id", "token", name="uq_push_tokens_user_token"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


class AuthCredential(Base):
    """Credential record owned by the local identity provider."""

    __tablename__ = "auth_credentials"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    uid: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(),
    )


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------


class Trip(Base):
    """A hiking location that groups are organised around."""

    __tablename__ = "trips"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    location_address: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    images: Mapped[list[dict[str, Any]]] = mapped_column(JsonB, nullable=False, default=list)
    main_image: Mapped[dict[str, Any] | None] = mapped_column(JsonB, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JsonB, nullable=False, default=list)
    created_by: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(),
    )


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class Group(Base):
    """A scheduled hike that users join as members."""

    __tablename__ = "hike_groups"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    trip_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey("trips.id", ondelete="SET NULL"), nullable=True)
    max_members: Mapped[int] = mapped_column(Integer, nullable=False)
    privacy: Mapped[str] = mapped_column(String(16), nullable=False, default="public")
    difficulty: Mapped[str | None] = mapped_column(String(16), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="planned", server_default="planned")
    created_by: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    scheduled_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    meeting_point: Mapped[str | None] = mapped_column(String(255), nullable=True)
    embarked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    main_image: Mapped[dict[str, Any] | None] = mapped_column(JsonB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(),
    )


class GroupMember(Base):
    """Confirmed member of a group."""

    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("hike_groups.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="companion")
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


class GroupPending(Base):
    """Proposal to join a group: an admin invite or a user request."""

    __tablename__ = "group_pending"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_pending_group_user"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("hike_groups.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    origin: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    invited_by: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


class TripHistory(Base):
    """A completed hike in a user's history, written by the status sweep."""

    __tablename__ = "trip_history"
    __table_args__ = (UniqueConstraint("user_id", "group_id", name="uq_trip_history_user_group"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    trip_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey("trips.id", ondelete="SET NULL"), nullable=True)
    group_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("hike_groups.id", ondelete="SET NULL"), nullable=True,
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """In-app notification.

    ``group_id``/``post_id``/``comment_id`` mirror the keys of ``data`` so dedup lookups and
    cascades can filter on indexed columns. They carry no foreign key: the
    owning services delete these rows themselves to keep unread counters
    in step.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_dedup", "user_id", "actor_id", "type"),
        Index("ix_notifications_group", "group_id"),
        Index("ix_notifications_post", "post_id"),
        Index("ix_notifications_comment", "comment_id"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    actor_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=True,
    )
    type: Mapped[str] = mapped_column(String(48), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    data: Mapped[dict[str, Any]] = mapped_column(JsonB, nullable=False, default=dict)
    group_id: Mapped[int | None] = mapped_column(BigIntId, nullable=True)
    post_id: Mapped[int | None] = mapped_column(BigIntId, nullable=True)
    comment_id: Mapped[int | None] = mapped_column(BigIntId, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


# ---------------------------------------------------------------------------
# Posts & comments
# ---------------------------------------------------------------------------


class Post(Base):
    """Feed post, optionally in a group and optionally a share of another post."""

    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    group_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("hike_groups.id", ondelete="CASCADE"), nullable=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    images: Mapped[list[dict[str, Any]]] = mapped_column(JsonB, nullable=False, default=list)
    attached_trip_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("trips.id", ondelete="SET NULL"), nullable=True,
    )
    attached_group_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("hike_groups.id", ondelete="SET NULL"), nullable=True,
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="regular")
    privacy: Mapped[str] = mapped_column(String(16), nullable=False, default="public")
    is_shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    original_post_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("posts.id", ondelete="SET NULL"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(),
    )


class PostLike(Base):
    __tablename__ = "post_likes"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_post_likes_post_user"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


class PostSave(Base):
    __tablename__ = "post_saves"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_post_saves_post_user"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


class PostShare(Base):
    __tablename__ = "post_shares"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_post_shares_post_user"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )


class CommentLike(Base):
    __tablename__ = "comment_likes"
    __table_args__ = (UniqueConstraint("comment_id", "user_id", name="uq_comment_likes_comment_user"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    comment_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("comments.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class Report(Base):
    """User-submitted moderation report."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    reporter_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    target_id: Mapped[int] = mapped_column(BigIntId, nullable=False)
    target_type: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(),
    )
