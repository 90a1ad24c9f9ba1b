"""Initial HikeMeet schema.

Creates users, auth credentials, friendships, chat partners, push tokens, trips,
hike groups (members, pending queue, trip history), notifications,
posts (likes, saves, shares, comments, comment likes) and reports.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            auth_uid VARCHAR(128) UNIQUE NOT NULL,
            username VARCHAR(32) UNIQUE NOT NULL,
            email VARCHAR(320) UNIQUE NOT NULL,
            first_name VARCHAR(64) NOT NULL DEFAULT '',
            last_name VARCHAR(64) NOT NULL DEFAULT '',
            gender VARCHAR(16),
            birth_date DATE,
            bio VARCHAR(500),
            profile_picture JSONB,
            facebook_link VARCHAR(255),
            instagram_link VARCHAR(255),
            role VARCHAR(16) NOT NULL DEFAULT 'user',
            exp INTEGER NOT NULL DEFAULT 0,
            rank VARCHAR(32) NOT NULL DEFAULT 'Rookie',
            unread_notifications INTEGER NOT NULL DEFAULT 0,
            muted_groups JSONB NOT NULL DEFAULT '[]'::jsonb,
            muted_notification_types JSONB NOT NULL DEFAULT '[]'::jsonb,
            post_visibility VARCHAR(16) NOT NULL DEFAULT 'public',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_username_lower ON users(lower(username))")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS auth_credentials (
            id BIGSERIAL PRIMARY KEY,
            uid VARCHAR(64) UNIQUE NOT NULL,
            email VARCHAR(320) UNIQUE NOT NULL,
            password_hash VARCHAR(256) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS friendships (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            peer_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            status VARCHAR(20) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_friendships_pair UNIQUE (user_id, peer_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_friendships_peer ON friendships(peer_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS chat_partners (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            partner_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_chat_partners_pair UNIQUE (user_id, partner_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_chat_partners_partner ON chat_partners(partner_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS push_tokens (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_push_tokens_user_token UNIQUE (user_id, token)
        )
    """)

    # --- Trips ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS trips (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            location_address VARCHAR(255) NOT NULL,
            latitude DOUBLE PRECISION NOT NULL,
            longitude DOUBLE PRECISION NOT NULL,
            description TEXT,
            images JSONB NOT NULL DEFAULT '[]'::jsonb,
            main_image JSONB,
            tags JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_by BIGINT REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Hike groups ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS hike_groups (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            trip_id BIGINT REFERENCES trips(id) ON DELETE SET NULL,
            max_members INTEGER NOT NULL,
            privacy VARCHAR(16) NOT NULL DEFAULT 'public',
            difficulty VARCHAR(16),
            description TEXT,
            status VARCHAR(16) NOT NULL DEFAULT 'planned',
            created_by BIGINT REFERENCES users(id) ON DELETE SET NULL,
            scheduled_start TIMESTAMPTZ,
            scheduled_end TIMESTAMPTZ,
            meeting_point VARCHAR(255),
            embarked_at TIMESTAMPTZ,
            main_image JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_hike_groups_status_start ON hike_groups(status, scheduled_start)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_hike_groups_status_end ON hike_groups(status, scheduled_end)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS group_members (
            id BIGSERIAL PRIMARY KEY,
            group_id BIGINT NOT NULL REFERENCES hike_groups(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            role VARCHAR(16) NOT NULL DEFAULT 'companion',
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_group_members_group_user UNIQUE (group_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_group_members_user ON group_members(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS group_pending (
            id BIGSERIAL PRIMARY KEY,
            group_id BIGINT NOT NULL REFERENCES hike_groups(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            origin VARCHAR(16) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            invited_by BIGINT REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_group_pending_group_user UNIQUE (group_id, user_id)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS trip_history (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            trip_id BIGINT REFERENCES trips(id) ON DELETE SET NULL,
            group_id BIGINT REFERENCES hike_groups(id) ON DELETE SET NULL,
            completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_trip_history_user_group UNIQUE (user_id, group_id)
        )
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            actor_id BIGINT REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(48) NOT NULL,
            title VARCHAR(255) NOT NULL,
            body TEXT NOT NULL DEFAULT '',
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            group_id BIGINT,
            post_id BIGINT,
            comment_id BIGINT,
            read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_user_read ON notifications(user_id, read)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_dedup ON notifications(user_id, actor_id, type)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_group ON notifications(group_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_post ON notifications(post_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_comment ON notifications(comment_id)")

    # --- Posts ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS posts (
            id BIGSERIAL PRIMARY KEY,
            author_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            group_id BIGINT REFERENCES hike_groups(id) ON DELETE CASCADE,
            content TEXT NOT NULL DEFAULT '',
            images JSONB NOT NULL DEFAULT '[]'::jsonb,
            attached_trip_id BIGINT REFERENCES trips(id) ON DELETE SET NULL,
            attached_group_id BIGINT REFERENCES hike_groups(id) ON DELETE SET NULL,
            type VARCHAR(16) NOT NULL DEFAULT 'regular',
            privacy VARCHAR(16) NOT NULL DEFAULT 'public',
            is_shared BOOLEAN NOT NULL DEFAULT false,
            original_post_id BIGINT REFERENCES posts(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_posts_author ON posts(author_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_posts_group_created ON posts(group_id, created_at DESC)")

    for table in ("post_likes", "post_saves", "post_shares"):
        op.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id BIGSERIAL PRIMARY KEY,
                post_id BIGINT NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
                user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                CONSTRAINT uq_{table}_post_user UNIQUE (post_id, user_id)
            )
        """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS comments (
            id BIGSERIAL PRIMARY KEY,
            post_id BIGINT NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            text TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_comments_post ON comments(post_id, created_at)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS comment_likes (
            id BIGSERIAL PRIMARY KEY,
            comment_id BIGINT NOT NULL REFERENCES comments(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            CONSTRAINT uq_comment_likes_comment_user UNIQUE (comment_id, user_id)
        )
    """)

    # --- Reports ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS reports (
            id BIGSERIAL PRIMARY KEY,
            reporter_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            target_id BIGINT NOT NULL,
            target_type VARCHAR(16) NOT NULL,
            reason TEXT NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_reports_status_created ON reports(status, created_at DESC)")


def downgrade() -> None:
    for table in (
        "reports",
        "comment_likes",
        "comments",
        "post_shares",
        "post_saves",
        "post_likes",
        "posts",
        "notifications",
        "trip_history",
        "group_pending",
        "group_members",
        "hike_groups",
        "trips",
        "push_tokens",
        "chat_partners",
        "friendships",
        "auth_credentials",
        "users",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
