"""Baseline: users, progress, gamification and study-group membership tables.

Creates users, badges, user_badges, user_gamification, level_history,
xp_ledger, user_progress, activity_log, study_groups, study_group_members
and notifications.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            username VARCHAR(64) UNIQUE NOT NULL,
            email VARCHAR(320) UNIQUE,
            avatar_url TEXT,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            last_seen TIMESTAMPTZ
        )
    """)

    # --- Badge catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badges (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(100) NOT NULL,
            description VARCHAR(500) NOT NULL,
            category VARCHAR(32) NOT NULL DEFAULT 'achievement',
            rarity VARCHAR(16) NOT NULL DEFAULT 'common',
            criteria_type VARCHAR(32) NOT NULL,
            criteria_value INTEGER NOT NULL CHECK (criteria_value >= 0),
            criteria_config JSONB NOT NULL DEFAULT '{}',
            xp_reward INTEGER NOT NULL DEFAULT 0 CHECK (xp_reward >= 0),
            icon_url VARCHAR(500),
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_badges_category ON badges(category)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_badges_criteria_type ON badges(criteria_type)")

    # --- User Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id SERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badges(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)

    # --- User Gamification (denormalized) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_gamification (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            total_xp BIGINT NOT NULL DEFAULT 0 CHECK (total_xp >= 0),
            current_level INTEGER NOT NULL DEFAULT 1 CHECK (current_level >= 1),
            badges_earned INTEGER NOT NULL DEFAULT 0,
            last_xp_gained_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_gamification_total_xp
        ON user_gamification(total_xp DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_gamification_last_xp
        ON user_gamification(last_xp_gained_at DESC)
    """)

    # --- Level History ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS level_history (
            id SERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES user_gamification(user_id) ON DELETE CASCADE,
            level INTEGER NOT NULL,
            achieved_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            xp_at_achievement BIGINT NOT NULL
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_level_history_user
        ON level_history(user_id, achieved_at)
    """)

    # --- XP Ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id SERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            description VARCHAR(256),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            idempotency_key VARCHAR(256) UNIQUE
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_ledger_user
        ON xp_ledger(user_id, created_at DESC)
    """)

    # --- User Progress ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progress (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_solved_at TIMESTAMPTZ,
            patterns_completed INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_progress_current_streak
        ON user_progress(current_streak DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_progress_last_solved
        ON user_progress(last_solved_at DESC)
    """)

    # --- Activity Log ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS activity_log (
            id SERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            problem_id VARCHAR(128),
            pattern_name VARCHAR(128),
            difficulty VARCHAR(16),
            occurred_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            metadata JSONB NOT NULL DEFAULT '{}'
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_activity_log_user_type_time
        ON activity_log(user_id, type, occurred_at)
    """)

    # --- Study Groups ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS study_groups (
            id SERIAL PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS study_group_members (
            id SERIAL PRIMARY KEY,
            group_id INTEGER NOT NULL REFERENCES study_groups(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            joined_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT study_group_members_group_id_user_id_key UNIQUE (group_id, user_id)
        )
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id SERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            subtype VARCHAR(64) NOT NULL,
            title VARCHAR(256) NOT NULL,
            description TEXT,
            action_url VARCHAR(256),
            read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_unread
        ON notifications(user_id, read, created_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS study_group_members CASCADE")
    op.execute("DROP TABLE IF EXISTS study_groups CASCADE")
    op.execute("DROP TABLE IF EXISTS activity_log CASCADE")
    op.execute("DROP TABLE IF EXISTS user_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS level_history CASCADE")
    op.execute("DROP TABLE IF EXISTS user_gamification CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS badges CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
