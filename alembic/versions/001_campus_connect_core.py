"""Campus Connect core: stats, badges, achievements, leaderboards, notifications, scheduling.

Creates the users mirror, user_stats, monthly_stats, badges, achievements,
leaderboards, notifications, mentor_availability and scheduled_sessions
tables.

Revision ID: 001_campus_connect_core
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_campus_connect_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            email VARCHAR(320) UNIQUE NOT NULL,
            role VARCHAR(16) NOT NULL DEFAULT 'student',
            skills JSONB NOT NULL DEFAULT '[]',
            mentor_rating DOUBLE PRECISION NOT NULL DEFAULT 0,
            students_helped INTEGER NOT NULL DEFAULT 0,
            perfect_team_ratings INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- User Stats ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_stats (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            level INTEGER NOT NULL DEFAULT 1,
            total_points INTEGER NOT NULL DEFAULT 0,
            projects_created INTEGER NOT NULL DEFAULT 0,
            projects_completed INTEGER NOT NULL DEFAULT 0,
            events_attended INTEGER NOT NULL DEFAULT 0,
            mentorship_sessions INTEGER NOT NULL DEFAULT 0,
            skill_endorsements INTEGER NOT NULL DEFAULT 0,
            teams_joined INTEGER NOT NULL DEFAULT 0,
            teams_led INTEGER NOT NULL DEFAULT 0,
            hackathon_wins INTEGER NOT NULL DEFAULT 0,
            competition_wins INTEGER NOT NULL DEFAULT 0,
            contribution_score INTEGER NOT NULL DEFAULT 0,
            project_score INTEGER NOT NULL DEFAULT 0,
            mentorship_score INTEGER NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity TIMESTAMPTZ,
            revision INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_stats_points
        ON user_stats(total_points DESC)
    """)

    # --- Monthly Stats ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS monthly_stats (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            month VARCHAR(7) NOT NULL,
            points INTEGER NOT NULL DEFAULT 0,
            projects INTEGER NOT NULL DEFAULT 0,
            events INTEGER NOT NULL DEFAULT 0,
            mentorships INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT uq_monthly_stats_user_month UNIQUE (user_id, month)
        )
    """)

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badges (
            id BIGSERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) UNIQUE NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(16) NOT NULL,
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(16) NOT NULL DEFAULT 'common',
            criteria_type VARCHAR(16) NOT NULL,
            criteria_target DOUBLE PRECISION NOT NULL,
            criteria_metric VARCHAR(32) NOT NULL,
            points INTEGER NOT NULL DEFAULT 0,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_badges_metric
        ON badges(criteria_metric)
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id BIGINT NOT NULL REFERENCES badges(id) ON DELETE CASCADE,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            progress DOUBLE PRECISION NOT NULL DEFAULT 0,
            is_completed BOOLEAN NOT NULL DEFAULT true,
            metadata JSONB NOT NULL DEFAULT '{}',
            CONSTRAINT uq_achievements_user_badge UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_achievements_earned
        ON achievements(user_id, earned_at DESC)
    """)

    # --- Leaderboards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboards (
            id BIGSERIAL PRIMARY KEY,
            type VARCHAR(32) NOT NULL,
            period VARCHAR(16) NOT NULL,
            rankings JSONB NOT NULL DEFAULT '[]',
            last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_leaderboards_type_period UNIQUE (type, period)
        )
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            message TEXT NOT NULL,
            read BOOLEAN NOT NULL DEFAULT false,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_notifications_user_read
        ON notifications(user_id, read)
    """)

    # --- Mentor Availability ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS mentor_availability (
            id BIGSERIAL PRIMARY KEY,
            mentor_id BIGINT UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            weekly_schedule JSONB NOT NULL DEFAULT '[]',
            exceptions JSONB NOT NULL DEFAULT '[]',
            timezone VARCHAR(64) NOT NULL DEFAULT 'UTC',
            max_sessions_per_day INTEGER NOT NULL DEFAULT 3,
            session_duration INTEGER NOT NULL DEFAULT 60,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Scheduled Sessions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS scheduled_sessions (
            id BIGSERIAL PRIMARY KEY,
            mentor_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            mentee_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            scheduled_date TIMESTAMPTZ NOT NULL,
            slot_date DATE NOT NULL,
            slot_start VARCHAR(5) NOT NULL,
            duration INTEGER NOT NULL DEFAULT 60,
            meeting_type VARCHAR(16) NOT NULL DEFAULT 'online',
            meeting_link VARCHAR(512),
            location VARCHAR(256),
            agenda TEXT,
            status VARCHAR(16) NOT NULL DEFAULT 'scheduled',
            notes TEXT,
            feedback JSONB NOT NULL DEFAULT '{}',
            reschedule_history JSONB NOT NULL DEFAULT '[]',
            reminder_sent BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    # One active booking per mentor slot; cancelled/completed rows free it
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_scheduled_sessions_active_slot
        ON scheduled_sessions(mentor_id, slot_date, slot_start)
        WHERE status IN ('scheduled', 'confirmed')
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_scheduled_sessions_mentee
        ON scheduled_sessions(mentee_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS scheduled_sessions CASCADE")
    op.execute("DROP TABLE IF EXISTS mentor_availability CASCADE")
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS leaderboards CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS badges CASCADE")
    op.execute("DROP TABLE IF EXISTS monthly_stats CASCADE")
    op.execute("DROP TABLE IF EXISTS user_stats CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
