"""Initial schema: users, analysis jobs, user progress, leaderboard entries.

Revision ID: 001_analysis_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_analysis_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users (identity from the gateway) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(64) PRIMARY KEY,
            display_name VARCHAR(64),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Analysis Jobs ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS analysis_jobs (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(200) NOT NULL,
            language VARCHAR(32) NOT NULL,
            code TEXT NOT NULL,
            line_count INTEGER NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'queued'
                CHECK (status IN ('queued', 'analyzing', 'completed', 'failed')),
            result JSON,
            optimized_code TEXT,
            model VARCHAR(64),
            processing_time_ms INTEGER,
            ledger_applied_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ,
            CHECK ((status = 'completed') = (result IS NOT NULL))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_analysis_jobs_user_created
        ON analysis_jobs(user_id, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_analysis_jobs_status
        ON analysis_jobs(status)
    """)

    # --- User Progress ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progress (
            user_id VARCHAR(64) PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            level INTEGER NOT NULL DEFAULT 1,
            experience INTEGER NOT NULL DEFAULT 0,
            experience_to_next_level INTEGER NOT NULL DEFAULT 100,
            total_jobs INTEGER NOT NULL DEFAULT 0,
            optimized_jobs INTEGER NOT NULL DEFAULT 0,
            total_improvement DOUBLE PRECISION NOT NULL DEFAULT 0,
            average_improvement DOUBLE PRECISION NOT NULL DEFAULT 0,
            average_quality DOUBLE PRECISION NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Leaderboard Entries ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard_entries (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            period VARCHAR(16) NOT NULL,
            score INTEGER NOT NULL DEFAULT 0,
            rank INTEGER NOT NULL DEFAULT 0,
            previous_rank INTEGER NOT NULL DEFAULT 0,
            rank_change INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT leaderboard_entries_period_user_key UNIQUE (period, user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_entries_period_rank
        ON leaderboard_entries(period, rank)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS leaderboard_entries CASCADE")
    op.execute("DROP TABLE IF EXISTS user_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS analysis_jobs CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
