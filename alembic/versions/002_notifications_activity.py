"""Notifications and personal activity feed.

Revision ID: 002_notifications_activity
Revises: 001_analysis_tables
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_notifications_activity"
down_revision: str | None = "001_analysis_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(200) NOT NULL,
            message TEXT NOT NULL,
            link VARCHAR(256),
            data JSON NOT NULL DEFAULT '{}',
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_read_created
        ON notifications(user_id, is_read, created_at DESC)
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_notifications_created ON notifications(created_at)")

    # --- Activity feed ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_activity (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            description TEXT,
            related_job_id VARCHAR(36) REFERENCES analysis_jobs(id) ON DELETE SET NULL,
            data JSON NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_activity_user_created
        ON user_activity(user_id, created_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_activity CASCADE")
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
