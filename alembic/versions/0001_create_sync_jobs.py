"""create sync_jobs table for persisted job registrations

Revision ID: 0001
Revises:
Create Date: 2026-10-18 10:00:00.000000

Hey future me - ONE row per job identity ("periodic" / "adhoc")!

The scheduler writes here on every state transition so a restart can
re-register what was scheduled. Cancelled registrations are deleted, not
stored, so they never come back after a restart.
"""

import logging

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create sync_jobs table (idempotent - skips if exists)."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    if "sync_jobs" in inspector.get_table_names():
        logging.info("Table sync_jobs already exists - skipping creation")
        return

    op.create_table(
        "sync_jobs",
        sa.Column("identity", sa.String(20), primary_key=True),
        sa.Column("registration_id", sa.String(36), nullable=False),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("spec", sa.Text(), nullable=False),
        sa.Column("constraints", sa.Text(), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sync_jobs_state", "sync_jobs", ["state"])


def downgrade() -> None:
    """Drop sync_jobs table."""
    op.drop_index("ix_sync_jobs_state", table_name="sync_jobs")
    op.drop_table("sync_jobs")
