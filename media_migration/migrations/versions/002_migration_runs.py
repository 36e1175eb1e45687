"""Add migration run records.

Revision ID: 002_migration_runs
Revises: 001_initial
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "002_migration_runs"
down_revision: Union[str, Sequence[str], None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "migration_run",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "agency_id",
            sa.Uuid(),
            sa.ForeignKey("agency.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("batch_size", sa.Integer, nullable=False, server_default="50"),
        sa.Column("max_batches", sa.Integer, nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("batches", sa.Integer, nullable=False, server_default="0"),
        sa.Column("promoted", sa.Integer, nullable=False, server_default="0"),
        sa.Column("processed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("succeeded", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped", sa.Integer, nullable=False, server_default="0"),
        sa.Column("pending_remaining", sa.Integer),
        sa.Column("avg_processing_ms", sa.Integer),
        sa.Column("error_message", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_migration_run_agency_id", "migration_run", ["agency_id"])


def downgrade() -> None:
    op.drop_index("ix_migration_run_agency_id", table_name="migration_run")
    op.drop_table("migration_run")
