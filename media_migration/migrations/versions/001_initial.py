"""Initial schema: agencies, units, unit media and migration logs.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "agency",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_agency_slug", "agency", ["slug"], unique=True)

    op.create_table(
        "unit",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "agency_id",
            sa.Uuid(),
            sa.ForeignKey("agency.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_unit_agency_id", "unit", ["agency_id"])

    op.create_table(
        "unit_media",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "unit_id",
            sa.Uuid(),
            sa.ForeignKey("unit.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("media_type", sa.String(20), nullable=False, server_default="photo"),
        sa.Column("file_name", sa.String(500)),
        sa.Column("source_ref", sa.String(200)),
        sa.Column("mime_type", sa.String(200)),
        sa.Column("slot", sa.String(20)),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_hidden", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("storage_url", sa.Text),
        sa.Column("quality_version", sa.Integer, server_default="1"),
        sa.Column("migration_status", sa.String(20), nullable=False, server_default="none"),
        sa.Column("migration_error", sa.Text),
        sa.Column("destination_ref", sa.Text),
        sa.Column("destination_path", sa.String(500)),
        sa.Column("migrated_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_unit_media_unit_id", "unit_media", ["unit_id"])
    op.create_index("ix_unit_media_source_ref", "unit_media", ["source_ref"])
    op.create_index("ix_unit_media_migration_status", "unit_media", ["migration_status"])
    op.create_index(
        "ix_unit_media_status_created", "unit_media", ["migration_status", "created_at"]
    )
    op.create_index("ix_unit_media_unit_slot", "unit_media", ["unit_id", "slot"])

    op.create_table(
        "migration_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column(
            "media_id",
            sa.Uuid(),
            sa.ForeignKey("unit_media.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text),
        sa.Column("size_bytes", sa.BigInteger),
        sa.Column("processing_time_ms", sa.Integer),
        *_timestamps(),
    )
    op.create_index("ix_migration_log_run_id", "migration_log", ["run_id"])
    op.create_index("ix_migration_log_media_id", "migration_log", ["media_id"])


def downgrade() -> None:
    op.drop_table("migration_log")
    op.drop_table("unit_media")
    op.drop_table("unit")
    op.drop_table("agency")
