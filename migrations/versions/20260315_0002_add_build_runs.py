"""add build runs

Revision ID: 20260315_0002
Revises: 20260301_0001
Create Date: 2026-03-15 10:30:00

"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "20260315_0002"
down_revision: str | None = "20260301_0001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "build_runs",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "site_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("trigger_source", sa.String(length=32), nullable=False),
        sa.Column(
            "was_already_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "total_tasks", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "completed_tasks",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "failed_batches",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("error_message", sa.String(length=2048), nullable=True),
    )
    op.create_index(
        "ix_build_runs_site_id_started_at", "build_runs", ["site_id", "started_at"]
    )
    op.create_index("ix_build_runs_status", "build_runs", ["status"])


def downgrade() -> None:
    op.drop_index("ix_build_runs_status", table_name="build_runs")
    op.drop_index("ix_build_runs_site_id_started_at", table_name="build_runs")
    op.drop_table("build_runs")
