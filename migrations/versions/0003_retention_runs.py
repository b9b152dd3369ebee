"""Add retention_runs audit table

Revision ID: b91d3f6e2a87
Revises: 7c2e9b4a1d60
Create Date: 2026-10-02 09:15:00.000000

Audit trail for the retention worker; a recent completed run makes the
next cycle a no-op.
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "b91d3f6e2a87"
down_revision: Union[str, None] = "7c2e9b4a1d60"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "retention_runs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("stats_json", sa.JSON(), nullable=True),
    )
    op.create_index(
        "ix_retention_runs_status_completed",
        "retention_runs",
        ["status", "completed_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_retention_runs_status_completed", table_name="retention_runs")
    op.drop_table("retention_runs")
