"""Add hourly_rates and daily_rates aggregate tiers

Revision ID: 7c2e9b4a1d60
Revises: 3a1f0c2d4e5b
Create Date: 2026-09-28 10:30:00.000000

Both tiers are written only by the retention engine, straight from raw
samples. Hourly rows expire after the hourly horizon; daily rows are kept.

Written manually (not via autogenerate).
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7c2e9b4a1d60"
down_revision: Union[str, None] = "3a1f0c2d4e5b"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # hourly_rates table
    op.create_table(
        "hourly_rates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date_partition", sa.String(10), nullable=False),
        sa.Column("hour", sa.Integer(), nullable=False),
        sa.Column("avg_rate", sa.Float(), nullable=False),
        sa.Column("min_rate", sa.Float(), nullable=False),
        sa.Column("max_rate", sa.Float(), nullable=False),
        sa.Column("sample_count", sa.Integer(), nullable=False),
        sa.Column("first_collected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_collected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("date_partition", "hour", name="uq_hourly_rates_date_hour"),
    )
    op.create_index("ix_hourly_rates_date_partition", "hourly_rates", ["date_partition"])

    # daily_rates table
    op.create_table(
        "daily_rates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date_partition", sa.String(10), nullable=False, unique=True),
        sa.Column("avg_rate", sa.Float(), nullable=False),
        sa.Column("min_rate", sa.Float(), nullable=False),
        sa.Column("max_rate", sa.Float(), nullable=False),
        sa.Column("peak_rate", sa.Float(), nullable=False),
        sa.Column("peak_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("volatility", sa.Float(), nullable=False),
        sa.Column("sample_count", sa.Integer(), nullable=False),
        sa.Column("first_collected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_collected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("daily_rates")
    op.drop_index("ix_hourly_rates_date_partition", table_name="hourly_rates")
    op.drop_table("hourly_rates")
