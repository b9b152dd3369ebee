"""Create exchange_rates table for raw samples

Revision ID: 3a1f0c2d4e5b
Revises:
Create Date: 2026-09-28 10:00:00.000000

One row per poll of the tracked rate. date_partition is the YYYY-MM-DD
date in the sampling zone and drives retention.
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3a1f0c2d4e5b"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("currency_code", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("rate", sa.Float(), nullable=False),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("date_partition", sa.String(10), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("rate > 0", name="ck_exchange_rates_rate_positive"),
    )
    op.create_index(
        "ix_exchange_rates_date_time",
        "exchange_rates",
        ["date_partition", "collected_at"],
    )
    op.create_index("ix_exchange_rates_collected_at", "exchange_rates", ["collected_at"])


def downgrade() -> None:
    op.drop_index("ix_exchange_rates_collected_at", table_name="exchange_rates")
    op.drop_index("ix_exchange_rates_date_time", table_name="exchange_rates")
    op.drop_table("exchange_rates")
