"""Raw rate sample model.

One row per poll of the tracked rate. Rows are append-only: the retention
engine deletes them once their date has been rolled up into the hourly and
daily tiers, and nothing ever updates them.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Sample(Base):
    __tablename__ = "exchange_rates"
    __table_args__ = (
        CheckConstraint("rate > 0", name="ck_exchange_rates_rate_positive"),
        Index("ix_exchange_rates_date_time", "date_partition", "collected_at"),
        Index("ix_exchange_rates_collected_at", "collected_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    currency_code: Mapped[str] = mapped_column(
        String(3), nullable=False, server_default="USD"
    )
    rate: Mapped[float] = mapped_column(Float, nullable=False)
    collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    # YYYY-MM-DD in the producer's sampling zone
    date_partition: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
