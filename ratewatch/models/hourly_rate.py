"""Hourly aggregate model.

Written only by the retention engine, one row per (date, hour). Purged after
the hourly retention horizon; daily rows outlive them.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class HourlyRate(Base):
    __tablename__ = "hourly_rates"
    __table_args__ = (
        UniqueConstraint("date_partition", "hour", name="uq_hourly_rates_date_hour"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date_partition: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    hour: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_rate: Mapped[float] = mapped_column(Float, nullable=False)
    min_rate: Mapped[float] = mapped_column(Float, nullable=False)
    max_rate: Mapped[float] = mapped_column(Float, nullable=False)
    sample_count: Mapped[int] = mapped_column(Integer, nullable=False)
    first_collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    last_collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
