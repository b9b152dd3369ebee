"""Daily aggregate model.

Computed directly from raw samples (never from hourly rows) and kept forever.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class DailyRate(Base):
    __tablename__ = "daily_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date_partition: Mapped[str] = mapped_column(String(10), nullable=False, unique=True)
    avg_rate: Mapped[float] = mapped_column(Float, nullable=False)
    min_rate: Mapped[float] = mapped_column(Float, nullable=False)
    max_rate: Mapped[float] = mapped_column(Float, nullable=False)
    peak_rate: Mapped[float] = mapped_column(Float, nullable=False)
    peak_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # max_rate - min_rate
    volatility: Mapped[float] = mapped_column(Float, nullable=False)
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
