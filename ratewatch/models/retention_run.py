"""Retention run model.

Audit trail for the retention worker. Ensures idempotency: the worker
checks for a recent completed run before starting.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class RetentionRun(Base):
    __tablename__ = "retention_runs"
    __table_args__ = (
        Index("ix_retention_runs_status_completed", "status", "completed_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="running"
    )
    stats_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
