from .base import Base
from .sample import Sample
from .hourly_rate import HourlyRate
from .daily_rate import DailyRate
from .retention_run import RetentionRun

__all__ = [
    "Base",
    "Sample",
    "HourlyRate",
    "DailyRate",
    "RetentionRun",
]
