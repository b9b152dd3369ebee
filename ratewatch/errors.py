"""Error taxonomy for the rate analytics core.

DataAccessError   -- the store failed (unreachable, bad query). Always propagated.
NoDataError       -- a valid but empty result: nothing at all to work with.
InsufficientDataError -- some data, but not enough to be statistically meaningful.
AggregationError  -- one date of a retention batch failed; the batch carries on.
"""

import functools

from sqlalchemy.exc import SQLAlchemyError


class RateWatchError(Exception):
    """Base class for all ratewatch errors."""


class DataAccessError(RateWatchError):
    """Raised when a store query or write fails."""


class NoDataError(RateWatchError):
    """Raised when there is no data at all for the requested operation."""


class InsufficientDataError(RateWatchError):
    """Raised when fewer samples exist than a statistical operation requires."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"insufficient historical data: need at least {required} samples, have {available}"
        )


class AggregationError(RateWatchError):
    """Raised when hourly/daily aggregation for a single date fails."""

    def __init__(self, date: str, reason: str):
        self.date = date
        super().__init__(f"aggregation failed for {date}: {reason}")


def data_access(operation: str):
    """Wrap an async store function so SQLAlchemy failures surface as DataAccessError."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except SQLAlchemyError as exc:
                raise DataAccessError(f"{operation}: {exc}") from exc

        return wrapper

    return decorator
