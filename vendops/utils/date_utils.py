"""
Date and time utility functions for the analytics engine.
Handles timestamp parsing, UTC normalization and day/month window math.
"""

from datetime import datetime, date, timedelta
from typing import Optional, List, Tuple, Any
import pytz
from dateutil import parser
from dateutil.relativedelta import relativedelta

UTC_TZ = pytz.UTC

SECONDS_PER_DAY = 24 * 60 * 60


class DateUtils:
    """Timestamp helpers shared by every report."""

    @staticmethod
    def get_utc_now() -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC_TZ)

    @staticmethod
    def to_utc(dt: datetime) -> datetime:
        """Convert datetime to UTC, treating naive values as UTC."""
        if dt.tzinfo is None:
            return UTC_TZ.localize(dt)
        return dt.astimezone(UTC_TZ)

    @staticmethod
    def parse_timestamp(value: Any) -> Optional[datetime]:
        """Parse a loosely typed timestamp into an aware UTC datetime.

        Accepts datetimes, dates and strings in the formats upstream rows
        commonly use. Returns None for anything that cannot be parsed.
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            return DateUtils.to_utc(value)
        if isinstance(value, date):
            return UTC_TZ.localize(datetime(value.year, value.month, value.day))
        if not isinstance(value, str) or value.strip() == '':
            return None

        text = value.strip()
        formats = [
            '%Y-%m-%dT%H:%M:%S.%f%z',
            '%Y-%m-%dT%H:%M:%S%z',
            '%Y-%m-%d %H:%M:%S.%f',
            '%Y-%m-%d %H:%M:%S',
            '%Y-%m-%d',
        ]
        for fmt in formats:
            try:
                return DateUtils.to_utc(datetime.strptime(text, fmt))
            except ValueError:
                continue

        # Use dateutil as fallback
        try:
            return DateUtils.to_utc(parser.isoparse(text))
        except (ValueError, OverflowError):
            pass
        try:
            return DateUtils.to_utc(parser.parse(text))
        except (ValueError, OverflowError):
            return None

    @staticmethod
    def to_day(value: Optional[datetime]) -> Optional[date]:
        """UTC calendar date of a parsed timestamp."""
        if value is None:
            return None
        return DateUtils.to_utc(value).date()

    @staticmethod
    def day_labels(end_day: date, days: int) -> List[date]:
        """The ``days`` calendar dates ending at ``end_day``, oldest first."""
        return [end_day - timedelta(days=offset) for offset in range(days - 1, -1, -1)]

    @staticmethod
    def window_bounds(end_day: date, days: int, periods_back: int = 0) -> Tuple[date, date]:
        """First and last day of a ``days``-long window.

        ``periods_back=1`` gives the equal-length window immediately before.
        """
        last = end_day - timedelta(days=days * periods_back)
        first = last - timedelta(days=days - 1)
        return first, last

    @staticmethod
    def get_month_start(dt: datetime, months_offset: int = 0) -> datetime:
        """Start of the calendar month of ``dt`` shifted by ``months_offset``."""
        start = dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return start + relativedelta(months=months_offset)

    @staticmethod
    def days_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
        """Absolute difference in fractional days, None if either side is missing."""
        if start is None or end is None:
            return None
        return abs((end - start).total_seconds()) / SECONDS_PER_DAY

    @staticmethod
    def hours_between(start: Optional[datetime], end: Optional[datetime]) -> float:
        """Non-negative elapsed hours, 0 if either side is missing."""
        if start is None or end is None:
            return 0.0
        return max(0.0, (end - start).total_seconds() / 3600)
