from datetime import datetime, timezone
from typing import Optional, Union

import pytz
from dateutil import parser as date_parser


class DateUtils:
    """
    Timezone handling shared by the order reports, filters and invoices.

    Everything is stored and compared in UTC. SQLite (tests, local dev) hands
    back naive datetimes, so anything read from a row goes through to_utc()
    before it is compared with an aware value.
    """

    UTC = timezone.utc

    @classmethod
    def now_utc(cls) -> datetime:
        """Get current UTC datetime - always use this for database storage"""
        return datetime.now(cls.UTC)

    @classmethod
    def to_utc(cls, dt: datetime, source_timezone: Optional[str] = None) -> datetime:
        """
        Convert datetime to UTC

        Args:
            dt: datetime to convert
            source_timezone: source timezone (if dt is naive); naive values
                without one are taken to already be UTC
        """
        if dt.tzinfo is None:
            if source_timezone:
                dt = pytz.timezone(source_timezone).localize(dt)
            else:
                dt = dt.replace(tzinfo=cls.UTC)
        return dt.astimezone(cls.UTC)

    @classmethod
    def from_utc(cls, dt: datetime, target_timezone: str) -> datetime:
        """Convert UTC datetime to target timezone"""
        return cls.to_utc(dt).astimezone(pytz.timezone(target_timezone))

    @classmethod
    def parse(cls, value: Union[str, datetime]) -> datetime:
        """Parse an ISO-ish string (or pass a datetime through) into aware UTC."""
        if isinstance(value, datetime):
            return cls.to_utc(value)
        try:
            return cls.to_utc(date_parser.parse(value))
        except (ValueError, OverflowError, TypeError) as e:
            raise ValueError(f"Invalid date format: {value}") from e

    @classmethod
    def to_iso_string(cls, dt: Optional[datetime]) -> Optional[str]:
        if dt is None:
            return None
        return cls.to_utc(dt).isoformat()

    @classmethod
    def format_for_display(
        cls,
        dt: datetime,
        timezone_name: str = "US/Eastern",
        format_string: str = "%B %d, %Y",
    ) -> str:
        return cls.from_utc(dt, timezone_name).strftime(format_string)

    @classmethod
    def get_start_of_day(cls, dt: datetime) -> datetime:
        """Get start of day (00:00:00) for given datetime"""
        return dt.replace(hour=0, minute=0, second=0, microsecond=0)

    @classmethod
    def get_end_of_day(cls, dt: datetime) -> datetime:
        """Get end of day (23:59:59.999999) for given datetime"""
        return dt.replace(hour=23, minute=59, second=59, microsecond=999999)
