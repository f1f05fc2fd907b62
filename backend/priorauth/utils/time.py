"""Time Utilities - UTC timestamps, formatting and injectable clocks"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone, timedelta
from typing import Optional
from dateutil import parser as date_parser


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (MongoDB hands back naive values)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    return ensure_utc(date_parser.isoparse(iso_string))


def epoch_millis(dt: datetime) -> int:
    """Milliseconds since the Unix epoch"""
    return int(ensure_utc(dt).timestamp() * 1000)


class Clock(ABC):
    """
    Injectable time source.

    The workflow engine and the audit writer receive a Clock through their
    constructors and never read the wall clock directly.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware UTC time"""
        ...


class SystemClock(Clock):
    """Wall-clock time"""

    def now(self) -> datetime:
        return utc_now()


class FixedClock(Clock):
    """
    Deterministic clock for tests and replays.

    ``now()`` keeps returning the same instant until ``advance()`` or
    ``set_time()`` is called.
    """

    def __init__(self, fixed_time: Optional[datetime] = None):
        self._time = ensure_utc(fixed_time or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        self._time = ensure_utc(time)

    def advance(self, seconds: float = 1) -> datetime:
        self._time = self._time + timedelta(seconds=seconds)
        return self._time
