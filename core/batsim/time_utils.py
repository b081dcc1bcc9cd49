"""Time utilities for hourly simulation ranges.

KEY PRINCIPLE: every timestamp handled by the simulation is timezone-aware and
normalized to UTC at the start of an hour. Per-hour data is addressed by the
integer hour offset from the start of an HourRange, never by string keys.

Local time only matters for reading input files and for the day-of-week /
hour-of-day keys of consumption profiles.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

# Input files are written in German market time
DEFAULT_TIMEZONE = "Europe/Berlin"
TIMEZONE = ZoneInfo(DEFAULT_TIMEZONE)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)


def to_utc_hour(moment: datetime) -> datetime:
    """Floor a timestamp to the start of its hour, expressed in UTC.

    Args:
        moment: Timestamp to normalize (must be timezone-aware)

    Returns:
        UTC timestamp with minutes, seconds and microseconds cleared

    Raises:
        ValueError: If moment is not timezone-aware
    """
    if moment.tzinfo is None:
        raise ValueError("Timestamp must be timezone-aware")
    return moment.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


def local_day_bounds(moment: datetime, tz: ZoneInfo = TIMEZONE) -> tuple[datetime, datetime]:
    """Return the first and last UTC hour of the local calendar day of moment.

    DST days yield 23 or 25 hours between the two bounds.
    """
    local_day = moment.astimezone(tz).date()
    return _local_midnight(local_day, tz), _local_midnight(local_day + DAY, tz) - HOUR


def _local_midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=tz).astimezone(timezone.utc)


@dataclass(frozen=True)
class HourRange:
    """Inclusive range of whole UTC hours.

    Hours inside the range are addressed by their offset from start, which
    makes out-of-range lookups an explicit check instead of a missing key.
    """

    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", to_utc_hour(self.start))
        object.__setattr__(self, "end", to_utc_hour(self.end))
        if self.end < self.start:
            raise ValueError(
                f"Range end {self.end.isoformat()} lies before start {self.start.isoformat()}"
            )

    def __len__(self) -> int:
        return (self.end - self.start) // HOUR + 1

    def __contains__(self, moment: datetime) -> bool:
        return self.start <= to_utc_hour(moment) <= self.end

    def offset_of(self, moment: datetime) -> int | None:
        """Return the hour offset of moment, or None if it lies outside."""
        hour = to_utc_hour(moment)
        if not self.start <= hour <= self.end:
            return None
        return (hour - self.start) // HOUR

    def hour_at(self, offset: int) -> datetime:
        return self.start + offset * HOUR

    def hours(self) -> Iterator[datetime]:
        """Iterate all hours in increasing chronological order."""
        for offset in range(len(self)):
            yield self.hour_at(offset)

    def hours_reversed(self) -> Iterator[datetime]:
        """Iterate all hours from end back to start."""
        for offset in range(len(self) - 1, -1, -1):
            yield self.hour_at(offset)
