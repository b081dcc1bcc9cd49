"""
ConsumptionTable for batsim.

Household load is described by weekly profiles: one record per (day name,
local hour of day). Several profiles (one per appliance) are summed into a
single table. Public holidays use the Sunday profile.

Profile CSV format (semicolon separated, header line skipped):
    day;hour;wh[;wh_at_800w | blocked]
"""

import logging
from collections.abc import Collection, Iterable
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pandas as pd

from .exceptions import ConsumptionDataUnavailableError, SystemConfigurationError
from .models import ConsumptionRecord
from .time_utils import TIMEZONE, HourRange, local_day_bounds

logger = logging.getLogger(__name__)

SUNDAY_OR_HOLIDAY = "Sunday/Holiday"
# Indexed by datetime.weekday()
DAY_NAMES = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    SUNDAY_OR_HOLIDAY,
]
BLOCKED_MARKER = "blocked"
PROFILE_COLUMNS = ["day", "hour", "wh", "extra"]

ProfileKey = tuple[str, int]


class ConsumptionTable:
    """Combined consumption profiles, looked up by local day name and hour."""

    def __init__(
        self,
        records: dict[ProfileKey, ConsumptionRecord],
        holiday_dates: Collection[date] = (),
        tz: ZoneInfo = TIMEZONE,
    ) -> None:
        self._records = dict(records)
        self._holiday_dates = holiday_dates
        self.timezone = tz
        self._has_blocked_areas = any(r.is_blocked for r in self._records.values())

    @classmethod
    def from_profiles(
        cls,
        paths: Iterable[str | Path],
        holiday_dates: Collection[date] = (),
        tz: ZoneInfo = TIMEZONE,
    ) -> "ConsumptionTable":
        """Load and sum one or more profile files.

        Args:
            paths: Profile CSV files
            holiday_dates: Local dates that use the Sunday/Holiday profile
            tz: Timezone the profile hours refer to

        Raises:
            SystemConfigurationError: If a profile is missing or empty
        """
        records: dict[ProfileKey, ConsumptionRecord] = {}
        for path in paths:
            path = Path(path)
            profile = _read_profile(path)
            for key, record in profile:
                existing = records.get(key)
                records[key] = record if existing is None else existing.combine(record)
            logger.debug(f"Loaded consumption profile {path.name}")

        table = cls(records, holiday_dates=holiday_dates, tz=tz)
        logger.info(
            f"Consumption table has {len(records)} profile hours, "
            f"blocked areas: {table.has_blocked_areas()}"
        )
        return table

    def _key_for(self, moment: datetime) -> ProfileKey:
        local = moment.astimezone(self.timezone)
        if local.date() in self._holiday_dates:
            return SUNDAY_OR_HOLIDAY, local.hour
        return DAY_NAMES[local.weekday()], local.hour

    def get_consumption(self, moment: datetime) -> ConsumptionRecord:
        """Consumption of the local profile hour containing moment.

        Raises:
            ConsumptionDataUnavailableError: If no profile covers the hour
        """
        key = self._key_for(moment)
        record = self._records.get(key)
        if record is None:
            raise ConsumptionDataUnavailableError(timestamp=moment, key=f"{key[0]} {key[1]}")
        return record

    def has_blocked_areas(self) -> bool:
        return self._has_blocked_areas

    def get_consumption_periods_of_day(self, moment: datetime) -> list[float]:
        """Non-zero hourly consumptions (Wh) of moment's local day, in order."""
        first, last = local_day_bounds(moment, self.timezone)
        periods = []
        for hour in HourRange(first, last).hours():
            consumption_wh = self.get_consumption(hour).consumption_wh
            if consumption_wh > 0:
                periods.append(consumption_wh)
        return periods


def _read_profile(path: Path) -> list[tuple[ProfileKey, ConsumptionRecord]]:
    if not path.is_file():
        raise SystemConfigurationError(
            component="consumption", message=f"Profile {path} not found"
        )

    try:
        df = pd.read_csv(
            path,
            sep=";",
            header=None,
            skiprows=1,
            names=PROFILE_COLUMNS,
            index_col=False,
            dtype=str,
            skip_blank_lines=False,
        )
    except pd.errors.EmptyDataError:
        df = pd.DataFrame(columns=PROFILE_COLUMNS)
    except pd.errors.ParserError as e:
        raise SystemConfigurationError(
            component="consumption", message=f"Cannot parse profile {path}: {e!s}"
        ) from e

    # File line numbers: header is line 1, data starts at line 2
    df.index = df.index + 2
    df = df.dropna(subset=["day"])

    rows = []
    for line, day_name, hour, wh, extra in df.itertuples(name=None):
        try:
            rows.append((_parse_key(day_name, hour), _parse_record(wh, extra)))
        except (TypeError, ValueError) as e:
            raise SystemConfigurationError(
                component="consumption",
                message=f"Invalid profile row in {path} line {line}: {e!s}",
            ) from e

    if not rows:
        raise SystemConfigurationError(
            component="consumption", message=f"Profile {path} is empty"
        )
    return rows


def _parse_key(day_name: str, hour: str | float) -> ProfileKey:
    day_name = day_name.strip()
    if day_name not in DAY_NAMES:
        raise ValueError(f"unknown day '{day_name}'")
    hour = int(hour)
    if not 0 <= hour <= 23:
        raise ValueError(f"hour {hour} outside 0-23")
    return day_name, hour


def _parse_record(wh: str | float, extra: str | float) -> ConsumptionRecord:
    # Missing cells come back as NaN
    if not isinstance(wh, str):
        raise ValueError("missing Wh value")
    consumption_wh = float(wh)
    extra = extra.strip() if isinstance(extra, str) else ""

    if extra == BLOCKED_MARKER:
        return ConsumptionRecord(consumption_wh=consumption_wh, is_blocked=True)
    if extra:
        return ConsumptionRecord(consumption_wh=consumption_wh, consumption_wh_800=float(extra))
    return ConsumptionRecord(consumption_wh=consumption_wh)
