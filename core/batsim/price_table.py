"""
PriceTable for batsim.

Holds the hourly dynamic price series. Prices are stored without the fixed
surcharge (taxes, grid fees); every public query adds it back.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pandas as pd

from .exceptions import PriceDataUnavailableError, SystemConfigurationError
from .models import PricePoint
from .time_utils import TIMEZONE, HourRange, local_day_bounds, to_utc_hour
from .window_search import find_cheapest_window

logger = logging.getLogger(__name__)

CSV_DELIMITER = ";"
CSV_DATE_FORMAT = "%d.%m.%Y %H:%M"
# Only "start" and "price" are used
CSV_COLUMNS = ["start", "end", "zone", "unit", "price"]


class PriceTable:
    """Hourly prices addressed by hour offset within the covered range."""

    def __init__(
        self,
        prices: Mapping[datetime, float],
        surcharge_per_kwh: float = 0.0,
        tz: ZoneInfo = TIMEZONE,
    ) -> None:
        """Initialize from a mapping of timestamps to spot prices.

        Args:
            prices: Price per kWh by hour (timezone-aware timestamps)
            surcharge_per_kwh: Fixed amount added to every price
            tz: Local timezone used for calendar-day queries
        """
        self.surcharge_per_kwh = surcharge_per_kwh
        self.timezone = tz
        self._range: HourRange | None = None
        self._prices: list[float | None] = []
        self._average = 0.0

        if not prices:
            return

        normalized = {to_utc_hour(ts): float(price) for ts, price in prices.items()}
        hours = sorted(normalized)
        self._range = HourRange(hours[0], hours[-1])
        self._prices = [None] * len(self._range)
        for hour, price in normalized.items():
            self._prices[self._range.offset_of(hour)] = price

        self._average = sum(normalized.values()) / len(normalized)

        missing = len(self._range) - len(normalized)
        if missing:
            logger.warning(f"Price series has {missing} missing hours within its range")
        logger.info(
            f"Loaded {len(normalized)} prices from {self._range.start.isoformat()} "
            f"to {self._range.end.isoformat()}"
        )

    @classmethod
    def from_csv(
        cls,
        path: str | Path,
        surcharge_per_kwh: float = 0.0,
        tz: ZoneInfo = TIMEZONE,
    ) -> "PriceTable":
        """Load the semicolon-separated market export.

        The first line is a header. Column 0 holds the local start of the hour
        (dd.mm.YYYY HH:MM), column 4 the price per kWh with a decimal point or
        comma. A local hour that occurs twice (end of DST) is stored once for
        each of its two UTC instants, the first occurrence being summer time.

        Raises:
            SystemConfigurationError: If the file is missing or a row cannot be
                parsed (the message names the file line)
        """
        path = Path(path)
        if not path.is_file():
            raise SystemConfigurationError(
                component="prices", message=f"Price file {path} not found"
            )

        try:
            df = pd.read_csv(
                path,
                sep=CSV_DELIMITER,
                header=None,
                skiprows=1,
                names=CSV_COLUMNS,
                index_col=False,
                dtype=str,
                skip_blank_lines=False,
            )
        except pd.errors.EmptyDataError:
            return cls({}, surcharge_per_kwh=surcharge_per_kwh, tz=tz)
        except pd.errors.ParserError as e:
            raise SystemConfigurationError(
                component="prices", message=f"Cannot parse {path}: {e!s}"
            ) from e

        # File line numbers: header is line 1, data starts at line 2
        df.index = df.index + 2
        df = df.dropna(subset=["start"])
        df = df[df["start"].str.strip() != ""]

        local = pd.to_datetime(df["start"].str.strip(), format=CSV_DATE_FORMAT, errors="coerce")
        price = pd.to_numeric(
            df["price"].str.strip().str.replace(",", ".", regex=False), errors="coerce"
        )
        _raise_on_invalid(path, local.isna(), "timestamp", df["start"])
        _raise_on_invalid(path, price.isna(), "price", df["price"])

        # True marks summer time for the ambiguous hour at the end of DST
        first_occurrence = ~local.duplicated(keep="first")
        utc = local.dt.tz_localize(
            tz.key, ambiguous=first_occurrence.to_numpy(), nonexistent="NaT"
        ).dt.tz_convert("UTC")
        _raise_on_invalid(path, utc.isna(), "local time (skipped by DST)", df["start"])

        prices = dict(zip(utc.dt.to_pydatetime(), price.astype(float)))
        return cls(prices, surcharge_per_kwh=surcharge_per_kwh, tz=tz)

    def _require_range(self) -> HourRange:
        if self._range is None:
            raise PriceDataUnavailableError(message="Price table is empty")
        return self._range

    def get_range(self) -> HourRange:
        """First and last hour covered by the series."""
        return self._require_range()

    def get_average_price(self) -> float:
        """Arithmetic mean over all known hours, surcharge included."""
        self._require_range()
        return self.surcharge_per_kwh + self._average

    def get_price(self, moment: datetime) -> float:
        """Price of the hour containing moment, surcharge included.

        Raises:
            PriceDataUnavailableError: If the hour is not part of the series
        """
        offset = self._require_range().offset_of(moment)
        price = None if offset is None else self._prices[offset]
        if price is None:
            raise PriceDataUnavailableError(timestamp=moment)
        return price + self.surcharge_per_kwh

    def get_prices_of_day(self, moment: datetime) -> list[PricePoint]:
        """All known prices of the local calendar day containing moment."""
        price_range = self._require_range()
        first, last = local_day_bounds(moment, self.timezone)
        points = []
        for hour in HourRange(first, last).hours():
            offset = price_range.offset_of(hour)
            if offset is not None and self._prices[offset] is not None:
                points.append(PricePoint(hour, self._prices[offset] + self.surcharge_per_kwh))
        return points

    def get_best_period_of_day(self, moment: datetime, number_of_hours: int) -> list[PricePoint]:
        """Cheapest contiguous number_of_hours window of moment's local day."""
        return find_cheapest_window(self.get_prices_of_day(moment), number_of_hours)




def _raise_on_invalid(path: Path, invalid: pd.Series, what: str, raw: pd.Series) -> None:
    if invalid.any():
        line = invalid.idxmax()
        raise SystemConfigurationError(
            component="prices",
            message=f"Invalid {what} '{raw.loc[line]}' in {path} line {line}",
        )
