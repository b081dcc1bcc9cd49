"""Shared test fixtures and utilities for battery simulation tests."""

import logging
import os
import sys
from datetime import datetime, timezone

import pytest

# Add the project root to Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../../.."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from core.batsim.models import ConsumptionRecord  # noqa: E402
from core.batsim.price_table import PriceTable  # noqa: E402
from core.batsim.time_utils import HOUR  # noqa: E402

# Arbitrary simulation start used by the hour-series fixtures
SIMULATION_START = datetime(2024, 5, 31, 12, 0, tzinfo=timezone.utc)


class HourSeriesConsumption:
    """Consumption table stand-in holding one record per simulated hour."""

    def __init__(self, start: datetime, records: list[ConsumptionRecord]) -> None:
        self.start = start
        self.records = records

    def get_consumption(self, moment: datetime) -> ConsumptionRecord:
        offset = (moment - self.start) // HOUR
        if not 0 <= offset < len(self.records):
            raise LookupError(f"No consumption value for {moment.isoformat()}")
        return self.records[offset]

    def has_blocked_areas(self) -> bool:
        return any(r.is_blocked for r in self.records)

    def get_consumption_periods_of_day(self, moment: datetime) -> list[float]:
        raise NotImplementedError


def build_hour_series(rows: list[dict], start: datetime = SIMULATION_START):
    """Build a price table and consumption stand-in from per-hour rows.

    Each row holds price and consumption, optionally consumption800 and blocked.
    """
    prices = {start + i * HOUR: row["price"] for i, row in enumerate(rows)}
    records = [
        ConsumptionRecord(
            consumption_wh=row["consumption"],
            consumption_wh_800=row.get("consumption800"),
            is_blocked=row.get("blocked", False),
        )
        for row in rows
    ]
    return PriceTable(prices), HourSeriesConsumption(start, records)


@pytest.fixture
def hour_series():
    """Factory fixture returning (price_table, consumption_table) for rows."""
    return build_hour_series


@pytest.fixture
def write_profile(tmp_path):
    """Write a consumption profile CSV and return its path."""

    def _write(name: str, lines: list[str], header: str = "day;hour;wh") -> str:
        path = tmp_path / name
        path.write_text("\n".join([header, *lines]) + "\n", encoding="utf-8")
        return path

    return _write


def weekly_profile_lines(wh_by_key: dict | None = None, extra_by_key: dict | None = None):
    """Full week of profile lines; unspecified hours consume 0 Wh."""
    wh_by_key = wh_by_key or {}
    extra_by_key = extra_by_key or {}
    lines = []
    for day in [
        "Monday",
        "Tuesday",
        "Wednesday",
        "Thursday",
        "Friday",
        "Saturday",
        "Sunday/Holiday",
    ]:
        for hour in range(24):
            line = f"{day};{hour};{wh_by_key.get((day, hour), 0)}"
            if (day, hour) in extra_by_key:
                line = f"{line};{extra_by_key[(day, hour)]}"
            lines.append(line)
    return lines


@pytest.fixture
def weekly_lines():
    """Factory fixture for a full week of profile lines."""
    return weekly_profile_lines
