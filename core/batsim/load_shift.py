"""Load-shift estimator.

Estimates what the household would pay without a battery if every day's
consumption could be moved into the cheapest contiguous window of that day.
"""

import logging

from .consumption_table import ConsumptionTable
from .price_table import PriceTable
from .time_utils import DAY, HOUR

logger = logging.getLogger(__name__)

# Start a few hours into the first day so the stepping lands inside each day
DAY_ANCHOR_OFFSET_HOURS = 5


class LoadShiftEstimator:
    """Cost of shifting each day's loads into that day's cheapest window."""

    def __init__(self, price_table: PriceTable, consumption_table: ConsumptionTable) -> None:
        self.price_table = price_table
        self.consumption_table = consumption_table

    def estimate(self) -> float:
        """Total cost over the price range with all loads shifted.

        Returns:
            Sum over all days of price * consumption_kWh for the shifted hours
        """
        hour_range = self.price_table.get_range()
        total_cost = 0.0
        days = 0

        current = hour_range.start + DAY_ANCHOR_OFFSET_HOURS * HOUR
        while current <= hour_range.end:
            periods = self.consumption_table.get_consumption_periods_of_day(current)
            if periods:
                window = self.price_table.get_best_period_of_day(current, len(periods))
                for point, consumption_wh in zip(window, periods, strict=True):
                    total_cost += point.price * consumption_wh / 1000
            days += 1
            current += DAY

        logger.info(f"Load shift estimate over {days} days: {total_cost:.2f}")
        return total_cost
