"""
ReservationPlanner - minimum state of charge ahead of blocked hours.

While a blocked hour is in progress the device is away from the grid and must
be powered from the battery alone. The planner walks the simulated range
backward and, for every hour, records how much energy must already be stored
so that the following blocked block can be served (plus a safety buffer),
given that every unblocked hour in between can add charge_power_w.

Example with charge power 1000 W and two blocked hours of 1000 Wh each
(20% buffer):
    hour:     t-4   t-3   t-2   t-1 (blocked)   t (blocked)
    reserve:    0   400  1400  2400            1200
"""

import logging
from datetime import datetime

from .consumption_table import ConsumptionTable
from .exceptions import ReservationMissError
from .settings import RESERVATION_BUFFER_PERCENT
from .time_utils import HourRange

logger = logging.getLogger(__name__)


class ReservationPlanner:
    """Precomputed per-hour reservation map for one charge power and range."""

    BUFFER_PERCENT = RESERVATION_BUFFER_PERCENT

    def __init__(self, consumption_table: ConsumptionTable) -> None:
        self.consumption_table = consumption_table
        self._reservations: list[float] = []
        self._hour_range: HourRange | None = None
        self._charge_power_w: float | None = None
        self._has_blocked_hours = False

    @property
    def hour_range(self) -> HourRange | None:
        return self._hour_range

    @property
    def charge_power_w(self) -> float | None:
        return self._charge_power_w

    def compute_reservations(self, charge_power_w: float, hour_range: HourRange) -> bool:
        """Recompute the reservation map.

        Args:
            charge_power_w: Energy the battery gains per unblocked hour
            hour_range: Hours to plan for

        Returns:
            True if any blocked hour lies within the range
        """
        multiplier = 1 + self.BUFFER_PERCENT / 100
        reservations: list[float] = []
        reserve_wh = 0.0
        has_blocked_hours = False

        for hour in hour_range.hours_reversed():
            record = self.consumption_table.get_consumption(hour)
            if record.is_blocked:
                reserve_wh += record.consumption_wh * multiplier
                has_blocked_hours = True
            else:
                reserve_wh = max(reserve_wh - charge_power_w, 0.0)
            reservations.append(reserve_wh)
        reservations.reverse()

        self._reservations = reservations
        self._hour_range = hour_range
        self._charge_power_w = charge_power_w
        self._has_blocked_hours = has_blocked_hours

        if not has_blocked_hours:
            logger.info("No blocked hours in range, reservation-driven charging is disabled")
        else:
            logger.debug(
                f"Computed {len(reservations)} reservations for {charge_power_w} W, "
                f"peak {max(reservations):.0f} Wh"
            )
        return has_blocked_hours

    def get_min_charge_wh(self, hour: datetime) -> float:
        """Charge that must be stored at hour to survive the next blocked block.

        Raises:
            ReservationMissError: If blocked hours exist and hour lies outside
                the computed range
        """
        if not self._has_blocked_hours:
            return 0.0

        offset = self._hour_range.offset_of(hour)
        if offset is None:
            raise ReservationMissError(hour)
        return self._reservations[offset]
