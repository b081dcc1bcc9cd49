"""
DispatchEngine - hourly charge/discharge simulation against dynamic prices.

DECISION RULE (per hour, in chronological order):
    1. CHARGE    if price < limit_for_charge
                 or the reservation for the next hour exceeds the state of charge
    2. DISCHARGE if price > limit_for_discharge
    3. IDLE      otherwise

The limits are the average price shifted down/up by hysteresis_percent of
itself. How each state is settled depends on the topology, see
dispatch_policies.

Every hour is also priced without a battery, either at the fixed tariff when
one is configured or at the dynamic price itself, to give the comparison total.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from .consumption_table import ConsumptionTable
from .dispatch_policies import HourContext, TopologyPolicy, policy_for
from .exceptions import ConsistencyError, SystemConfigurationError
from .models import DispatchState, HourlyTrace, SimulationConfig, SimulationResult
from .price_table import PriceTable
from .reservation_planner import ReservationPlanner
from .storage import Storage
from .time_utils import HOUR, HourRange

logger = logging.getLogger(__name__)

HourCallback = Callable[[HourlyTrace], None]


class DispatchEngine:
    """Runs one simulation over the full price range."""

    def __init__(
        self,
        price_table: PriceTable,
        consumption_table: ConsumptionTable,
        planner: ReservationPlanner,
        storage: Storage,
    ) -> None:
        self.price_table = price_table
        self.consumption_table = consumption_table
        self.planner = planner
        self.storage = storage

    def run(
        self, config: SimulationConfig, on_hour: HourCallback | None = None
    ) -> SimulationResult:
        """Simulate every hour of the price range.

        The storage is used as found; callers pass a fresh one per run.

        Args:
            config: Hysteresis, charge power, topology and optional fixed tariff
            on_hour: Called with the HourlyTrace of every simulated hour

        Returns:
            SimulationResult with both cost totals and the storage extremes

        Raises:
            SystemConfigurationError: If the planner was computed for another
                charge power or range
            ConsistencyError: If a settled cost breaks an internal invariant
        """
        hour_range = self.price_table.get_range()
        self._check_planner(config, hour_range)

        policy = policy_for(config.topology)
        policy.configure(self.storage)

        average_price = self.price_table.get_average_price()
        hysteresis = average_price * config.hysteresis_percent / 100
        limit_for_charge = average_price - hysteresis
        limit_for_discharge = average_price + hysteresis

        logger.debug(
            f"Running {config.topology.name} over {len(hour_range)} hours: "
            f"charge below {limit_for_charge:.4f}, discharge above {limit_for_discharge:.4f}"
        )

        dynamic_cost_sum = 0.0
        fixed_cost_sum = 0.0

        for hour in hour_range.hours():
            ctx = HourContext(
                timestamp=hour,
                price=self.price_table.get_price(hour),
                record=self.consumption_table.get_consumption(hour),
                charge_power_w=config.charge_power_w,
            )
            required_charge = self._required_charge_after(hour, hour_range)

            if (
                ctx.price < limit_for_charge
                or required_charge > self.storage.get_state_of_charge()
            ):
                state = DispatchState.CHARGE
            elif ctx.price > limit_for_discharge:
                state = DispatchState.DISCHARGE
            else:
                state = DispatchState.IDLE

            paid = self._settle(policy, state, ctx)

            if config.fixed_price_per_kwh is not None:
                fixed_cost = ctx.consumption_kwh * config.fixed_price_per_kwh
            else:
                fixed_cost = ctx.cost_without_battery

            dynamic_cost_sum += paid
            fixed_cost_sum += fixed_cost

            if on_hour is not None:
                on_hour(
                    HourlyTrace(
                        timestamp=hour,
                        state=state,
                        consumption_wh=ctx.consumption_wh,
                        price=ctx.price,
                        paid_price=paid,
                        fixed_price=fixed_cost,
                        is_blocked=ctx.record.is_blocked,
                        limit_for_charge=limit_for_charge,
                        limit_for_discharge=limit_for_discharge,
                        state_of_charge_wh=self.storage.get_state_of_charge(),
                        required_charge_wh=required_charge,
                    )
                )

        return SimulationResult(
            total_cost_dynamic=dynamic_cost_sum,
            total_cost_fixed=fixed_cost_sum,
            minimum_charge_wh=self.storage.get_minimum_charge(),
            maximum_charge_wh=self.storage.get_maximum_charge(),
        )

    def _settle(self, policy: TopologyPolicy, state: DispatchState, ctx: HourContext) -> float:
        if state == DispatchState.CHARGE:
            if ctx.record.is_blocked:
                return policy.charge_blocked(self.storage, ctx)
            return policy.charge(self.storage, ctx)

        if state == DispatchState.DISCHARGE:
            paid = policy.discharge(self.storage, ctx)
            if paid > ctx.cost_without_battery:
                raise ConsistencyError(
                    f"Paid {paid:.6f} while discharging, more than "
                    f"{ctx.cost_without_battery:.6f} without battery",
                    ctx.timestamp,
                )
            return paid

        return policy.idle(self.storage, ctx)

    def _required_charge_after(self, hour: datetime, hour_range: HourRange) -> float:
        """Reservation of the following hour; nothing is reserved past the range."""
        next_hour = hour + HOUR
        if next_hour not in hour_range:
            return 0.0
        return self.planner.get_min_charge_wh(next_hour)

    def _check_planner(self, config: SimulationConfig, hour_range: HourRange) -> None:
        if not self.consumption_table.has_blocked_areas():
            return
        if (
            self.planner.hour_range != hour_range
            or self.planner.charge_power_w != config.charge_power_w
        ):
            raise SystemConfigurationError(
                component="reservation_planner",
                message=f"Reservations were computed for {self.planner.charge_power_w} W "
                f"over {self.planner.hour_range}, run needs {config.charge_power_w} W "
                f"over {hour_range}",
            )
