"""
ParameterSweep - evaluate every combination of battery parameters.

The grid spans charge power, storage size and hysteresis. Charge power is the
outermost loop because the reservation map depends only on it; the map is
recomputed once per charge power and only when the consumption has blocked
areas at all. Each point runs on a fresh Storage.
"""

import json
import logging
from dataclasses import dataclass

from .consumption_table import ConsumptionTable
from .dispatch_engine import DispatchEngine, HourCallback
from .models import SimulationConfig, SimulationResult, SweepPoint
from .price_table import PriceTable
from .reservation_planner import ReservationPlanner
from .settings import StorageSettings, SweepSettings
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class SweepOutcome:
    """All evaluated points and the one with the lowest dynamic cost."""

    points: list[SweepPoint]
    best: SweepPoint


class ParameterSweep:
    """Runs the dispatch simulation across the configured parameter grid."""

    def __init__(
        self,
        price_table: PriceTable,
        consumption_table: ConsumptionTable,
        sweep_settings: SweepSettings,
        storage_settings: StorageSettings | None = None,
        fixed_price_per_kwh: float | None = None,
    ) -> None:
        self.price_table = price_table
        self.consumption_table = consumption_table
        self.sweep_settings = sweep_settings
        self.storage_settings = storage_settings or StorageSettings()
        self.fixed_price_per_kwh = fixed_price_per_kwh
        self.planner = ReservationPlanner(consumption_table)

    def run(self) -> SweepOutcome:
        """Evaluate the full grid.

        Returns:
            SweepOutcome; the first point wins ties on dynamic cost
        """
        settings = self.sweep_settings
        charge_powers = settings.charge_power_w.values()
        storage_sizes = settings.storage_size_wh.values()
        hystereses = settings.hysteresis_percent.values()

        logger.info(
            f"Sweeping {len(charge_powers) * len(storage_sizes) * len(hystereses)} "
            f"combinations for {settings.topology.name}, "
            f"average price {self.price_table.get_average_price():.4f}"
        )

        points: list[SweepPoint] = []
        best: SweepPoint | None = None

        for charge_power_w in charge_powers:
            self._prepare_planner(charge_power_w)
            for storage_size_wh in storage_sizes:
                for hysteresis_percent in hystereses:
                    point = self.evaluate(storage_size_wh, charge_power_w, hysteresis_percent)
                    logger.info(json.dumps(point.to_dict()))
                    points.append(point)
                    if (
                        best is None
                        or point.result.total_cost_dynamic < best.result.total_cost_dynamic
                    ):
                        best = point

        return SweepOutcome(points=points, best=best)

    def evaluate(
        self,
        storage_size_wh: float,
        charge_power_w: float,
        hysteresis_percent: float,
        on_hour: HourCallback | None = None,
    ) -> SweepPoint:
        """Run one simulation on a fresh storage.

        The planner must already hold reservations for charge_power_w.
        """
        storage = Storage(storage_size_wh, self.storage_settings.efficiency_percent)
        engine = DispatchEngine(self.price_table, self.consumption_table, self.planner, storage)
        config = SimulationConfig(
            hysteresis_percent=hysteresis_percent,
            charge_power_w=charge_power_w,
            topology=self.sweep_settings.topology,
            fixed_price_per_kwh=self.fixed_price_per_kwh,
        )
        result = engine.run(config, on_hour=on_hour)
        return SweepPoint(
            storage_size_wh=storage_size_wh,
            charge_power_w=charge_power_w,
            hysteresis_percent=hysteresis_percent,
            result=result,
        )

    def replay(self, point: SweepPoint, on_hour: HourCallback) -> SimulationResult:
        """Re-run a single point with an hour callback, e.g. for plot export."""
        self._prepare_planner(point.charge_power_w)
        replayed = self.evaluate(
            point.storage_size_wh, point.charge_power_w, point.hysteresis_percent, on_hour
        )
        return replayed.result

    def _prepare_planner(self, charge_power_w: float) -> None:
        if not self.consumption_table.has_blocked_areas():
            return
        hour_range = self.price_table.get_range()
        if self.planner.charge_power_w == charge_power_w and self.planner.hour_range == hour_range:
            return
        self.planner.compute_reservations(charge_power_w, hour_range)
