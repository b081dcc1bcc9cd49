# core/batsim/models.py
"""
Data models for the battery simulation.

This module contains the dataclasses and enums passed between the tables, the
storage model, the dispatch engine and the sweep driver.

"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)

__all__ = [
    "ConsumptionRecord",
    "DispatchState",
    "HourlyTrace",
    "PricePoint",
    "SimulationConfig",
    "SimulationResult",
    "StorageProcessResult",
    "SweepPoint",
    "Topology",
]


class Topology(Enum):
    """Inverter wiring, decides how charging and discharging touch grid and load."""

    STAND_ALONE_INVERTER = "STAND_ALONE_INVERTER"  # Battery feeds the load directly
    GRID_INVERTER = "GRID_INVERTER"  # Battery feeds back into the house grid
    STAND_ALONE_PLUS = "STAND_ALONE_PLUS"  # Stand-alone with separate grid charger


class DispatchState(Enum):
    """Decision taken for one hour."""

    CHARGE = "CHARGE"
    DISCHARGE = "DISCHARGE"
    IDLE = "IDLE"


@dataclass(frozen=True)
class ConsumptionRecord:
    """Consumption of one profile hour (Wh)."""

    consumption_wh: float
    consumption_wh_800: float | None = None  # Figure used under an 800 W discharge cap
    is_blocked: bool = False  # Device is away from the grid in this hour

    @property
    def consumption_kwh(self) -> float:
        return self.consumption_wh / 1000

    def combine(self, other: "ConsumptionRecord") -> "ConsumptionRecord":
        """Sum two records sharing the same hour key.

        A blocked hour in any profile blocks the hour for all profiles.
        """
        if self.consumption_wh_800 is None and other.consumption_wh_800 is None:
            consumption_wh_800 = None
        else:
            consumption_wh_800 = (self.consumption_wh_800 or 0.0) + (
                other.consumption_wh_800 or 0.0
            )
        return ConsumptionRecord(
            consumption_wh=self.consumption_wh + other.consumption_wh,
            consumption_wh_800=consumption_wh_800,
            is_blocked=self.is_blocked or other.is_blocked,
        )


@dataclass(frozen=True)
class PricePoint:
    """Price of one hour."""

    timestamp: datetime
    price: float


@dataclass(frozen=True)
class StorageProcessResult:
    """Full accounting of one storage transaction (Wh).

    new_charge_wh == old_charge_wh + charged_wh - discharged_wh always holds;
    efficiency_loss_wh is already part of charged/discharged.
    """

    charged_wh: float
    discharged_wh: float
    efficiency_loss_wh: float
    dumped_wh: float
    deficit_wh: float
    old_charge_wh: float
    new_charge_wh: float


@dataclass(frozen=True)
class SimulationConfig:
    """Parameters held constant for one simulation run."""

    hysteresis_percent: float
    charge_power_w: float
    topology: Topology
    fixed_price_per_kwh: float | None = None  # None: compare against dynamic price


@dataclass(frozen=True)
class SimulationResult:
    """Totals of one simulation run."""

    total_cost_dynamic: float
    total_cost_fixed: float
    minimum_charge_wh: float | None  # None: storage never reached half capacity
    maximum_charge_wh: float

    @property
    def savings(self) -> float:
        return self.total_cost_fixed - self.total_cost_dynamic


@dataclass(frozen=True)
class HourlyTrace:
    """Everything the engine knew and decided for one hour."""

    timestamp: datetime
    state: DispatchState
    consumption_wh: float
    price: float
    paid_price: float
    fixed_price: float
    is_blocked: bool
    limit_for_charge: float
    limit_for_discharge: float
    state_of_charge_wh: float
    required_charge_wh: float


@dataclass(frozen=True)
class SweepPoint:
    """One evaluated point of the parameter sweep."""

    storage_size_wh: float
    charge_power_w: float
    hysteresis_percent: float
    result: SimulationResult

    def to_dict(self) -> dict:
        """Convert to the one-line report format."""
        minimum = self.result.minimum_charge_wh
        return {
            "storageSizeWh": self.storage_size_wh,
            "chargePowerW": self.charge_power_w,
            "hysteresis": self.hysteresis_percent,
            "storageMin": None if minimum is None else round(minimum),
            "storageMax": round(self.result.maximum_charge_wh),
            "dynamicPrice": round(self.result.total_cost_dynamic, 2),
            "fixedPrice": round(self.result.total_cost_fixed, 2),
        }
