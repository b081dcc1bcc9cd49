"""
Topology policies for the dispatch engine.

Each inverter topology settles the cost of an hour differently once the engine
has decided on CHARGE, DISCHARGE or IDLE. One policy object per topology holds
those rules; the engine only looks the policy up and calls the method for the
chosen state.

TOPOLOGIES:
- STAND_ALONE_INVERTER: the battery sits between grid and load. Charging runs
  load and charger through the battery; a blocked hour is fully islanded.
- GRID_INVERTER: the battery feeds back into the house grid through a plug-in
  inverter capped at 800 W. Charging draws from the grid only, idling leaves
  the battery untouched.
- STAND_ALONE_PLUS: charges like a grid inverter, discharges like a
  stand-alone inverter.

All methods return the amount paid for the hour.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from .exceptions import ConsistencyError, SystemConfigurationError
from .models import ConsumptionRecord, Topology
from .settings import GRID_INVERTER_DISCHARGE_LIMIT_W
from .storage import Storage

logger = logging.getLogger(__name__)

__all__ = [
    "GridInverterPolicy",
    "HourContext",
    "POLICIES",
    "StandAloneInverterPolicy",
    "StandAlonePlusPolicy",
    "TopologyPolicy",
    "policy_for",
]


@dataclass(frozen=True)
class HourContext:
    """Read-only facts about the hour being dispatched."""

    timestamp: datetime
    price: float
    record: ConsumptionRecord
    charge_power_w: float

    @property
    def consumption_wh(self) -> float:
        return self.record.consumption_wh

    @property
    def consumption_kwh(self) -> float:
        return self.record.consumption_kwh

    @property
    def cost_without_battery(self) -> float:
        return self.consumption_kwh * self.price


class TopologyPolicy(ABC):
    """Cost rules of one inverter topology."""

    topology: Topology

    def configure(self, storage: Storage) -> None:
        """Prepare the storage for a run (default: no delivery cap)."""
        storage.reset_consumption_limit()

    def discharge_load_wh(self, record: ConsumptionRecord) -> float:
        """Load presented to the storage when discharging."""
        return record.consumption_wh

    @abstractmethod
    def charge(self, storage: Storage, ctx: HourContext) -> float:
        """Settle a CHARGE hour in which the device is connected."""

    @abstractmethod
    def charge_blocked(self, storage: Storage, ctx: HourContext) -> float:
        """Settle a CHARGE hour in which the device is away from the grid."""

    @abstractmethod
    def discharge(self, storage: Storage, ctx: HourContext) -> float:
        """Settle a DISCHARGE hour."""

    @abstractmethod
    def idle(self, storage: Storage, ctx: HourContext) -> float:
        """Settle an IDLE hour."""


def _charge_from_grid_only(storage: Storage, ctx: HourContext) -> float:
    """Charge at full power while the load is paid separately."""
    result = storage.process(ctx.charge_power_w, 0)
    if result.discharged_wh > 0:
        raise ConsistencyError(
            f"Storage discharged {result.discharged_wh:.3f} Wh during a grid-only charge",
            ctx.timestamp,
        )
    used_for_storage_kwh = (result.charged_wh + result.efficiency_loss_wh) / 1000
    return (ctx.consumption_kwh + used_for_storage_kwh) * ctx.price


def _serve_load_from_storage(storage: Storage, ctx: HourContext, load_wh: float) -> float:
    """Serve load_wh from storage, buying only the deficit."""
    result = storage.process(0, load_wh)
    return result.deficit_wh / 1000 * ctx.price


def _idle_serving_load(storage: Storage, ctx: HourContext, load_wh: float) -> float:
    # Stand-alone inverters keep serving the load from storage while idle.
    # Blocked hours must already have been settled by the CHARGE decision.
    paid = _serve_load_from_storage(storage, ctx, load_wh)
    if paid > 0 and ctx.record.is_blocked:
        raise ConsistencyError(
            f"Idle hour paid {paid:.6f} while blocked; blocked hours must be "
            "covered by the reservation",
            ctx.timestamp,
        )
    return paid


class StandAloneInverterPolicy(TopologyPolicy):
    topology = Topology.STAND_ALONE_INVERTER

    def charge(self, storage: Storage, ctx: HourContext) -> float:
        result = storage.process(ctx.charge_power_w, ctx.consumption_wh)

        if result.charged_wh > 0:
            # Charger covered the load and the surplus went into storage
            used_for_charging_kwh = (result.charged_wh + result.efficiency_loss_wh) / 1000
            return ctx.price * (used_for_charging_kwh + ctx.consumption_kwh)
        if result.discharged_wh > 0:
            # Load exceeded charge power, storage covered the rest
            used_from_storage_kwh = (result.discharged_wh - result.efficiency_loss_wh) / 1000
            return ctx.price * (ctx.consumption_kwh - used_from_storage_kwh)
        return ctx.cost_without_battery

    def charge_blocked(self, storage: Storage, ctx: HourContext) -> float:
        # Islanded: the load is served from storage and nothing is bought
        storage.process(0, ctx.consumption_wh)
        return 0.0

    def discharge(self, storage: Storage, ctx: HourContext) -> float:
        return _serve_load_from_storage(storage, ctx, self.discharge_load_wh(ctx.record))

    def idle(self, storage: Storage, ctx: HourContext) -> float:
        return _idle_serving_load(storage, ctx, self.discharge_load_wh(ctx.record))


class GridInverterPolicy(TopologyPolicy):
    topology = Topology.GRID_INVERTER

    def configure(self, storage: Storage) -> None:
        storage.set_consumption_limit(GRID_INVERTER_DISCHARGE_LIMIT_W)

    def discharge_load_wh(self, record: ConsumptionRecord) -> float:
        """Prefer the consumption figure measured under the 800 W cap."""
        if record.consumption_wh_800 is not None:
            return record.consumption_wh_800
        return record.consumption_wh

    def charge(self, storage: Storage, ctx: HourContext) -> float:
        return _charge_from_grid_only(storage, ctx)

    def charge_blocked(self, storage: Storage, ctx: HourContext) -> float:
        return ctx.cost_without_battery

    def discharge(self, storage: Storage, ctx: HourContext) -> float:
        result = storage.process(0, self.discharge_load_wh(ctx.record))
        used_from_storage_kwh = (result.discharged_wh - result.efficiency_loss_wh) / 1000
        return (ctx.consumption_kwh - used_from_storage_kwh) * ctx.price

    def idle(self, storage: Storage, ctx: HourContext) -> float:
        return ctx.cost_without_battery


class StandAlonePlusPolicy(TopologyPolicy):
    topology = Topology.STAND_ALONE_PLUS

    def charge(self, storage: Storage, ctx: HourContext) -> float:
        return _charge_from_grid_only(storage, ctx)

    def charge_blocked(self, storage: Storage, ctx: HourContext) -> float:
        return ctx.cost_without_battery

    def discharge(self, storage: Storage, ctx: HourContext) -> float:
        return _serve_load_from_storage(storage, ctx, self.discharge_load_wh(ctx.record))

    def idle(self, storage: Storage, ctx: HourContext) -> float:
        return _idle_serving_load(storage, ctx, self.discharge_load_wh(ctx.record))


POLICIES: dict[Topology, TopologyPolicy] = {
    Topology.STAND_ALONE_INVERTER: StandAloneInverterPolicy(),
    Topology.GRID_INVERTER: GridInverterPolicy(),
    Topology.STAND_ALONE_PLUS: StandAlonePlusPolicy(),
}


def policy_for(topology: Topology) -> TopologyPolicy:
    """Return the policy handling the given topology."""
    try:
        return POLICIES[topology]
    except KeyError:
        raise SystemConfigurationError(
            component="topology", message=f"Unsupported topology {topology!r}"
        ) from None
