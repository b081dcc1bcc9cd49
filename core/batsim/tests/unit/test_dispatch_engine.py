"""Tests for the hourly dispatch engine and its topology policies.

Unless stated otherwise the storage holds 1000 Wh at 80% round-trip
efficiency, so 10% is lost on the way in and 10% on the way out.
"""

import pytest

from core.batsim.dispatch_engine import DispatchEngine
from core.batsim.exceptions import ConsistencyError, SystemConfigurationError
from core.batsim.models import (
    DispatchState,
    SimulationConfig,
    StorageProcessResult,
    Topology,
)
from core.batsim.reservation_planner import ReservationPlanner
from core.batsim.storage import Storage
from core.batsim.trace_exporter import TraceRecorder

# Average 0.4375: charge below 0.35, discharge above 0.525 at 20% hysteresis
MIXED_DAY = [
    {"price": 0.3, "consumption": 80},
    {"price": 0.5, "consumption": 70},
    {"price": 0.6, "consumption": 60},
    {"price": 0.7, "consumption": 50},
    {"price": 0.5, "consumption": 60},
    {"price": 0.4, "consumption": 80},
    {"price": 0.3, "consumption": 100},
    {"price": 0.2, "consumption": 200},
]

# Average 0.425: charge below 0.34, discharge above 0.51
FULL_BATTERY_DAY = [
    {"price": 0.3, "consumption": 80},
    {"price": 0.2, "consumption": 70},
    {"price": 0.5, "consumption": 60},
    {"price": 0.7, "consumption": 50},
]

# Average 0.55: charge below 0.44, discharge above 0.66
EMPTY_BATTERY_DAY = [
    {"price": 0.7, "consumption": 120},
    {"price": 0.7, "consumption": 70},
    {"price": 0.5, "consumption": 60},
    {"price": 0.3, "consumption": 50},
]


def run_simulation(
    hour_series,
    rows,
    storage,
    topology,
    charge_power_w,
    hysteresis_percent=20,
    fixed_price_per_kwh=0.5,
    on_hour=None,
):
    prices, consumption = hour_series(rows)
    planner = ReservationPlanner(consumption)
    if consumption.has_blocked_areas():
        planner.compute_reservations(charge_power_w, prices.get_range())
    engine = DispatchEngine(prices, consumption, planner, storage)
    config = SimulationConfig(
        hysteresis_percent=hysteresis_percent,
        charge_power_w=charge_power_w,
        topology=topology,
        fixed_price_per_kwh=fixed_price_per_kwh,
    )
    return engine.run(config, on_hour=on_hour)


class TestTopologies:
    """End-to-end runs over short price series for each topology."""

    def test_grid_inverter(self, hour_series):
        storage = Storage(1000, 80)
        storage.process(500, 0)  # 450 Wh

        result = run_simulation(hour_series, MIXED_DAY, storage, Topology.GRID_INVERTER, 100)

        assert result.total_cost_fixed == pytest.approx(0.7 * 0.5)
        assert result.total_cost_dynamic == pytest.approx(0.271, abs=1e-3)
        assert result.maximum_charge_wh == pytest.approx(599)
        assert result.minimum_charge_wh == pytest.approx(419)

    def test_stand_alone_plus(self, hour_series):
        storage = Storage(1000, 80)
        storage.process(500, 0)

        result = run_simulation(hour_series, MIXED_DAY, storage, Topology.STAND_ALONE_PLUS, 100)

        assert result.total_cost_fixed == pytest.approx(0.7 * 0.5)
        assert result.total_cost_dynamic == pytest.approx(0.174, abs=1e-3)
        assert result.maximum_charge_wh == pytest.approx(540)
        assert result.minimum_charge_wh == pytest.approx(188)

    def test_stand_alone_inverter(self, hour_series):
        storage = Storage(1000, 80)
        storage.process(600, 0)  # 540 Wh

        result = run_simulation(
            hour_series, MIXED_DAY, storage, Topology.STAND_ALONE_INVERTER, 100
        )

        assert result.total_cost_fixed == pytest.approx(0.7 * 0.5)
        assert result.total_cost_dynamic == pytest.approx(0.08, abs=1e-2)
        assert result.maximum_charge_wh == pytest.approx(558)
        assert result.minimum_charge_wh == pytest.approx(96)

    @pytest.mark.parametrize(
        ("topology", "dynamic", "minimum"),
        [
            (Topology.GRID_INVERTER, 0.101, 945),
            (Topology.STAND_ALONE_PLUS, 0.071, 879),
        ],
    )
    def test_battery_full(self, hour_series, topology, dynamic, minimum):
        storage = Storage(1000, 80)
        storage.process(1000, 0)  # 900 Wh

        result = run_simulation(hour_series, FULL_BATTERY_DAY, storage, topology, 200)

        assert result.total_cost_fixed == pytest.approx(0.26 * 0.5)
        assert result.total_cost_dynamic == pytest.approx(dynamic, abs=1e-3)
        assert result.maximum_charge_wh == pytest.approx(1000)
        assert result.minimum_charge_wh == pytest.approx(minimum)

    def test_battery_full_stand_alone_inverter(self, hour_series):
        storage = Storage(1000, 80)
        storage.process(1000, 0)
        rows = [dict(FULL_BATTERY_DAY[0], consumption=40), *FULL_BATTERY_DAY[1:]]

        result = run_simulation(hour_series, rows, storage, Topology.STAND_ALONE_INVERTER, 200)

        assert result.total_cost_fixed == pytest.approx(0.22 * 0.5)
        assert result.total_cost_dynamic == pytest.approx(0.059, abs=1e-3)
        assert result.maximum_charge_wh == pytest.approx(1000)
        assert result.minimum_charge_wh == pytest.approx(879)

    @pytest.mark.parametrize(
        ("topology", "dynamic", "tolerance"),
        [
            (Topology.GRID_INVERTER, 0.145, 1e-3),
            (Topology.STAND_ALONE_PLUS, 0.145, 1e-3),
            (Topology.STAND_ALONE_INVERTER, 0.13, 1e-2),
        ],
    )
    def test_battery_empty(self, hour_series, topology, dynamic, tolerance):
        storage = Storage(1000, 80)
        storage.process(600, 0)  # 540 Wh, minimum tracking active
        storage.process(0, 400)  # 100 Wh left

        result = run_simulation(hour_series, EMPTY_BATTERY_DAY, storage, topology, 100)

        assert result.total_cost_fixed == pytest.approx(0.3 * 0.5)
        assert result.total_cost_dynamic == pytest.approx(dynamic, abs=tolerance)
        assert result.minimum_charge_wh == 0


class TestDischargeLimit:
    """The grid inverter delivers at most 800 W, stand-alone inverters are unlimited."""

    def test_grid_inverter_respects_800_watt(self, hour_series):
        storage = Storage(1000, 80)
        storage.process(1000, 0)
        rows = [{"price": 0.3, "consumption": 0}, {"price": 0.7, "consumption": 1000}]

        result = run_simulation(hour_series, rows, storage, Topology.GRID_INVERTER, 200)

        assert result.total_cost_dynamic == pytest.approx(0.173, abs=1e-3)
        assert result.minimum_charge_wh == pytest.approx(120)
        assert result.maximum_charge_wh == pytest.approx(1000)

    @pytest.mark.parametrize(
        "topology", [Topology.STAND_ALONE_PLUS, Topology.STAND_ALONE_INVERTER]
    )
    def test_stand_alone_has_no_limit(self, hour_series, topology):
        storage = Storage(1000, 80)
        storage.process(1000, 0)
        rows = [{"price": 0.3, "consumption": 0}, {"price": 0.7, "consumption": 820}]

        result = run_simulation(hour_series, rows, storage, topology, 200)

        assert result.total_cost_dynamic == pytest.approx(0.033, abs=1e-3)
        assert result.minimum_charge_wh == pytest.approx(98)
        assert result.maximum_charge_wh == pytest.approx(1000)

    def test_grid_inverter_uses_800_watt_consumption(self, hour_series):
        storage = Storage(1000, 80)
        storage.process(1000, 0)
        rows = [
            {"price": 0.3, "consumption": 0, "consumption800": 0},
            {"price": 0.7, "consumption": 200, "consumption800": 100},
        ]

        result = run_simulation(hour_series, rows, storage, Topology.GRID_INVERTER, 200)

        assert result.total_cost_dynamic == pytest.approx(0.103, abs=1e-3)
        assert result.minimum_charge_wh == pytest.approx(890)
        assert result.maximum_charge_wh == pytest.approx(1000)

    def test_grid_inverter_800_watt_consumption_with_empty_battery(self, hour_series):
        storage = Storage(1000, 80)
        storage.process(600, 0)
        storage.process(0, 400)
        rows = [
            {"price": 0.7, "consumption": 200, "consumption800": 150},
            {"price": 0.7, "consumption": 70, "consumption800": 60},
            {"price": 0.5, "consumption": 60, "consumption800": 60},
            {"price": 0.3, "consumption": 50, "consumption800": 50},
        ]

        result = run_simulation(hour_series, rows, storage, Topology.GRID_INVERTER, 100)

        assert result.total_cost_fixed == pytest.approx(0.38 * 0.5)
        assert result.total_cost_dynamic == pytest.approx(0.201, abs=1e-3)
        assert result.minimum_charge_wh == 0

    @pytest.mark.parametrize(
        "topology", [Topology.STAND_ALONE_PLUS, Topology.STAND_ALONE_INVERTER]
    )
    def test_stand_alone_ignores_800_watt_consumption(self, hour_series, topology):
        storage = Storage(1000, 80)
        storage.process(600, 0)  # 540 Wh
        rows = [
            {"price": 0.3, "consumption": 0, "consumption800": 0},
            {"price": 0.7, "consumption": 200, "consumption800": 50},
        ]

        result = run_simulation(hour_series, rows, storage, topology, 100)

        assert result.total_cost_dynamic == pytest.approx(0.03, abs=1e-2)
        assert result.minimum_charge_wh == pytest.approx(410)
        assert result.maximum_charge_wh == pytest.approx(630)


class TestIdlePolicy:
    """Idle hours: stand-alone inverters keep serving the load from storage."""

    # Average 0.5, every price inside the 20% band
    FLAT_DAY = [
        {"price": 0.5, "consumption": 100},
        {"price": 0.45, "consumption": 100},
        {"price": 0.55, "consumption": 100},
    ]

    @pytest.mark.parametrize(
        "topology", [Topology.STAND_ALONE_INVERTER, Topology.STAND_ALONE_PLUS]
    )
    def test_stand_alone_idle_draws_from_storage(self, hour_series, topology):
        storage = Storage(1000, 80)
        storage.process(1000, 0)  # 900 Wh
        recorder = TraceRecorder()

        result = run_simulation(
            hour_series, self.FLAT_DAY, storage, topology, 200, on_hour=recorder
        )

        assert [t.state for t in recorder.traces] == [DispatchState.IDLE] * 3
        assert result.total_cost_dynamic == 0
        assert storage.get_state_of_charge() == pytest.approx(900 - 3 * 110)

    def test_grid_inverter_idle_leaves_storage_untouched(self, hour_series):
        storage = Storage(1000, 80)
        storage.process(1000, 0)

        result = run_simulation(hour_series, self.FLAT_DAY, storage, Topology.GRID_INVERTER, 200)

        assert result.total_cost_dynamic == pytest.approx(0.05 + 0.045 + 0.055)
        assert storage.get_state_of_charge() == pytest.approx(900)


class TestBlockedHours:
    """Hours in which the device is away from the grid."""

    @pytest.mark.parametrize(
        ("topology", "dynamic", "charge_after"),
        [
            (Topology.STAND_ALONE_INVERTER, 0.0, 700),
            (Topology.GRID_INVERTER, 0.06, 1000),
            (Topology.STAND_ALONE_PLUS, 0.06, 1000),
        ],
    )
    def test_cheap_blocked_hour(self, hour_series, topology, dynamic, charge_after):
        """Stand-alone inverters are islanded, the others pay the load at full price."""
        storage = Storage(1000, 100)
        storage.process(1000, 0)
        rows = [
            {"price": 0.2, "consumption": 300, "blocked": True},
            {"price": 0.8, "consumption": 0},
        ]

        result = run_simulation(
            hour_series, rows, storage, topology, 1000, hysteresis_percent=0,
            fixed_price_per_kwh=None,
        )

        assert result.total_cost_dynamic == pytest.approx(dynamic)
        assert result.total_cost_fixed == pytest.approx(0.3 * 0.2)
        assert storage.get_state_of_charge() == pytest.approx(charge_after)

    def test_reservation_forces_charge_at_high_price(self, hour_series):
        storage = Storage(5000, 100)
        recorder = TraceRecorder()
        rows = [
            {"price": 0.6, "consumption": 0},
            {"price": 0.6, "consumption": 500, "blocked": True},
            {"price": 0.3, "consumption": 0},
        ]

        result = run_simulation(
            hour_series, rows, storage, Topology.GRID_INVERTER, 1000,
            hysteresis_percent=0, on_hour=recorder,
        )

        assert [t.state for t in recorder.traces] == [
            DispatchState.CHARGE,
            DispatchState.DISCHARGE,
            DispatchState.CHARGE,
        ]
        assert [t.required_charge_wh for t in recorder.traces] == pytest.approx([600, 0, 0])
        assert result.total_cost_dynamic == pytest.approx(0.6 + 0.3)

    def test_idle_payment_in_blocked_hour_is_inconsistent(self, hour_series):
        """An exhausted battery during a blocked idle hour is a fatal error."""
        storage = Storage(5000, 100)
        rows = [
            {"price": 0.5, "consumption": 0},
            {"price": 0.5, "consumption": 1000, "blocked": True},
            {"price": 0.5, "consumption": 1000, "blocked": True},
            {"price": 0.5, "consumption": 0},
        ]

        with pytest.raises(ConsistencyError, match="blocked"):
            run_simulation(
                hour_series, rows, storage, Topology.STAND_ALONE_INVERTER, 1000,
                hysteresis_percent=0,
            )

    def test_planner_for_other_charge_power_is_rejected(self, hour_series):
        rows = [
            {"price": 0.3, "consumption": 0},
            {"price": 0.6, "consumption": 500, "blocked": True},
        ]
        prices, consumption = hour_series(rows)
        planner = ReservationPlanner(consumption)
        planner.compute_reservations(500, prices.get_range())
        engine = DispatchEngine(prices, consumption, planner, Storage(1000, 80))

        with pytest.raises(SystemConfigurationError):
            engine.run(SimulationConfig(20, 1000, Topology.GRID_INVERTER))

    def test_missing_planner_computation_is_rejected(self, hour_series):
        rows = [{"price": 0.3, "consumption": 500, "blocked": True}]
        prices, consumption = hour_series(rows)
        planner = ReservationPlanner(consumption)
        engine = DispatchEngine(prices, consumption, planner, Storage(1000, 80))

        with pytest.raises(SystemConfigurationError):
            engine.run(SimulationConfig(20, 1000, Topology.GRID_INVERTER))


class InflatedDeficitStorage(Storage):
    """Reports twice the requested load as deficit."""

    def process(self, feed_in_wh, consumption_wh):
        return StorageProcessResult(
            charged_wh=0,
            discharged_wh=0,
            efficiency_loss_wh=0,
            dumped_wh=0,
            deficit_wh=consumption_wh * 2,
            old_charge_wh=0,
            new_charge_wh=0,
        )


class DischargingStorage(Storage):
    """Reports a discharge for every transaction."""

    def process(self, feed_in_wh, consumption_wh):
        return StorageProcessResult(
            charged_wh=0,
            discharged_wh=10,
            efficiency_loss_wh=1,
            dumped_wh=0,
            deficit_wh=0,
            old_charge_wh=10,
            new_charge_wh=0,
        )


class TestConsistencyChecks:
    def test_discharge_costing_more_than_grid_is_rejected(self, hour_series):
        rows = [{"price": 0.2, "consumption": 100}, {"price": 0.8, "consumption": 100}]

        with pytest.raises(ConsistencyError, match="without battery"):
            run_simulation(
                hour_series, rows, InflatedDeficitStorage(1000, 80),
                Topology.STAND_ALONE_INVERTER, 100,
            )

    @pytest.mark.parametrize("topology", [Topology.GRID_INVERTER, Topology.STAND_ALONE_PLUS])
    def test_discharge_during_grid_charge_is_rejected(self, hour_series, topology):
        rows = [{"price": 0.2, "consumption": 100}, {"price": 0.8, "consumption": 100}]

        with pytest.raises(ConsistencyError, match="grid-only charge"):
            run_simulation(hour_series, rows, DischargingStorage(1000, 80), topology, 100)


class TestComparisonCost:
    def test_fixed_cost_defaults_to_dynamic_price_without_battery(self, hour_series):
        storage = Storage(1000, 80)

        result = run_simulation(
            hour_series, MIXED_DAY, storage, Topology.GRID_INVERTER, 100,
            fixed_price_per_kwh=None,
        )

        expected = sum(row["price"] * row["consumption"] / 1000 for row in MIXED_DAY)
        assert result.total_cost_fixed == pytest.approx(expected)

    def test_zero_fixed_price_is_a_real_tariff(self, hour_series):
        storage = Storage(1000, 80)

        result = run_simulation(
            hour_series, MIXED_DAY, storage, Topology.GRID_INVERTER, 100,
            fixed_price_per_kwh=0.0,
        )

        assert result.total_cost_fixed == 0

    @pytest.mark.parametrize(
        "topology",
        [Topology.STAND_ALONE_PLUS, Topology.STAND_ALONE_INVERTER, Topology.GRID_INVERTER],
    )
    def test_lower_efficiency_saves_less(self, hour_series, topology):
        def savings(efficiency_percent):
            storage = Storage(400, efficiency_percent)
            storage.process(200, 0)
            result = run_simulation(
                hour_series, MIXED_DAY, storage, topology, 200, fixed_price_per_kwh=None
            )
            return result.savings

        assert savings(80) > savings(20)

    def test_trace_reports_every_hour(self, hour_series):
        storage = Storage(1000, 80)
        recorder = TraceRecorder()

        result = run_simulation(
            hour_series, MIXED_DAY, storage, Topology.GRID_INVERTER, 100, on_hour=recorder
        )

        assert len(recorder) == len(MIXED_DAY)
        assert sum(t.paid_price for t in recorder.traces) == pytest.approx(
            result.total_cost_dynamic
        )
        assert sum(t.fixed_price for t in recorder.traces) == pytest.approx(
            result.total_cost_fixed
        )
        first = recorder.traces[0]
        assert first.state == DispatchState.CHARGE
        assert first.limit_for_charge == pytest.approx(0.35)
        assert first.limit_for_discharge == pytest.approx(0.525)
