"""Core configuration values and types for batsim using dataclasses."""

from dataclasses import dataclass, field
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import SystemConfigurationError
from .models import Topology
from .time_utils import DEFAULT_TIMEZONE

# Price settings defaults
PRICES_CSV = "data/prices.csv"
SURCHARGE_PER_KWH = 0.233  # Taxes and grid fees on top of the spot price (EUR/kWh)
FIXED_PRICE_PER_KWH = None  # None: compare against the dynamic price without battery

# Consumption settings defaults
PROFILES_DIR = "data/consumption-profiles"
DEFAULT_PROFILES = ["washing_machine.csv", "dishwasher.csv"]
HOLIDAY_COUNTRY = "DE"

# Storage settings defaults
BATTERY_EFFICIENCY_PERCENT = 80  # Round trip
GRID_INVERTER_DISCHARGE_LIMIT_W = 800  # Feed-in limit of plug-in grid inverters
RESERVATION_BUFFER_PERCENT = 20  # Safety margin on energy reserved for blocked hours

# Sweep defaults (start, step, max)
DEFAULT_TOPOLOGY = Topology.STAND_ALONE_INVERTER
CHARGE_POWER_W = (1000, 100, 1000)
STORAGE_SIZE_WH = (10000, 500, 10000)
HYSTERESIS_PERCENT = (0, 10, 80)


def parse_topology(value: "Topology | str") -> Topology:
    """Resolve a topology given by enum member or name."""
    if isinstance(value, Topology):
        return value
    try:
        return Topology[str(value).strip().upper()]
    except KeyError:
        raise SystemConfigurationError(
            component="topology",
            message=f"Unknown topology '{value}', expected one of "
            f"{', '.join(t.name for t in Topology)}",
        ) from None


def _section(config: dict, name: str) -> dict | None:
    """Return a config section; an empty (null) section counts as {}."""
    if name not in config:
        return None
    section = config[name]
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise SystemConfigurationError(
            component=name, message=f"Section '{name}' must be a mapping, got {section!r}"
        )
    return section


def _require_number(component: str, name: str, value: Any) -> float:
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SystemConfigurationError(
            component=component, message=f"{name} must be a number, got {value!r}"
        )
    return value


@dataclass
class SweepRange:
    """Inclusive start/step/max range of one sweep dimension."""

    start: float
    step: float
    maximum: float

    def __post_init__(self):
        _require_number("sweep", "Sweep start", self.start)
        _require_number("sweep", "Sweep step", self.step)
        _require_number("sweep", "Sweep maximum", self.maximum)
        if self.step <= 0:
            raise SystemConfigurationError(
                component="sweep", message=f"Sweep step must be positive, got {self.step}"
            )
        if self.maximum < self.start:
            raise SystemConfigurationError(
                component="sweep",
                message=f"Sweep maximum {self.maximum} is below start {self.start}",
            )

    def values(self) -> list[float]:
        """All values from start up to and including maximum."""
        count = int((self.maximum - self.start) / self.step + 1e-9) + 1
        return [self.start + i * self.step for i in range(count)]

    @classmethod
    def from_config(cls, config: Any, default: tuple) -> "SweepRange":
        """Accept a mapping with start/step/max, a single number or None."""
        if config is None:
            return cls(*default)
        if isinstance(config, dict):
            return cls(
                start=config.get("start", default[0]),
                step=config.get("step", default[1]),
                maximum=config.get("max", default[2]),
            )
        # A single value pins the dimension
        return cls(start=config, step=1, maximum=config)


@dataclass
class PriceSettings:
    """Dynamic price input and fixed tariff for comparison."""

    prices_csv: str = PRICES_CSV
    surcharge_per_kwh: float = SURCHARGE_PER_KWH
    fixed_price_per_kwh: float | None = FIXED_PRICE_PER_KWH
    timezone: str = DEFAULT_TIMEZONE

    def from_config(self, config: dict) -> "PriceSettings":
        price_config = _section(config, "prices")
        if price_config is not None:
            self.prices_csv = price_config.get("csv", PRICES_CSV)
            self.surcharge_per_kwh = _require_number(
                "prices",
                "surcharge_per_kwh",
                price_config.get("surcharge_per_kwh", SURCHARGE_PER_KWH),
            )
            self.fixed_price_per_kwh = price_config.get(
                "fixed_price_per_kwh", FIXED_PRICE_PER_KWH
            )
            if self.fixed_price_per_kwh is not None:
                _require_number("prices", "fixed_price_per_kwh", self.fixed_price_per_kwh)
            self.timezone = price_config.get("timezone", DEFAULT_TIMEZONE)
        return self

    def zone_info(self) -> ZoneInfo:
        """Resolve the configured timezone name."""
        try:
            return ZoneInfo(str(self.timezone))
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise SystemConfigurationError(
                component="prices", message=f"Unknown timezone '{self.timezone}'"
            ) from e


@dataclass
class ConsumptionSettings:
    """Consumption profiles to combine."""

    profiles_dir: str = PROFILES_DIR
    profiles: list[str] = field(default_factory=lambda: list(DEFAULT_PROFILES))
    holiday_country: str | None = HOLIDAY_COUNTRY

    def from_config(self, config: dict) -> "ConsumptionSettings":
        consumption_config = _section(config, "consumption")
        if consumption_config is not None:
            self.profiles_dir = consumption_config.get("profiles_dir", PROFILES_DIR)
            profiles = consumption_config.get("profiles", DEFAULT_PROFILES)
            if isinstance(profiles, str):
                profiles = [profiles]
            self.profiles = list(profiles or [])
            self.holiday_country = consumption_config.get("holiday_country", HOLIDAY_COUNTRY)
        if not self.profiles:
            raise SystemConfigurationError(
                component="consumption", message="At least one consumption profile is required"
            )
        return self


@dataclass
class StorageSettings:
    """Battery properties shared by all sweep points."""

    efficiency_percent: float = BATTERY_EFFICIENCY_PERCENT

    def __post_init__(self):
        _require_number("storage", "Efficiency", self.efficiency_percent)
        if not 0 < self.efficiency_percent <= 100:
            raise SystemConfigurationError(
                component="storage",
                message=f"Efficiency must be within (0, 100], got {self.efficiency_percent}",
            )

    def from_config(self, config: dict) -> "StorageSettings":
        storage_config = _section(config, "storage")
        if storage_config is not None:
            self.efficiency_percent = storage_config.get(
                "efficiency_percent", BATTERY_EFFICIENCY_PERCENT
            )
            self.__post_init__()
        return self


@dataclass
class SweepSettings:
    """Parameter grid evaluated by the sweep."""

    topology: Topology = DEFAULT_TOPOLOGY
    charge_power_w: SweepRange = field(default_factory=lambda: SweepRange(*CHARGE_POWER_W))
    storage_size_wh: SweepRange = field(default_factory=lambda: SweepRange(*STORAGE_SIZE_WH))
    hysteresis_percent: SweepRange = field(
        default_factory=lambda: SweepRange(*HYSTERESIS_PERCENT)
    )

    def __post_init__(self):
        self.topology = parse_topology(self.topology)

    def from_config(self, config: dict) -> "SweepSettings":
        sweep_config = _section(config, "sweep")
        if sweep_config is not None:
            self.topology = parse_topology(sweep_config.get("topology", DEFAULT_TOPOLOGY))
            self.charge_power_w = SweepRange.from_config(
                sweep_config.get("charge_power_w"), CHARGE_POWER_W
            )
            self.storage_size_wh = SweepRange.from_config(
                sweep_config.get("storage_size_wh"), STORAGE_SIZE_WH
            )
            self.hysteresis_percent = SweepRange.from_config(
                sweep_config.get("hysteresis_percent"), HYSTERESIS_PERCENT
            )
        return self
