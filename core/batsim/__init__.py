"""Battery simulation against dynamic electricity prices (batsim) package."""

# Define public API - only include what users should directly access
__all__ = [
    "ConsumptionSettings",
    "ConsumptionTable",
    "DispatchEngine",
    "LoadShiftEstimator",
    "ParameterSweep",
    "PriceSettings",
    "PriceTable",
    "ReservationPlanner",
    "SimulationConfig",
    "Storage",
    "StorageSettings",
    "SweepSettings",
    "Topology",
    "TraceRecorder",
]

# Import settings used by other modules
from .settings import (  # noqa: I001
    ConsumptionSettings,
    PriceSettings,
    StorageSettings,
    SweepSettings,
)

from .models import SimulationConfig, Topology

# Input tables
from .price_table import PriceTable
from .consumption_table import ConsumptionTable

# Simulation
from .storage import Storage
from .reservation_planner import ReservationPlanner
from .dispatch_engine import DispatchEngine
from .parameter_sweep import ParameterSweep
from .load_shift import LoadShiftEstimator
from .trace_exporter import TraceRecorder
