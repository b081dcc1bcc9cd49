"""Collect hourly traces of a run and export them as a semicolon CSV for plotting."""

import logging
from pathlib import Path

import pandas as pd

from .models import HourlyTrace

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "Time",
    "ConsumptionWh",
    "Current Price",
    "Paid Price",
    "Fixed Price",
    "Blocked",
    "Charge Limit",
    "Discharge Limit",
    "State of Charge",
    "Required Charge",
]


def format_trace_row(trace: HourlyTrace) -> list[str]:
    """Render one trace as CSV cells."""
    return [
        trace.timestamp.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
        f"{trace.consumption_wh:g}",
        f"{trace.price:.3f}",
        f"{trace.paid_price:.3f}",
        f"{trace.fixed_price:.3f}",
        "blocked" if trace.is_blocked else "unblocked",
        f"{trace.limit_for_charge:.3f}",
        f"{trace.limit_for_discharge:.3f}",
        f"{trace.state_of_charge_wh:.3f}",
        f"{trace.required_charge_wh:.3f}",
    ]


class TraceRecorder:
    """Hour callback for DispatchEngine.run that keeps every trace."""

    def __init__(self) -> None:
        self.traces: list[HourlyTrace] = []

    def __call__(self, trace: HourlyTrace) -> None:
        self.traces.append(trace)

    def __len__(self) -> int:
        return len(self.traces)

    def write_csv(self, path: str | Path) -> Path:
        """Write all recorded traces, replacing an existing file.

        Returns:
            The path written to
        """
        path = Path(path)
        df = pd.DataFrame([format_trace_row(t) for t in self.traces], columns=CSV_HEADER)
        df.to_csv(path, sep=";", index=False, lineterminator="\n", encoding="utf-8")

        logger.info(f"Wrote {len(self.traces)} hourly values to {path}")
        return path
