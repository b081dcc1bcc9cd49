"""
Storage - charge/discharge arithmetic of a single battery.

EFFICIENCY HANDLING:
Half of the round-trip loss is attributed to each direction. With a loss
factor f = (100 - efficiency_percent) / 200:
- Charging X Wh stores X * (1 - f); the rest is lost
- Delivering X Wh removes X * (1 + f) from storage

CAPACITY CLAMPING:
- Energy beyond the remaining headroom is dumped (curtailed)
- Load beyond the available charge becomes a deficit (bought from the grid)

MINIMUM CHARGE:
Every run starts from an empty battery, so the early low states of charge are
an artefact of the startup ramp. The minimum is only tracked once the charge
has reached half of the capacity for the first time.
"""

import logging

from .models import StorageProcessResult

logger = logging.getLogger(__name__)


class Storage:
    """Battery state and the charge/discharge arithmetic operating on it."""

    def __init__(self, size_wh: float, efficiency_percent: float) -> None:
        """Initialize an empty storage.

        Args:
            size_wh: Usable capacity in Wh
            efficiency_percent: Round-trip efficiency (0-100)
        """
        if size_wh <= 0:
            raise ValueError(f"Storage size must be positive, got {size_wh}")
        if not 0 < efficiency_percent <= 100:
            raise ValueError(f"Efficiency must be within (0, 100], got {efficiency_percent}")

        self.size_wh = size_wh
        self.efficiency_percent = efficiency_percent
        self._loss_factor = (100 - efficiency_percent) / 200

        self._current_charge = 0.0
        self._minimum_charge: float | None = None
        self._maximum_charge = 0.0
        self._track_minimum = False
        self._consumption_limit: float | None = None

    def reset(self) -> None:
        """Reset all mutable state (charge back to 0)."""
        self._current_charge = 0.0
        self._minimum_charge = None
        self._maximum_charge = 0.0
        self._track_minimum = False

    def set_consumption_limit(self, consumption_limit_w: float) -> None:
        """Cap the power the battery can deliver per hour."""
        self._consumption_limit = consumption_limit_w

    def reset_consumption_limit(self) -> None:
        """Remove the delivery cap."""
        self._consumption_limit = None

    def process(self, feed_in_wh: float, consumption_wh: float) -> StorageProcessResult:
        """Process one hour of feed-in and load.

        The load is clamped to the consumption limit first. Then either the
        surplus is stored or the shortfall is drawn, never both.

        Args:
            feed_in_wh: Energy offered to the battery (0 if not charging)
            consumption_wh: Load to serve (0 if not discharging)

        Returns:
            StorageProcessResult describing the transaction
        """
        if self._consumption_limit is not None:
            consumption_wh = min(consumption_wh, self._consumption_limit)

        old_charge = self._current_charge

        if feed_in_wh > consumption_wh:
            charged, loss, dumped = self._add(feed_in_wh - consumption_wh)
            return StorageProcessResult(
                charged_wh=charged,
                discharged_wh=0.0,
                efficiency_loss_wh=loss,
                dumped_wh=dumped,
                deficit_wh=0.0,
                old_charge_wh=old_charge,
                new_charge_wh=self._current_charge,
            )

        if consumption_wh > feed_in_wh:
            discharged, loss, deficit = self._remove(consumption_wh - feed_in_wh)
            return StorageProcessResult(
                charged_wh=0.0,
                discharged_wh=discharged,
                efficiency_loss_wh=loss,
                dumped_wh=0.0,
                deficit_wh=deficit,
                old_charge_wh=old_charge,
                new_charge_wh=self._current_charge,
            )

        return StorageProcessResult(
            charged_wh=0.0,
            discharged_wh=0.0,
            efficiency_loss_wh=0.0,
            dumped_wh=0.0,
            deficit_wh=0.0,
            old_charge_wh=old_charge,
            new_charge_wh=old_charge,
        )

    def _add(self, amount_wh: float) -> tuple[float, float, float]:
        """Store amount_wh; returns (charged, efficiency_loss, dumped)."""
        old_charge = self._current_charge
        loss = amount_wh * self._loss_factor
        dumped = 0.0

        if old_charge + (amount_wh - loss) > self.size_wh:
            headroom = self.size_wh - old_charge
            loss = headroom * self._loss_factor
            dumped = amount_wh - headroom - loss
            self._current_charge = self.size_wh
        else:
            self._current_charge = old_charge + (amount_wh - loss)

        if self._current_charge >= self.size_wh / 2:
            self._track_minimum = True

        self._maximum_charge = max(self._maximum_charge, self._current_charge)

        return self._current_charge - old_charge, loss, dumped

    def _remove(self, amount_wh: float) -> tuple[float, float, float]:
        """Deliver amount_wh; returns (discharged, efficiency_loss, deficit)."""
        old_charge = self._current_charge
        loss = amount_wh * self._loss_factor
        deficit = 0.0

        if old_charge - (amount_wh + loss) < 0:
            loss = old_charge * self._loss_factor
            deficit = amount_wh - (old_charge - loss)
            self._current_charge = 0.0
        else:
            self._current_charge = old_charge - (amount_wh + loss)

        if self._track_minimum:
            current = max(self._current_charge, 0.0)
            if self._minimum_charge is None or current < self._minimum_charge:
                self._minimum_charge = current

        return old_charge - self._current_charge, loss, deficit

    def get_state_of_charge(self) -> float:
        return self._current_charge

    def get_minimum_charge(self) -> float | None:
        """Lowest charge seen after the storage first reached half capacity.

        Returns:
            Minimum charge in Wh, or None if half capacity was never reached
            or nothing was drawn since
        """
        return self._minimum_charge

    def get_maximum_charge(self) -> float:
        return self._maximum_charge

    def is_empty(self) -> bool:
        return self._current_charge == 0
