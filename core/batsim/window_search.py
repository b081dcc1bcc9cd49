"""Cheapest contiguous window search over one day of hourly prices."""

from collections.abc import Sequence

from .exceptions import SystemConfigurationError
from .models import PricePoint


def find_cheapest_window(points: Sequence[PricePoint], number_of_hours: int) -> list[PricePoint]:
    """Find the contiguous window with the lowest price sum.

    All len(points) - number_of_hours + 1 windows are evaluated; a day has at
    most 25 hours so no sliding sum is needed. Only a strictly cheaper window
    replaces the current best, so ties resolve to the earliest start.

    Args:
        points: Hourly prices of one day in chronological order
        number_of_hours: Window length

    Returns:
        The price points of the cheapest window

    Raises:
        SystemConfigurationError: If the window is empty or longer than the day
    """
    if number_of_hours < 1:
        raise SystemConfigurationError(
            component="window_search",
            message=f"Window length must be at least 1 hour, got {number_of_hours}",
        )
    if number_of_hours > len(points):
        raise SystemConfigurationError(
            component="window_search",
            message=f"Window of {number_of_hours} hours exceeds the day length "
            f"of {len(points)} hours",
        )

    best_start = 0
    best_sum: float | None = None
    for start in range(len(points) - number_of_hours + 1):
        window_sum = sum(p.price for p in points[start : start + number_of_hours])
        if best_sum is None or window_sum < best_sum:
            best_sum = window_sum
            best_start = start

    return list(points[best_start : best_start + number_of_hours])
