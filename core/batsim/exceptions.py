"""Custom exception classes for battery simulation components.

Lookup failures, configuration problems and broken internal invariants each get
their own type so callers never have to match on error strings.
"""


class BatsimException(Exception):
    """Base exception for all battery simulation components."""

    pass


class PriceDataUnavailableError(BatsimException, LookupError):
    """Raised when no price is available for the requested hour."""

    def __init__(self, timestamp=None, message=None):
        if message is None:
            if timestamp:
                message = f"Price for {timestamp.isoformat()} not available"
            else:
                message = "Price data is not available"
        super().__init__(message)
        self.timestamp = timestamp


class ConsumptionDataUnavailableError(BatsimException, LookupError):
    """Raised when no consumption record exists for the requested hour."""

    def __init__(self, timestamp=None, key=None, message=None):
        if message is None:
            if timestamp:
                message = f"Consumption for {timestamp.isoformat()} not found"
                if key:
                    message = f"{message} (profile key {key})"
            else:
                message = "Consumption data is not available"
        super().__init__(message)
        self.timestamp = timestamp
        self.key = key


class SystemConfigurationError(BatsimException):
    """Raised when there are configuration or setup issues."""

    def __init__(self, component=None, message=None):
        if message is None:
            if component:
                message = f"Configuration error in {component}"
            else:
                message = "System configuration error"
        super().__init__(message)
        self.component = component


class ConsistencyError(BatsimException):
    """Raised when an internally derived invariant breaks.

    This always signals a logic defect, never bad input.
    """

    def __init__(self, message, timestamp=None):
        if timestamp is not None:
            message = f"{message} at {timestamp.isoformat()}"
        super().__init__(message)
        self.timestamp = timestamp


class ReservationMissError(BatsimException, LookupError):
    """Raised when a reservation is requested outside the precomputed range."""

    def __init__(self, timestamp):
        super().__init__(f"Min charge not found for {timestamp.isoformat()}")
        self.timestamp = timestamp
