class TrackingError(Exception):
    """Base class for errors raised by the tracking engine."""


class InvalidTransition(TrackingError):
    """An operation is not legal for the current session status."""

    def __init__(self, operation: str, status: str):
        super().__init__(f"Cannot {operation} while session is {status}")
        self.operation = operation
        self.status = status


class ConfigurationError(TrackingError):
    """A session configuration was rejected before any state changed."""


class InputRejected(TrackingError):
    """A malformed or out-of-order event. Counted, never surfaced to callers."""


class PersistenceFailure(TrackingError):
    """A best-effort save or analytics call failed."""
