"""Error taxonomy for the timer core."""


class TimerTrackerError(Exception):
    """Base class for all timer tracker errors."""


class ValidationError(TimerTrackerError, ValueError):
    """Invalid timer creation input. The store is left unchanged."""


class StorageCorruptError(TimerTrackerError):
    """Persisted timer data could not be read or parsed."""


class PersistenceWriteError(TimerTrackerError):
    """Writing the timer collection to the backend failed."""
