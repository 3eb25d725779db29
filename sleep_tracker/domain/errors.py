"""Error taxonomy for the sleep tracker core."""


class SleepTrackerError(Exception):
    """Base class for all sleep tracker errors."""


class ValidationError(SleepTrackerError, ValueError):
    """Raised when a time input or settings value is missing or malformed."""


class MotionPermissionError(SleepTrackerError, PermissionError):
    """Raised when access to the device motion source is denied."""


class StorageError(SleepTrackerError):
    """Raised when the storage adapter fails to read or write a record."""


class SchedulingError(SleepTrackerError):
    """Raised when an alarm delay falls outside the schedulable horizon."""


class SessionStateError(SleepTrackerError):
    """Raised when an operation is invalid for the current tracking state."""
