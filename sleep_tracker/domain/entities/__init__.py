"""Domain entities for the sleep tracker application."""

from .events import AccelerationReading, PresentationEvent, PresentationKind
from .sleep_session import (
    LIGHT_THRESHOLD,
    RESTLESS_THRESHOLD,
    Intensity,
    MovementSample,
    SessionStatus,
    SleepSession,
    classify_intensity,
)
from .sleep_settings import DEFAULT_SLEEP_TIME, DEFAULT_WAKE_TIME, SleepSettings
from .statistics import SleepStatistics

__all__ = [
    # Session entities
    "SleepSession",
    "SessionStatus",
    "MovementSample",
    "Intensity",
    "classify_intensity",
    "LIGHT_THRESHOLD",
    "RESTLESS_THRESHOLD",
    # Settings entities
    "SleepSettings",
    "DEFAULT_SLEEP_TIME",
    "DEFAULT_WAKE_TIME",
    # Statistics entities
    "SleepStatistics",
    # Event entities
    "AccelerationReading",
    "PresentationKind",
    "PresentationEvent",
]
