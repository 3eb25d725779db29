"""Domain services for the sleep tracker application."""

from .alarm_scheduler import AlarmScheduler
from .bedtime_reminder import BedtimeReminder
from .motion_sampler import MotionSampler
from .settings_service import SettingsService
from .tracking_service import SleepTrackingService, TrackerState

__all__ = [
    "AlarmScheduler",
    "BedtimeReminder",
    "MotionSampler",
    "SettingsService",
    "SleepTrackingService",
    "TrackerState",
]
