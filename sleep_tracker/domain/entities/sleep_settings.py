"""User settings entity for the sleep tracker application."""

from pydantic import BaseModel, ConfigDict, field_validator

from ..utils import parse_time_of_day

DEFAULT_SLEEP_TIME = "22:00"
DEFAULT_WAKE_TIME = "07:00"


class SleepSettings(BaseModel):
    """User-configurable targets and presentation toggles."""

    sleep_time: str = DEFAULT_SLEEP_TIME
    wake_time: str = DEFAULT_WAKE_TIME
    notifications_enabled: bool = True
    vibration_enabled: bool = True
    reminders_enabled: bool = True

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "sleep_time": "22:30",
                "wake_time": "06:45",
                "notifications_enabled": True,
                "vibration_enabled": False,
                "reminders_enabled": True,
            }
        },
    )

    @field_validator("sleep_time", "wake_time")
    @classmethod
    def _validate_time_of_day(cls, value: str) -> str:
        parse_time_of_day(value)
        return value
