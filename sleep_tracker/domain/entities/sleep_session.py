"""Session entities for the sleep tracker application."""

from datetime import date, timedelta
from enum import Enum
from typing import Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator

from ..utils import parse_time_of_day, round_half_away, seconds_between

LIGHT_THRESHOLD = 0.5
RESTLESS_THRESHOLD = 2.0


class SessionStatus(str, Enum):
    """Session status enum."""
    ACTIVE = "active"
    COMPLETED = "completed"


class Intensity(str, Enum):
    """Movement intensity label derived from a sample magnitude."""
    CALM = "calm"
    LIGHT = "light"
    RESTLESS = "restless"


def classify_intensity(
    magnitude: float,
    light_threshold: float = LIGHT_THRESHOLD,
    restless_threshold: float = RESTLESS_THRESHOLD,
) -> Intensity:
    """Classify a magnitude; both thresholds are inclusive upward."""
    if magnitude >= restless_threshold:
        return Intensity.RESTLESS
    if magnitude >= light_threshold:
        return Intensity.LIGHT
    return Intensity.CALM


class MovementSample(BaseModel):
    """A single motion snapshot taken on the sampling interval."""

    timestamp: AwareDatetime
    magnitude: float = Field(ge=0)
    intensity: Intensity

    @property
    def key(self) -> str:
        """Storage key for the movement collection."""
        return self.timestamp.isoformat()


class SleepSession(BaseModel):
    """Session entity representing one tracked night."""

    id: int = Field(gt=0)
    calendar_date: date
    session_start_time: AwareDatetime
    planned_sleep_time: str
    planned_wake_time: str
    actual_wake_time: Optional[AwareDatetime] = None
    duration_hours: float = Field(default=0.0, ge=0)
    movement_samples: list[MovementSample] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 1760821200000,
                "calendar_date": "2026-10-18",
                "session_start_time": "2026-10-18T23:00:00+02:00",
                "planned_sleep_time": "22:30",
                "planned_wake_time": "07:00",
                "actual_wake_time": "2026-10-19T07:00:00+02:00",
                "duration_hours": 8.0,
                "movement_samples": [],
                "status": "completed",
            }
        }
    )

    @field_validator("planned_sleep_time", "planned_wake_time")
    @classmethod
    def _validate_time_of_day(cls, value: str) -> str:
        parse_time_of_day(value)
        return value

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def elapsed(self, now) -> timedelta:
        """Time since the session started, measured against ``now``."""
        return timedelta(seconds=seconds_between(self.session_start_time, now))

    def complete(self, actual_wake_time, movement_samples: list[MovementSample]) -> None:
        """Close the session at ``actual_wake_time`` with the given sample buffer.

        The duration is rounded to one decimal place and never negative.
        """
        hours = max(seconds_between(self.session_start_time, actual_wake_time), 0.0) / 3600
        self.actual_wake_time = actual_wake_time
        self.duration_hours = round_half_away(hours, 1)
        self.movement_samples = list(movement_samples)
        self.status = SessionStatus.COMPLETED
