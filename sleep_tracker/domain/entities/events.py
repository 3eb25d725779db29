"""Event entities for sleep tracking sessions."""

import math
from dataclasses import dataclass
from enum import Enum


@dataclass
class AccelerationReading:
    """Raw 3-axis acceleration delivered by the device motion source."""
    
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    
    @property
    def magnitude(self) -> float:
        """Euclidean norm of the three components."""
        return math.hypot(self.x or 0.0, self.y or 0.0, self.z or 0.0)


class PresentationKind(str, Enum):
    """Lifecycle points at which presenters are invoked."""
    
    SESSION_STARTED = "session_started"
    ALARM_FIRED = "alarm_fired"
    SESSION_COMPLETED = "session_completed"
    BEDTIME_REMINDER = "bedtime_reminder"


@dataclass
class PresentationEvent:
    """An event handed to presenters."""
    
    kind: PresentationKind
    payload: dict
