"""Aggregate statistics entity."""

from pydantic import BaseModel, Field


class SleepStatistics(BaseModel):
    """Aggregate metrics over completed sessions with a positive duration."""
    
    total_sessions: int = Field(ge=1)
    total_hours: float
    average_sleep: float
    weekly_average: float
    last_sleep: float
    longest_sleep: float
    shortest_sleep: float
