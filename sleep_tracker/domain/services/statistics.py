"""Statistics derived from completed sleep sessions.

Every function here is pure: it reads sessions and never mutates them.
"""

from datetime import date, datetime
from typing import Iterable, Optional

from ..entities.sleep_session import Intensity, MovementSample, SleepSession
from ..entities.statistics import SleepStatistics
from ..utils import parse_time_of_day, round_half_away

WEEKLY_WINDOW = 7
TARGET_SLEEP_HOURS = 8.0
DEFAULT_QUALITY_SCORE = 85


def qualifying_sessions(sessions: Iterable[SleepSession]) -> list[SleepSession]:
    """Completed sessions with a positive duration, in chronological order."""
    completed = [s for s in sessions if not s.is_active and s.duration_hours > 0]
    return sorted(completed, key=lambda s: (s.session_start_time.timestamp(), s.id))


def calculate_statistics(sessions: Iterable[SleepSession]) -> Optional[SleepStatistics]:
    """Aggregate metrics over qualifying sessions.

    Args:
        sessions: Any sessions; active and zero-length ones are ignored.

    Returns:
        SleepStatistics, or None when there is no qualifying session.
    """
    qualifying = qualifying_sessions(sessions)
    if not qualifying:
        return None

    durations = [s.duration_hours for s in qualifying]
    total = sum(durations)
    last_week = durations[-WEEKLY_WINDOW:]

    return SleepStatistics(
        total_sessions=len(durations),
        total_hours=round_half_away(total, 2),
        average_sleep=round_half_away(total / len(durations), 2),
        weekly_average=round_half_away(sum(last_week) / len(last_week), 2),
        last_sleep=round_half_away(durations[-1], 2),
        longest_sleep=round_half_away(max(durations), 2),
        shortest_sleep=round_half_away(min(durations), 2),
    )


def intensity_breakdown(samples: Iterable[MovementSample]) -> dict[str, int]:
    """Count samples per intensity label."""
    counts = {intensity.value: 0 for intensity in Intensity}
    for sample in samples:
        counts[sample.intensity.value] += 1
    return counts


def sleep_quality_score(session: SleepSession) -> int:
    """Score a session from 0 to 100.

    The score is the mean of a duration score (relative to an 8 hour night),
    a movement score (lower mean magnitude is better) and a restfulness score
    (fewer restless samples is better). Sessions without samples get 85.
    """
    samples = session.movement_samples
    if not samples:
        return DEFAULT_QUALITY_SCORE

    mean_magnitude = sum(s.magnitude for s in samples) / len(samples)
    restless_fraction = sum(1 for s in samples if s.intensity == Intensity.RESTLESS) / len(samples)

    duration_score = min(session.duration_hours / TARGET_SLEEP_HOURS * 100, 100)
    movement_score = max(100 - mean_magnitude * 10, 0)
    restfulness_score = max(100 - restless_fraction * 100, 0)

    return int(round_half_away((duration_score + movement_score + restfulness_score) / 3, 0))


def planned_duration_hours(sleep_time: str, wake_time: str) -> float:
    """Planned hours between bedtime and wake time, crossing midnight if needed."""
    sleep = parse_time_of_day(sleep_time)
    wake = parse_time_of_day(wake_time)

    sleep_minutes = sleep.hour * 60 + sleep.minute
    wake_minutes = wake.hour * 60 + wake.minute
    if wake_minutes <= sleep_minutes:
        wake_minutes += 24 * 60

    return round_half_away((wake_minutes - sleep_minutes) / 60, 1)


def is_in_sleep_window(sleep_time: str, wake_time: str, now: datetime) -> bool:
    """Whether the wall-clock minute of ``now`` lies inside the planned window."""
    sleep = parse_time_of_day(sleep_time)
    wake = parse_time_of_day(wake_time)

    sleep_minutes = sleep.hour * 60 + sleep.minute
    wake_minutes = wake.hour * 60 + wake.minute
    current = now.hour * 60 + now.minute

    if sleep_minutes > wake_minutes:
        return current >= sleep_minutes or current <= wake_minutes
    return sleep_minutes <= current <= wake_minutes


def sessions_on_date(sessions: Iterable[SleepSession], day: date) -> list[SleepSession]:
    """Completed sessions that began on the given calendar date."""
    return [s for s in sessions if not s.is_active and s.calendar_date == day]
