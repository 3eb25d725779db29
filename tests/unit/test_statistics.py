"""Tests for the statistics engine."""

from datetime import datetime, timedelta, timezone

import pytest

from sleep_tracker.domain.entities import Intensity, MovementSample, SessionStatus, SleepSession
from sleep_tracker.domain.services.statistics import (
    calculate_statistics,
    intensity_breakdown,
    is_in_sleep_window,
    planned_duration_hours,
    sessions_on_date,
    sleep_quality_score,
)

FIRST_NIGHT = datetime(2026, 10, 1, 23, 0, tzinfo=timezone.utc)


def make_session(night: int, hours: float, samples=None, status=SessionStatus.COMPLETED) -> SleepSession:
    """Create a session starting ``night`` days after the first night."""
    start = FIRST_NIGHT + timedelta(days=night)
    return SleepSession(
        id=night + 1,
        calendar_date=start.date(),
        session_start_time=start,
        planned_sleep_time="23:00",
        planned_wake_time="07:00",
        actual_wake_time=start + timedelta(hours=hours) if status == SessionStatus.COMPLETED else None,
        duration_hours=hours,
        movement_samples=samples or [],
        status=status,
    )


def make_sample(magnitude: float, intensity: Intensity) -> MovementSample:
    return MovementSample(timestamp=FIRST_NIGHT, magnitude=magnitude, intensity=intensity)


class TestCalculateStatistics:

    def test_three_sessions(self):
        stats = calculate_statistics([make_session(0, 6.0), make_session(1, 8.0), make_session(2, 7.5)])

        assert stats.total_sessions == 3
        assert stats.total_hours == 21.5
        assert stats.average_sleep == 7.17
        assert stats.weekly_average == 7.17
        assert stats.last_sleep == 7.5
        assert stats.longest_sleep == 8.0
        assert stats.shortest_sleep == 6.0

    def test_empty_is_none(self):
        assert calculate_statistics([]) is None

    def test_only_active_or_zero_sessions_is_none(self):
        sessions = [make_session(0, 0.0), make_session(1, 0.0, status=SessionStatus.ACTIVE)]
        assert calculate_statistics(sessions) is None

    def test_ignores_non_qualifying_sessions(self):
        sessions = [
            make_session(0, 7.0),
            make_session(1, 0.0),
            make_session(2, 0.0, status=SessionStatus.ACTIVE),
        ]
        stats = calculate_statistics(sessions)

        assert stats.total_sessions == 1
        assert stats.last_sleep == 7.0

    def test_last_sleep_is_chronological(self):
        """Input order does not matter; the latest start is the last sleep."""
        stats = calculate_statistics([make_session(2, 5.0), make_session(0, 9.0)])
        assert stats.last_sleep == 5.0

    def test_weekly_average_uses_last_seven(self):
        sessions = [make_session(0, 2.0), make_session(1, 2.0)]
        sessions += [make_session(n, 8.0) for n in range(2, 9)]

        stats = calculate_statistics(sessions)

        assert stats.total_sessions == 9
        assert stats.weekly_average == 8.0
        assert stats.average_sleep == round(60.0 / 9, 2)

    def test_does_not_mutate_input(self):
        sessions = [make_session(1, 8.0), make_session(0, 6.0)]
        calculate_statistics(sessions)
        assert [s.id for s in sessions] == [2, 1]


class TestQualityScore:

    def test_no_samples_defaults_to_85(self):
        assert sleep_quality_score(make_session(0, 3.0)) == 85

    def test_perfect_night(self):
        samples = [make_sample(0.0, Intensity.CALM)] * 4
        assert sleep_quality_score(make_session(0, 8.0, samples)) == 100

    def test_restless_short_night(self):
        samples = [make_sample(3.0, Intensity.RESTLESS), make_sample(0.0, Intensity.CALM)]
        # duration 50, movement 85, restfulness 50
        assert sleep_quality_score(make_session(0, 4.0, samples)) == 62

    def test_duration_score_capped(self):
        samples = [make_sample(0.0, Intensity.CALM)]
        assert sleep_quality_score(make_session(0, 11.0, samples)) == 100


def test_intensity_breakdown():
    samples = [
        make_sample(0.1, Intensity.CALM),
        make_sample(0.2, Intensity.CALM),
        make_sample(0.7, Intensity.LIGHT),
        make_sample(2.5, Intensity.RESTLESS),
    ]
    assert intensity_breakdown(samples) == {"calm": 2, "light": 1, "restless": 1}
    assert intensity_breakdown([]) == {"calm": 0, "light": 0, "restless": 0}


@pytest.mark.parametrize(
    "sleep,wake,expected",
    [
        ("22:00", "07:00", 9.0),
        ("22:30", "06:45", 8.3),
        ("01:00", "09:00", 8.0),
        ("07:00", "07:00", 24.0),
    ],
)
def test_planned_duration_hours(sleep, wake, expected):
    assert planned_duration_hours(sleep, wake) == expected


@pytest.mark.parametrize(
    "hour,minute,expected",
    [
        (23, 30, True),
        (2, 0, True),
        (7, 0, True),
        (7, 1, False),
        (12, 0, False),
        (22, 0, True),
    ],
)
def test_in_sleep_window_across_midnight(hour, minute, expected):
    now = datetime(2026, 10, 18, hour, minute, tzinfo=timezone.utc)
    assert is_in_sleep_window("22:00", "07:00", now) is expected


def test_in_sleep_window_same_day():
    now = datetime(2026, 10, 18, 14, 0, tzinfo=timezone.utc)
    assert is_in_sleep_window("13:00", "15:00", now)
    assert not is_in_sleep_window("15:30", "16:00", now)


def test_sessions_on_date():
    sessions = [make_session(0, 7.0), make_session(1, 6.0), make_session(1, 0.0, status=SessionStatus.ACTIVE)]

    on_second_night = sessions_on_date(sessions, (FIRST_NIGHT + timedelta(days=1)).date())

    assert [s.duration_hours for s in on_second_night] == [6.0]
