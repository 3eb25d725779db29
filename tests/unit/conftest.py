"""Shared fixtures for unit tests."""

import os
import time
from datetime import datetime, timedelta, timezone

import pytest

# Central European rules as a POSIX TZ string, so no tz database is needed
CENTRAL_EUROPEAN_TZ = "CET-1CEST,M3.5.0,M10.5.0/3"


class FakeClock:
    """Controllable replacement for ``local_now``."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """A clock fixed at 23:00 UTC on 2026-10-18."""
    return FakeClock(datetime(2026, 10, 18, 23, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def central_european_time():
    """Switch the process local timezone to Central European Time for one test."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")

    previous = os.environ.get("TZ")
    os.environ["TZ"] = CENTRAL_EUROPEAN_TZ
    time.tzset()
    yield
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    time.tzset()
