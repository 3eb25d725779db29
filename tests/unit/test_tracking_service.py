"""Tests for SleepTrackingService, the session state machine."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from sleep_tracker.domain.entities import (
    AccelerationReading,
    Intensity,
    MovementSample,
    PresentationKind,
    SessionStatus,
    SleepSession,
)
from sleep_tracker.domain.errors import SessionStateError, StorageError, ValidationError
from sleep_tracker.domain.interfaces import SINGLETON_KEY, Collections
from sleep_tracker.domain.services import (
    AlarmScheduler,
    MotionSampler,
    SleepTrackingService,
    TrackerState,
)
from sleep_tracker.infrastructure import LocalStorageAdapter, LoggingPresenter, PushMotionSource


class FlakyStorage(LocalStorageAdapter):
    """Local storage whose writes to selected collections fail."""

    def __init__(self):
        super().__init__()
        self.failing: set[str] = set()

    async def put(self, collection, value, key=None):
        if collection in self.failing:
            raise StorageError(f"write to {collection} failed")
        await super().put(collection, value, key)


@pytest.fixture
def storage():
    return FlakyStorage()


@pytest.fixture
def source():
    return PushMotionSource()


@pytest.fixture
def presenter():
    return LoggingPresenter()


def build_tracker(storage, source, presenter, clock, **kwargs) -> SleepTrackingService:
    return SleepTrackingService(
        storage=storage,
        sampler=MotionSampler(motion_source=source, storage=storage, clock=clock),
        alarm_scheduler=AlarmScheduler(clock=clock, name="wake alarm"),
        timeout_scheduler=AlarmScheduler(clock=clock, name="session timeout"),
        presenter=presenter,
        clock=clock,
        **kwargs,
    )


@pytest.fixture
async def tracker(storage, source, presenter, clock):
    """Create a tracker on the fake clock, disposed after the test."""
    tracker = build_tracker(storage, source, presenter, clock)
    yield tracker
    await tracker.dispose()


async def store_marker(storage, clock, started_ago: timedelta, **overrides) -> SleepSession:
    start = clock.now - started_ago
    session = SleepSession(
        id=int(start.timestamp() * 1000),
        calendar_date=start.date(),
        session_start_time=start,
        planned_sleep_time="22:30",
        planned_wake_time="07:00",
        **overrides,
    )
    await storage.put(Collections.ACTIVE_SESSION, session.model_dump(mode="json"), key=SINGLETON_KEY)
    return session


async def store_samples(storage, clock, count: int) -> list[MovementSample]:
    samples = [
        MovementSample(
            timestamp=clock.now - timedelta(minutes=30 * (count - i)),
            magnitude=0.7,
            intensity=Intensity.LIGHT,
        )
        for i in range(count)
    ]
    for sample in samples:
        await storage.put(Collections.MOVEMENT, sample.model_dump(mode="json"), key=sample.key)
    return samples


class TestStartStop:

    @pytest.mark.asyncio
    async def test_start_then_stop_persists_one_session(self, tracker, storage):
        started = await tracker.start("22:30", "07:00")
        assert tracker.state == TrackerState.ACTIVE
        assert await storage.get(Collections.ACTIVE_SESSION, SINGLETON_KEY) is not None

        completed = await tracker.stop()

        records = await storage.get_all(Collections.SESSIONS)
        assert len(records) == 1
        assert completed.id == started.id
        assert completed.status == SessionStatus.COMPLETED
        assert completed.duration_hours == 0.0
        assert await storage.get(Collections.ACTIVE_SESSION, SINGLETON_KEY) is None
        assert tracker.state == TrackerState.IDLE
        assert tracker.session is None

    @pytest.mark.asyncio
    async def test_duration_reflects_elapsed_time(self, tracker, clock):
        await tracker.start("22:30", "07:00")
        clock.advance(hours=7, minutes=45)

        completed = await tracker.stop()

        assert completed.duration_hours == 7.8
        assert completed.actual_wake_time == clock.now

    @pytest.mark.asyncio
    async def test_start_records_plan_and_arms_alarm(self, tracker, clock):
        session = await tracker.start("22:30", "07:00")

        assert session.planned_sleep_time == "22:30"
        assert session.planned_wake_time == "07:00"
        assert session.session_start_time == clock.now
        assert session.calendar_date == clock.now.date()
        assert tracker.alarm_scheduler.target == datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)
        assert tracker.timeout_scheduler.target == clock.now + timedelta(hours=12)
        assert tracker.sampler.running

    @pytest.mark.asyncio
    async def test_stop_twice_persists_once(self, tracker, storage):
        await tracker.start("22:30", "07:00")

        assert await tracker.stop() is not None
        assert await tracker.stop() is None
        assert len(await storage.get_all(Collections.SESSIONS)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_stops_persist_once(self, tracker, storage):
        await tracker.start("22:30", "07:00")

        results = await asyncio.gather(tracker.stop(), tracker.stop())

        assert sum(r is not None for r in results) == 1
        assert len(await storage.get_all(Collections.SESSIONS)) == 1

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, tracker, storage):
        assert await tracker.stop() is None
        assert await storage.get_all(Collections.SESSIONS) == []

    @pytest.mark.asyncio
    async def test_start_while_active_fails_without_mutation(self, tracker, storage, clock):
        first = await tracker.start("22:30", "07:00")
        clock.advance(minutes=5)

        with pytest.raises(SessionStateError):
            await tracker.start("23:00", "08:00")

        assert tracker.session.id == first.id
        assert tracker.session.planned_wake_time == "07:00"
        marker = await storage.get(Collections.ACTIVE_SESSION, SINGLETON_KEY)
        assert marker["id"] == first.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sleep_time,wake_time", [("", "07:00"), ("22:30", "7:00"), ("22:30", None)])
    async def test_start_rejects_invalid_times(self, tracker, storage, sleep_time, wake_time):
        with pytest.raises(ValidationError):
            await tracker.start(sleep_time, wake_time)

        assert tracker.state == TrackerState.IDLE
        assert await storage.get(Collections.ACTIVE_SESSION, SINGLETON_KEY) is None

    @pytest.mark.asyncio
    async def test_session_ids_increase(self, tracker):
        first = await tracker.start("22:30", "07:00")
        await tracker.stop()
        second = await tracker.start("22:30", "07:00")

        assert second.id > first.id

    @pytest.mark.asyncio
    async def test_samples_saved_with_session(self, tracker, source, storage, clock):
        await tracker.start("22:30", "07:00")
        source.push(AccelerationReading(x=2.5))
        await tracker.sampler.take_sample()
        clock.advance(seconds=30)
        source.push(AccelerationReading(x=0.1))
        await tracker.sampler.take_sample()

        completed = await tracker.stop()

        assert [s.intensity for s in completed.movement_samples] == [Intensity.RESTLESS, Intensity.CALM]
        assert await storage.get_all(Collections.MOVEMENT) == []
        stored = SleepSession.model_validate((await storage.get_all(Collections.SESSIONS))[0])
        assert len(stored.movement_samples) == 2

    @pytest.mark.asyncio
    async def test_start_clears_leftover_movement(self, tracker, storage, clock):
        await store_samples(storage, clock, 3)

        await tracker.start("22:30", "07:00")

        assert await storage.get_all(Collections.MOVEMENT) == []

    @pytest.mark.asyncio
    async def test_stop_releases_timers(self, tracker):
        await tracker.start("22:30", "07:00")
        await tracker.stop()

        assert not tracker.alarm_scheduler.is_armed
        assert not tracker.timeout_scheduler.is_armed
        assert not tracker.sampler.running

    @pytest.mark.asyncio
    async def test_storage_error_on_stop_still_resets(self, tracker, storage):
        await tracker.start("22:30", "07:00")
        storage.failing.add(Collections.SESSIONS)

        with pytest.raises(StorageError):
            await tracker.stop()

        assert tracker.state == TrackerState.IDLE
        assert tracker.session is None
        assert not tracker.sampler.running
        assert not tracker.alarm_scheduler.is_armed

    @pytest.mark.asyncio
    async def test_marker_write_failure_leaves_idle(self, tracker, storage):
        storage.failing.add(Collections.ACTIVE_SESSION)

        with pytest.raises(StorageError):
            await tracker.start("22:30", "07:00")

        assert tracker.state == TrackerState.IDLE
        assert not tracker.alarm_scheduler.is_armed


class TestPresentation:

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, tracker, presenter):
        session = await tracker.start("22:30", "07:00")
        await tracker.stop()

        kinds = [e.kind for e in presenter.last_events]
        assert kinds == [PresentationKind.SESSION_STARTED, PresentationKind.SESSION_COMPLETED]
        assert presenter.last_events[0].payload["session_id"] == session.id
        assert presenter.last_events[1].payload["reason"] == "stopped"

    @pytest.mark.asyncio
    async def test_presenter_failure_is_contained(self, storage, source, clock):
        presenter = MagicMock()
        presenter.present = AsyncMock(side_effect=RuntimeError("notification service down"))
        tracker = build_tracker(storage, source, presenter, clock)

        await tracker.start("22:30", "07:00")
        completed = await tracker.stop()

        assert completed is not None
        assert presenter.present.await_count == 2


class TestAlarm:

    @pytest.mark.asyncio
    async def test_alarm_completes_session(self, tracker, storage, presenter, clock):
        clock.now = datetime(2026, 10, 19, 6, 59, 59, 950000, tzinfo=timezone.utc)
        await tracker.start("22:30", "07:00")

        await asyncio.sleep(0.2)

        assert tracker.state == TrackerState.IDLE
        assert len(await storage.get_all(Collections.SESSIONS)) == 1
        assert len(presenter.events_of(PresentationKind.ALARM_FIRED)) == 1
        completed = presenter.events_of(PresentationKind.SESSION_COMPLETED)
        assert completed[0].payload["reason"] == "alarm"

    @pytest.mark.asyncio
    async def test_alarm_after_stop_does_nothing(self, tracker, storage, presenter):
        await tracker.start("22:30", "07:00")
        await tracker.stop()

        assert await tracker.on_alarm_fired() is None
        assert presenter.events_of(PresentationKind.ALARM_FIRED) == []
        assert len(await storage.get_all(Collections.SESSIONS)) == 1

    @pytest.mark.asyncio
    async def test_alarm_storage_error_is_logged(self, tracker, storage):
        await tracker.start("22:30", "07:00")
        storage.failing.add(Collections.SESSIONS)

        assert await tracker.on_alarm_fired() is None
        assert tracker.state == TrackerState.IDLE

    @pytest.mark.asyncio
    async def test_session_times_out(self, storage, source, presenter, clock):
        tracker = build_tracker(storage, source, presenter, clock, recovery_window=timedelta(milliseconds=50))
        await tracker.start("22:30", "07:00")

        await asyncio.sleep(0.2)

        assert tracker.state == TrackerState.IDLE
        completed = presenter.events_of(PresentationKind.SESSION_COMPLETED)
        assert completed[0].payload["reason"] == "timeout"
        await tracker.dispose()


class TestRecovery:

    @pytest.mark.asyncio
    async def test_recent_session_is_resumed(self, tracker, storage, clock):
        marker = await store_marker(storage, clock, timedelta(hours=2))
        samples = await store_samples(storage, clock, 4)

        recovered = await tracker.recover()

        assert recovered.id == marker.id
        assert tracker.state == TrackerState.ACTIVE
        assert tracker.movement_samples == samples
        assert tracker.alarm_scheduler.target == datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)
        assert tracker.timeout_scheduler.target == marker.session_start_time + timedelta(hours=12)

    @pytest.mark.asyncio
    async def test_recovered_session_keeps_samples_on_stop(self, tracker, storage, clock):
        await store_marker(storage, clock, timedelta(hours=2))
        await store_samples(storage, clock, 4)
        await tracker.recover()
        await tracker.sampler.take_sample()

        completed = await tracker.stop()

        assert len(completed.movement_samples) == 5
        assert completed.duration_hours == 2.0

    @pytest.mark.asyncio
    async def test_stale_session_is_discarded(self, tracker, storage, clock):
        await store_marker(storage, clock, timedelta(hours=13))
        await store_samples(storage, clock, 2)

        assert await tracker.recover() is None

        assert tracker.state == TrackerState.IDLE
        assert await storage.get(Collections.ACTIVE_SESSION, SINGLETON_KEY) is None
        assert await storage.get_all(Collections.MOVEMENT) == []
        assert await storage.get_all(Collections.SESSIONS) == []

    @pytest.mark.asyncio
    async def test_session_from_the_future_is_discarded(self, tracker, storage, clock):
        await store_marker(storage, clock, timedelta(hours=-1))

        assert await tracker.recover() is None
        assert tracker.state == TrackerState.IDLE

    @pytest.mark.asyncio
    async def test_corrupt_marker_is_discarded(self, tracker, storage):
        await storage.put(Collections.ACTIVE_SESSION, {"id": "not-a-session"}, key=SINGLETON_KEY)

        assert await tracker.recover() is None

        assert tracker.state == TrackerState.IDLE
        assert await storage.get(Collections.ACTIVE_SESSION, SINGLETON_KEY) is None

    @pytest.mark.asyncio
    async def test_no_marker(self, tracker):
        assert await tracker.recover() is None
        assert tracker.state == TrackerState.IDLE

    @pytest.mark.asyncio
    async def test_create_recovers(self, storage, source, presenter, clock):
        marker = await store_marker(storage, clock, timedelta(hours=1))

        tracker = await SleepTrackingService.create(
            storage=storage,
            sampler=MotionSampler(motion_source=source, storage=storage, clock=clock),
            alarm_scheduler=AlarmScheduler(clock=clock),
            clock=clock,
        )

        assert tracker.session.id == marker.id
        await tracker.dispose()

    @pytest.mark.asyncio
    async def test_dispose_keeps_marker_for_next_process(self, tracker, storage, source, presenter, clock):
        session = await tracker.start("22:30", "07:00")

        await tracker.dispose()

        assert tracker.state == TrackerState.IDLE
        assert not tracker.alarm_scheduler.is_armed
        assert await storage.get(Collections.ACTIVE_SESSION, SINGLETON_KEY) is not None

        clock.advance(hours=1)
        successor = build_tracker(storage, source, presenter, clock)
        recovered = await successor.recover()
        assert recovered.id == session.id
        await successor.dispose()

    @pytest.mark.asyncio
    async def test_new_ids_follow_recovered_session(self, tracker, storage, clock):
        marker = await store_marker(storage, clock, timedelta(hours=1))
        await tracker.recover()
        await tracker.stop()

        # Clock moved backwards relative to the recovered id
        clock.now = marker.session_start_time - timedelta(minutes=1)
        session = await tracker.start("22:30", "07:00")

        assert session.id > marker.id


class TestPermission:

    @pytest.mark.asyncio
    async def test_denied_motion_degrades(self, storage, presenter, clock):
        source = PushMotionSource(requires_permission=True, grant_permission=False)
        tracker = build_tracker(storage, source, presenter, clock)

        session = await tracker.start("22:30", "07:00")

        assert tracker.state == TrackerState.ACTIVE
        assert tracker.motion_degraded
        assert not tracker.sampler.running

        completed = await tracker.stop()
        assert completed.id == session.id
        assert completed.movement_samples == []
        assert not tracker.motion_degraded


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_and_get_sessions(self, tracker, clock):
        first = await tracker.start("22:30", "07:00")
        clock.advance(hours=8)
        await tracker.stop()
        clock.advance(hours=16)
        await tracker.start("22:30", "07:00")
        clock.advance(hours=6)
        await tracker.stop()

        sessions = await tracker.list_sessions()

        assert [s.duration_hours for s in sessions] == [8.0, 6.0]
        assert (await tracker.get_session(first.id)).duration_hours == 8.0
        assert await tracker.get_session(12345) is None

    @pytest.mark.asyncio
    async def test_list_skips_corrupt_records(self, tracker, storage):
        await storage.put(Collections.SESSIONS, {"id": 7, "status": "broken"})
        assert await tracker.list_sessions() == []

    @pytest.mark.asyncio
    async def test_statistics(self, tracker, clock):
        assert await tracker.get_statistics() is None

        await tracker.start("22:30", "07:00")
        clock.advance(hours=7, minutes=30)
        await tracker.stop()

        stats = await tracker.get_statistics()
        assert stats.total_sessions == 1
        assert stats.average_sleep == 7.5

    @pytest.mark.asyncio
    async def test_tracking_state(self, tracker):
        assert tracker.get_tracking_state()["state"] == "idle"

        session = await tracker.start("22:30", "07:00")
        state = tracker.get_tracking_state()

        assert state["state"] == "active"
        assert state["session_id"] == session.id
        assert state["alarm_at"] == "2026-10-19T07:00:00+00:00"
        assert state["motion_degraded"] is False
