"""Sleep tracking service owning the tracking session lifecycle."""

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional

import pydantic

from ..entities.events import PresentationKind
from ..entities.sleep_session import MovementSample, SessionStatus, SleepSession
from ..entities.statistics import SleepStatistics
from ..errors import (
    MotionPermissionError,
    SchedulingError,
    SessionStateError,
    StorageError,
)
from ..interfaces.presenter import Presenter
from ..interfaces.storage_adapter import SINGLETON_KEY, Collections, StorageAdapter
from ..utils import local_now, parse_time_of_day
from .alarm_scheduler import AlarmScheduler
from .motion_sampler import MotionSampler
from .statistics import calculate_statistics

logger = logging.getLogger(__name__)

RECOVERY_WINDOW = timedelta(hours=12)


class TrackerState(str, Enum):
    """Tracker state enum."""
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETING = "completing"


class SleepTrackingService:
    """
    Single authoritative state machine for sleep tracking.

    This service owns:
    - The in-memory Active session (at most one at a time)
    - The motion sampler and its buffer
    - The wake alarm and the session timeout
    - Persistence of the Active-session marker and of completed sessions

    Transitions (start, stop, alarm fire, recovery, dispose) are serialized
    by a lock. The state flips to COMPLETING before the first await of a
    completion, so concurrent stops persist the session only once.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        sampler: MotionSampler,
        alarm_scheduler: AlarmScheduler,
        presenter: Optional[Presenter] = None,
        clock: Callable[[], datetime] = local_now,
        recovery_window: timedelta = RECOVERY_WINDOW,
        timeout_scheduler: Optional[AlarmScheduler] = None,
    ):
        self.storage = storage
        self.sampler = sampler
        self.alarm_scheduler = alarm_scheduler
        self.timeout_scheduler = timeout_scheduler or AlarmScheduler(clock=clock, name="session timeout")
        self.presenter = presenter
        self._clock = clock
        self.recovery_window = recovery_window

        self.state = TrackerState.IDLE
        self.session: Optional[SleepSession] = None
        self.motion_degraded = False

        self._lock = asyncio.Lock()
        self._last_session_id = 0

    @classmethod
    async def create(cls, *args: Any, **kwargs: Any) -> "SleepTrackingService":
        """Build a service and run startup recovery."""
        service = cls(*args, **kwargs)
        await service.recover()
        return service

    @property
    def is_active(self) -> bool:
        return self.state == TrackerState.ACTIVE

    @property
    def movement_samples(self) -> list[MovementSample]:
        return self.sampler.samples

    # ===== Lifecycle =====

    async def start(self, sleep_time: str, wake_time: str) -> SleepSession:
        """
        Start tracking a new night.

        Args:
            sleep_time: Planned bedtime, HH:MM.
            wake_time: Planned wake time, HH:MM; the alarm is armed for its
                next occurrence.

        Returns:
            SleepSession: The new Active session.

        Raises:
            ValidationError: If either time is missing or malformed.
            SessionStateError: If a session is already being tracked.
            StorageError: If the Active-session marker could not be written.
        """
        parse_time_of_day(sleep_time)
        parse_time_of_day(wake_time)

        async with self._lock:
            if self.state != TrackerState.IDLE:
                raise SessionStateError(
                    f"Cannot start tracking: session {self.session.id if self.session else '?'} "
                    f"is {self.state.value}"
                )

            now = self._clock()
            session = SleepSession(
                id=self._next_session_id(now),
                calendar_date=now.date(),
                session_start_time=now,
                planned_sleep_time=sleep_time,
                planned_wake_time=wake_time,
                status=SessionStatus.ACTIVE,
            )

            # Leftover samples belong to an abandoned session
            await self.storage.clear(Collections.MOVEMENT)
            await self.storage.put(
                Collections.ACTIVE_SESSION, session.model_dump(mode="json"), key=SINGLETON_KEY
            )

            self.session = session
            self.state = TrackerState.ACTIVE
            self.sampler.reset()

            await self._start_sampler()
            self._arm_alarm(wake_time)
            self._arm_timeout(session)

            logger.info(
                f"Started sleep session {session.id} "
                f"(bedtime {sleep_time}, wake {wake_time}, motion "
                f"{'unavailable' if self.motion_degraded else 'available'})"
            )

        await self._present(
            PresentationKind.SESSION_STARTED,
            {
                "session_id": session.id,
                "planned_sleep_time": sleep_time,
                "planned_wake_time": wake_time,
                "alarm_at": self._alarm_target_iso(),
            },
        )
        return session

    async def stop(self) -> Optional[SleepSession]:
        """
        Stop tracking and persist the session.

        Calling stop() while idle is a no-op.

        Returns:
            The completed session, or None if nothing was being tracked.

        Raises:
            StorageError: If the completed session could not be persisted.
                The tracker is idle regardless.
        """
        return await self._complete(reason="stopped")

    async def on_alarm_fired(self) -> Optional[SleepSession]:
        """Entry point for the wake alarm."""
        if self.state != TrackerState.ACTIVE or self.session is None:
            logger.info("Alarm fired with no active session")
            return None

        await self._present(
            PresentationKind.ALARM_FIRED,
            {"session_id": self.session.id, "planned_wake_time": self.session.planned_wake_time},
        )

        try:
            return await self._complete(reason="alarm")
        except StorageError as e:
            logger.error(f"Session completed by alarm could not be saved, data may be lost: {e}")
            return None

    async def on_recovery_timeout(self) -> Optional[SleepSession]:
        """Complete a session still running when the recovery window runs out."""
        try:
            return await self._complete(reason="timeout")
        except StorageError as e:
            logger.error(f"Timed out session could not be saved, data may be lost: {e}")
            return None

    async def recover(self) -> Optional[SleepSession]:
        """
        Resume a session persisted before a restart.

        Sessions younger than the recovery window re-enter ACTIVE with their
        movement samples restored and the alarm rescheduled relative to now.
        Older or corrupt markers are discarded without saving a session.

        Returns:
            The recovered session, or None.
        """
        async with self._lock:
            if self.state != TrackerState.IDLE:
                return self.session

            try:
                record = await self.storage.get(Collections.ACTIVE_SESSION, SINGLETON_KEY)
            except StorageError as e:
                logger.error(f"Could not read active session marker: {e}")
                return None

            if record is None:
                return None

            try:
                session = SleepSession.model_validate(record)
            except pydantic.ValidationError as e:
                logger.warning(f"Discarding corrupt active session marker: {e}")
                await self._discard_stale()
                return None

            now = self._clock()
            elapsed = session.elapsed(now)
            if elapsed < timedelta(0) or elapsed >= self.recovery_window:
                logger.info(
                    f"Discarding stale session {session.id} "
                    f"(started {elapsed.total_seconds() / 3600:.1f}h ago)"
                )
                await self._discard_stale()
                return None

            samples = await self._load_movement()

            session.status = SessionStatus.ACTIVE
            self.session = session
            self.state = TrackerState.ACTIVE
            self._last_session_id = max(self._last_session_id, session.id)
            self.sampler.restore(samples)

            await self._start_sampler()
            self._arm_alarm(session.planned_wake_time)
            self._arm_timeout(session)

            logger.info(
                f"Recovered sleep session {session.id} "
                f"({elapsed.total_seconds() / 3600:.1f}h in, {len(samples)} samples)"
            )
            return session

    async def dispose(self) -> None:
        """
        Release the sampler and the alarm for process teardown.

        The Active-session marker is kept so a later create() can recover.
        """
        async with self._lock:
            await self.sampler.stop()
            self.alarm_scheduler.cancel()
            self.timeout_scheduler.cancel()
            if self.session is not None:
                logger.info(f"Disposed tracker with session {self.session.id} still active")
            self.session = None
            self.state = TrackerState.IDLE

    # ===== Queries =====

    async def list_sessions(self) -> list[SleepSession]:
        """Completed sessions in chronological order; corrupt records are skipped."""
        records = await self.storage.get_all(Collections.SESSIONS)
        sessions = []
        for record in records:
            try:
                sessions.append(SleepSession.model_validate(record))
            except pydantic.ValidationError as e:
                logger.warning(f"Skipping corrupt session record: {e}")
        return sorted(sessions, key=lambda s: (s.session_start_time.timestamp(), s.id))

    async def get_session(self, session_id: int) -> Optional[SleepSession]:
        record = await self.storage.get(Collections.SESSIONS, str(session_id))
        if record is None:
            return None
        return SleepSession.model_validate(record)

    async def get_statistics(self) -> Optional[SleepStatistics]:
        return calculate_statistics(await self.list_sessions())

    def get_tracking_state(self) -> Dict[str, Any]:
        """Get the current tracker state as a dictionary."""
        return {
            "state": self.state.value,
            "session_id": self.session.id if self.session else None,
            "session_start_time": self.session.session_start_time.isoformat() if self.session else None,
            "planned_wake_time": self.session.planned_wake_time if self.session else None,
            "alarm_at": self._alarm_target_iso(),
            "sample_count": len(self.sampler.samples),
            "motion_degraded": self.motion_degraded,
        }

    # ===== Internals =====

    async def _complete(self, reason: str) -> Optional[SleepSession]:
        async with self._lock:
            if self.state != TrackerState.ACTIVE or self.session is None:
                logger.info("No active session to complete")
                return None

            self.state = TrackerState.COMPLETING
            session = self.session
            error: Optional[StorageError] = None

            try:
                await self.sampler.stop()
                self.alarm_scheduler.cancel()
                self.timeout_scheduler.cancel()

                session.complete(self._clock(), self.sampler.samples)

                try:
                    await self.storage.put(Collections.SESSIONS, session.model_dump(mode="json"))
                    await self.storage.delete(Collections.ACTIVE_SESSION, SINGLETON_KEY)
                    await self.storage.clear(Collections.MOVEMENT)
                except StorageError as e:
                    logger.error(f"Failed to persist completed session {session.id}: {e}")
                    error = e
            finally:
                self.session = None
                self.state = TrackerState.IDLE
                self.motion_degraded = False
                self.sampler.reset()

            logger.info(
                f"Completed sleep session {session.id} ({reason}): "
                f"{session.duration_hours}h, {len(session.movement_samples)} samples"
            )

        if error is not None:
            raise error

        await self._present(
            PresentationKind.SESSION_COMPLETED,
            {
                "session_id": session.id,
                "reason": reason,
                "duration_hours": session.duration_hours,
                "actual_wake_time": session.actual_wake_time.isoformat(),
            },
        )
        return session

    async def _start_sampler(self) -> None:
        self.motion_degraded = False
        try:
            await self.sampler.start()
        except MotionPermissionError as e:
            logger.warning(f"Motion access unavailable, tracking without movement: {e}")
            self.motion_degraded = True

    def _arm_alarm(self, wake_time: str) -> None:
        try:
            self.alarm_scheduler.schedule(wake_time, self.on_alarm_fired)
        except SchedulingError as e:
            logger.warning(f"Wake alarm not armed, tracking continues without automatic wake: {e}")

    def _arm_timeout(self, session: SleepSession) -> None:
        try:
            self.timeout_scheduler.schedule_at(
                session.session_start_time + self.recovery_window, self.on_recovery_timeout
            )
        except SchedulingError as e:
            logger.warning(f"Session timeout not armed: {e}")

    async def _discard_stale(self) -> None:
        try:
            await self.storage.delete(Collections.ACTIVE_SESSION, SINGLETON_KEY)
            await self.storage.clear(Collections.MOVEMENT)
        except StorageError as e:
            logger.error(f"Failed to clean up stale session: {e}")

    async def _load_movement(self) -> list[MovementSample]:
        try:
            records = await self.storage.get_all(Collections.MOVEMENT)
        except StorageError as e:
            logger.error(f"Could not restore movement samples: {e}")
            return []

        samples = []
        for record in records:
            try:
                samples.append(MovementSample.model_validate(record))
            except pydantic.ValidationError as e:
                logger.warning(f"Skipping corrupt movement sample: {e}")
        return samples

    def _next_session_id(self, now: datetime) -> int:
        candidate = int(now.timestamp() * 1000)
        if candidate <= self._last_session_id:
            candidate = self._last_session_id + 1
        self._last_session_id = candidate
        return candidate

    def _alarm_target_iso(self) -> Optional[str]:
        target = self.alarm_scheduler.target
        return target.isoformat() if target else None

    async def _present(self, kind: PresentationKind, payload: Dict[str, Any]) -> None:
        if self.presenter is None:
            return
        try:
            await self.presenter.present(kind, payload)
        except Exception as e:
            logger.error(f"Presenter failed for {kind.value}: {e}", exc_info=True)
