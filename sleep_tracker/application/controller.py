"""Sleep Tracker Controller for handling business logic and coordination."""

import logging
from datetime import date, timedelta
from typing import Any, Dict, Optional

from fastapi import WebSocket

from ..domain.entities import SleepSession, SleepSettings
from ..domain.errors import StorageError
from ..domain.interfaces.storage_adapter import StorageAdapter
from ..domain.services import (
    AlarmScheduler,
    BedtimeReminder,
    MotionSampler,
    SettingsService,
    SleepTrackingService,
)
from ..domain.services.statistics import (
    intensity_breakdown,
    is_in_sleep_window,
    planned_duration_hours,
    sessions_on_date,
    sleep_quality_score,
)
from ..domain.utils import local_now
from ..infrastructure import (
    DynamoDBStorageAdapter,
    LocalStorageAdapter,
    LoggingPresenter,
    PushMotionSource,
    SettingsAwarePresenter,
)
from .broadcaster import BroadcastPresenter, FanOutPresenter
from .config import Settings
from .websocket_handler import WebSocketHandler

logger = logging.getLogger(__name__)


class SleepTrackerController:
    """
    Controller for coordinating sleep tracker operations.

    This controller is injected with the tracking service and its
    collaborators and handles the business logic for each endpoint,
    keeping the API layer thin.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        tracker: SleepTrackingService,
        settings_service: SettingsService,
        reminder: BedtimeReminder,
        broadcaster: BroadcastPresenter,
        motion_source: PushMotionSource,
    ):
        """
        Initialize the controller with injected dependencies.

        Args:
            storage: Storage adapter shared by every service
            tracker: The session state machine
            settings_service: Holder of the user's preferences
            reminder: Daily bedtime reminder
            broadcaster: Presenter feeding WebSocket clients
            motion_source: Source fed by WebSocket clients
        """
        self.storage = storage
        self.tracker = tracker
        self.settings_service = settings_service
        self.reminder = reminder
        self.broadcaster = broadcaster
        self.motion_source = motion_source

        logger.info("SleepTrackerController initialized")

    # ===== Lifecycle =====

    async def startup(self) -> None:
        """Load settings, arm the bedtime reminder and recover any session."""
        settings = await self.settings_service.load()
        self.reminder.refresh(settings)
        self.settings_service.add_listener(self.reminder.refresh)

        session = await self.tracker.recover()
        if session is not None:
            logger.info(f"Resumed session {session.id} on startup")

    async def shutdown(self) -> None:
        self.reminder.cancel()
        await self.tracker.dispose()

    # ===== Sessions =====

    async def start_session(
        self,
        sleep_time: Optional[str] = None,
        wake_time: Optional[str] = None,
    ) -> SleepSession:
        """
        Start tracking, defaulting times to the stored settings.

        Times that differ from the stored settings are saved as the new
        defaults once the session has started. Failing to save them is
        logged and does not affect the running session.

        Raises:
            ValidationError: If either time is malformed.
            SessionStateError: If a session is already active.
        """
        current = self.settings_service.current
        sleep_time = sleep_time or current.sleep_time
        wake_time = wake_time or current.wake_time

        session = await self.tracker.start(sleep_time, wake_time)

        changes = {}
        if sleep_time != current.sleep_time:
            changes["sleep_time"] = sleep_time
        if wake_time != current.wake_time:
            changes["wake_time"] = wake_time
        if changes:
            try:
                await self.settings_service.update(**changes)
            except StorageError as e:
                logger.error(f"Session {session.id} started but its times were not saved as defaults: {e}")

        return session

    async def stop_session(self) -> Optional[SleepSession]:
        return await self.tracker.stop()

    def get_active_session(self) -> Dict[str, Any]:
        state = self.tracker.get_tracking_state()
        session = self.tracker.session
        state["session"] = session.model_dump(mode="json", exclude={"movement_samples"}) if session else None
        if session is not None:
            state["elapsed_hours"] = round(session.elapsed(local_now()) / timedelta(hours=1), 2)
        return state

    async def list_sessions(self, day: Optional[date] = None) -> list[Dict[str, Any]]:
        sessions = await self.tracker.list_sessions()
        if day is not None:
            sessions = sessions_on_date(sessions, day)
        return [
            {
                **s.model_dump(mode="json", exclude={"movement_samples"}),
                "sample_count": len(s.movement_samples),
            }
            for s in reversed(sessions)
        ]

    async def get_session_detail(self, session_id: int) -> Optional[Dict[str, Any]]:
        """
        Get a completed session with its derived analysis.

        Returns:
            Dict with the session, quality score, intensity breakdown and
            planned duration, or None if no such session exists.
        """
        session = await self.tracker.get_session(session_id)
        if session is None:
            return None

        return {
            "session": session.model_dump(mode="json"),
            "quality_score": sleep_quality_score(session),
            "intensity_breakdown": intensity_breakdown(session.movement_samples),
            "planned_duration_hours": planned_duration_hours(
                session.planned_sleep_time, session.planned_wake_time
            ),
        }

    async def get_statistics(self) -> Optional[Dict[str, Any]]:
        statistics = await self.tracker.get_statistics()
        return statistics.model_dump() if statistics else None

    # ===== Settings =====

    def get_settings(self) -> Dict[str, Any]:
        settings = self.settings_service.current
        return {
            **settings.model_dump(),
            "planned_duration_hours": planned_duration_hours(settings.sleep_time, settings.wake_time),
            "in_sleep_window": is_in_sleep_window(settings.sleep_time, settings.wake_time, local_now()),
            "next_reminder": self.reminder.next_reminder.isoformat() if self.reminder.next_reminder else None,
        }

    async def update_settings(self, changes: Dict[str, Any]) -> SleepSettings:
        return await self.settings_service.update(**changes)

    # ===== Streaming =====

    async def handle_websocket_connection(self, websocket: WebSocket) -> None:
        logger.info(f"Handling new WebSocket connection from {websocket.client}")
        handler = WebSocketHandler(broadcaster=self.broadcaster, motion_source=self.motion_source)
        await handler.handle_websocket(websocket)

    def get_health_status(self) -> dict:
        """
        Get application health status.

        Returns:
            Dict containing health status information
        """
        return {
            "status": "healthy",
            "tracker_state": self.tracker.state.value,
            "motion_degraded": self.tracker.motion_degraded,
            "clients": self.broadcaster.subscriber_count,
            "providers": {
                "storage": type(self.storage).__name__,
                "motion_source": type(self.motion_source).__name__,
            },
        }


def create_storage(config: Settings) -> StorageAdapter:
    if config.storage_backend == "dynamodb":
        logger.info(f"Using DynamoDB table {config.dynamodb_table_name} in {config.aws_region}")
        return DynamoDBStorageAdapter(table_name=config.dynamodb_table_name, region_name=config.aws_region)
    return LocalStorageAdapter()


def create_controller(config: Settings, storage: Optional[StorageAdapter] = None) -> SleepTrackerController:
    """
    Wire the services for a configuration.

    Args:
        config: Application settings
        storage: Optional storage override (defaults to the configured backend)

    Returns:
        SleepTrackerController: A controller ready for ``startup()``.
    """
    storage = storage or create_storage(config)
    motion_source = PushMotionSource()
    broadcaster = BroadcastPresenter()
    settings_service = SettingsService(storage)

    presenter = SettingsAwarePresenter(FanOutPresenter(LoggingPresenter(), broadcaster), settings_service)
    horizon = timedelta(hours=config.alarm_max_horizon_hours)

    sampler = MotionSampler(
        motion_source=motion_source,
        storage=storage,
        sample_interval_s=config.sample_interval_s,
        publish_interval_s=config.publish_interval_s,
        light_threshold=config.light_threshold,
        restless_threshold=config.restless_threshold,
        max_samples=config.max_samples,
        on_publish=broadcaster.publish_buffer,
    )
    tracker = SleepTrackingService(
        storage=storage,
        sampler=sampler,
        alarm_scheduler=AlarmScheduler(max_horizon=horizon, name="wake alarm"),
        presenter=presenter,
        recovery_window=timedelta(hours=config.recovery_window_hours),
    )
    reminder = BedtimeReminder(
        # Re-arming across a DST fall-back is 25 hours ahead
        scheduler=AlarmScheduler(max_horizon=horizon + timedelta(hours=1), name="bedtime reminder"),
        presenter=presenter,
        lead_minutes=config.reminder_lead_minutes,
    )

    return SleepTrackerController(
        storage=storage,
        tracker=tracker,
        settings_service=settings_service,
        reminder=reminder,
        broadcaster=broadcaster,
        motion_source=motion_source,
    )
