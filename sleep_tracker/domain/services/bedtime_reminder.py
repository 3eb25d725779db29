"""Daily bedtime reminder."""

import logging
from datetime import datetime
from typing import Optional

from ..entities.events import PresentationKind
from ..entities.sleep_settings import SleepSettings
from ..errors import SchedulingError
from ..interfaces.presenter import Presenter
from ..utils import shift_time_of_day
from .alarm_scheduler import AlarmScheduler

logger = logging.getLogger(__name__)

REMINDER_LEAD_MINUTES = 30


class BedtimeReminder:
    """Presents a reminder a fixed lead time before bedtime, every day.

    The reminder is only armed while both reminders and notifications are
    enabled. After firing it re-arms for the following day.
    """

    def __init__(
        self,
        scheduler: AlarmScheduler,
        presenter: Presenter,
        lead_minutes: int = REMINDER_LEAD_MINUTES,
    ):
        self.scheduler = scheduler
        self.presenter = presenter
        self.lead_minutes = lead_minutes
        self._settings: Optional[SleepSettings] = None
        self._armed_for: Optional[datetime] = None

    @property
    def next_reminder(self) -> Optional[datetime]:
        return self.scheduler.target

    def refresh(self, settings: SleepSettings, after: Optional[datetime] = None) -> Optional[datetime]:
        """Re-arm or cancel the reminder for the given settings.

        Returns:
            The next reminder time, or None if the reminder is disabled.
        """
        self._settings = settings

        if not (settings.reminders_enabled and settings.notifications_enabled):
            self.scheduler.cancel()
            self._armed_for = None
            logger.info("Bedtime reminder disabled")
            return None

        reminder_time = shift_time_of_day(settings.sleep_time, -self.lead_minutes)
        try:
            self._armed_for = self.scheduler.schedule(reminder_time, self._on_fire, after=after)
        except SchedulingError as e:
            logger.warning(f"Bedtime reminder not scheduled: {e}")
            self._armed_for = None
        return self._armed_for

    def cancel(self) -> None:
        self.scheduler.cancel()
        self._armed_for = None

    async def _on_fire(self) -> None:
        settings = self._settings
        fired_for = self._armed_for
        if settings is None:
            return

        try:
            await self.presenter.present(
                PresentationKind.BEDTIME_REMINDER,
                {"bedtime": settings.sleep_time, "lead_minutes": self.lead_minutes},
            )
        except Exception as e:
            logger.error(f"Bedtime reminder presentation failed: {e}", exc_info=True)

        # Next occurrence strictly after this one, i.e. tomorrow
        self.refresh(settings, after=fired_for)
