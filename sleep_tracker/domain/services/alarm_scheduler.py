"""One-shot wall-clock alarm scheduling on the asyncio event loop."""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from ..errors import SchedulingError, ValidationError
from ..utils import local_now, next_occurrence, seconds_between

logger = logging.getLogger(__name__)

AlarmCallback = Callable[[], Any]

MAX_HORIZON = timedelta(hours=24)


class AlarmScheduler:
    """
    Arms at most one timer at a time and invokes its callback exactly once.

    The timer is an asyncio task sleeping until the target. Scheduling a new
    alarm always cancels the pending one first, so a reschedule can never
    fire twice.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = local_now,
        max_horizon: timedelta = MAX_HORIZON,
        name: str = "alarm",
    ):
        self._clock = clock
        self.max_horizon = max_horizon
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._target: Optional[datetime] = None

    @property
    def is_armed(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def target(self) -> Optional[datetime]:
        return self._target if self.is_armed else None

    def schedule(
        self,
        time_of_day: str,
        on_fire: AlarmCallback,
        after: Optional[datetime] = None,
    ) -> datetime:
        """
        Arm the alarm for the next occurrence of a wall-clock time.

        Args:
            time_of_day: HH:MM in the clock's timezone.
            on_fire: Callback (plain or coroutine function) run once on fire.
            after: Reference instant; defaults to now.

        Returns:
            The concrete target timestamp.

        Raises:
            SchedulingError: If the time is malformed or the delay is out of bounds.
        """
        self.cancel()
        reference = after or self._clock()
        try:
            target = next_occurrence(time_of_day, reference)
        except ValidationError as e:
            raise SchedulingError(f"Cannot schedule {self.name}: {e}") from e

        return self.schedule_at(target, on_fire)

    def schedule_at(self, target: datetime, on_fire: AlarmCallback) -> datetime:
        """
        Arm the alarm for a concrete timestamp.

        Raises:
            SchedulingError: If ``target - now`` is not within (0, max_horizon].
        """
        self.cancel()
        delay = seconds_between(self._clock(), target)

        if delay <= 0 or delay > self.max_horizon.total_seconds():
            raise SchedulingError(
                f"Refusing to schedule {self.name} for {target.isoformat()}: "
                f"delay {delay / 3600:.2f}h is outside (0, {self.max_horizon.total_seconds() / 3600:.0f}h]"
            )

        self._target = target
        self._task = asyncio.create_task(self._run(delay, on_fire))

        logger.info(f"Scheduled {self.name} for {target.isoformat()} ({round(delay / 60)} minutes)")
        return target

    def cancel(self) -> None:
        """Disarm the pending timer, if any."""
        if self._task is None:
            return

        if not self._task.done():
            self._task.cancel()
            logger.info(f"Cancelled {self.name} for {self._target.isoformat() if self._target else '?'}")

        self._task = None
        self._target = None

    async def _run(self, delay: float, on_fire: AlarmCallback) -> None:
        await asyncio.sleep(delay)

        # Disarm before firing so the callback may cancel or reschedule freely
        self._task = None
        self._target = None
        logger.info(f"{self.name.capitalize()} fired")

        try:
            result = on_fire()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in {self.name} callback: {e}", exc_info=True)
