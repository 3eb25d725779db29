"""Motion source fed by readings pushed from outside the process."""

import asyncio
import logging

from ..domain.entities.events import AccelerationReading
from ..domain.interfaces.motion_source import MotionHandler, MotionSource

logger = logging.getLogger(__name__)


class PushMotionSource(MotionSource):
    """Motion source whose readings arrive through ``push``.

    Used by the WebSocket endpoint, where a phone streams its accelerometer,
    and by tests. Permission behaviour is configurable so denied access can
    be simulated.
    """

    def __init__(self, requires_permission: bool = False, grant_permission: bool = True):
        self.requires_permission = requires_permission
        self.grant_permission = grant_permission
        self.permission_requests = 0
        self.readings_received = 0
        self._handlers: list[MotionHandler] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        await asyncio.sleep(0)
        if not self.grant_permission:
            logger.warning("Motion permission denied")
        return self.grant_permission

    def subscribe(self, handler: MotionHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: MotionHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def push(self, reading: AccelerationReading) -> None:
        """Deliver a reading to every subscribed handler."""
        self.readings_received += 1
        if self.readings_received % 500 == 0:
            logger.debug(f"Received {self.readings_received} motion readings")

        for handler in list(self._handlers):
            try:
                handler(reading)
            except Exception as e:
                logger.error(f"Motion handler failed: {e}", exc_info=True)
