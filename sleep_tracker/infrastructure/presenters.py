"""Presenter implementations."""

import logging
from typing import Any, Dict

from ..domain.entities.events import PresentationEvent, PresentationKind
from ..domain.interfaces.presenter import Presenter
from ..domain.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


class LoggingPresenter(Presenter):
    """Presenter that logs each event and keeps a short history of them."""

    def __init__(self, max_event_history: int = 50):
        self.max_event_history = max_event_history
        self.last_events: list[PresentationEvent] = []

    async def present(self, event_kind: PresentationKind, payload: Dict[str, Any]) -> None:
        logger.info(f"🔔 {event_kind.value}: {payload}")
        self.last_events.append(PresentationEvent(kind=event_kind, payload=dict(payload)))
        if len(self.last_events) > self.max_event_history:
            self.last_events = self.last_events[-self.max_event_history:]

    def events_of(self, event_kind: PresentationKind) -> list[PresentationEvent]:
        return [e for e in self.last_events if e.kind == event_kind]


class SettingsAwarePresenter(Presenter):
    """
    Applies the user's notification and vibration preferences.

    Payloads are annotated with ``notify`` and ``vibrate`` flags for the
    wrapped presenter. When both are disabled the event is dropped.
    """

    def __init__(self, inner: Presenter, settings_service: SettingsService):
        self.inner = inner
        self.settings_service = settings_service

    async def present(self, event_kind: PresentationKind, payload: Dict[str, Any]) -> None:
        settings = self.settings_service.current
        if not (settings.notifications_enabled or settings.vibration_enabled):
            logger.debug(f"Dropping {event_kind.value}: notifications and vibration disabled")
            return

        await self.inner.present(
            event_kind,
            {
                **payload,
                "notify": settings.notifications_enabled,
                "vibrate": settings.vibration_enabled,
            },
        )
