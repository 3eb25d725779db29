"""Presenter protocol."""

from typing import Any, Dict, Protocol, runtime_checkable

from ..entities.events import PresentationKind


@runtime_checkable
class Presenter(Protocol):
    """Protocol for notification/vibration presenters.
    
    Presenters are fire-and-forget: callers log and ignore their failures.
    """
    
    async def present(self, event_kind: PresentationKind, payload: Dict[str, Any]) -> None:
        """Present a lifecycle event.
        
        Args:
            event_kind: The lifecycle point being presented.
            payload: Event details (session id, times, durations).
        """
        ...
