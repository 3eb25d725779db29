"""Fan-out of tracker events to connected WebSocket clients and other presenters."""

import asyncio
import logging
from typing import Any, Dict

from ..domain.entities import MovementSample, PresentationKind
from ..domain.interfaces.presenter import Presenter

logger = logging.getLogger(__name__)

OutboundMessage = Dict[str, Any]


class BroadcastPresenter(Presenter):
    """
    Presenter that queues every event for each connected client.

    Each subscriber owns a bounded queue. When a slow client's queue is full
    the oldest message is dropped to make room.
    """

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscribers: list[asyncio.Queue] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.append(queue)
        logger.info(f"Client subscribed ({len(self._subscribers)} connected)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.info(f"Client unsubscribed ({len(self._subscribers)} connected)")

    async def present(self, event_kind: PresentationKind, payload: Dict[str, Any]) -> None:
        self.broadcast({"type": "presentation", "kind": event_kind.value, "payload": payload})

    async def publish_buffer(self, samples: list[MovementSample]) -> None:
        """Send the movement buffer to every client."""
        self.broadcast(
            {
                "type": "movement.buffer",
                "count": len(samples),
                "samples": [s.model_dump(mode="json") for s in samples],
            }
        )

    def broadcast(self, message: OutboundMessage) -> None:
        for queue in list(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                logger.warning("Client queue full, dropped oldest message")
            queue.put_nowait(message)


class FanOutPresenter(Presenter):
    """Forwards each event to several presenters; one failing does not stop the rest."""

    def __init__(self, *presenters: Presenter):
        self.presenters = presenters

    async def present(self, event_kind: PresentationKind, payload: Dict[str, Any]) -> None:
        for presenter in self.presenters:
            try:
                await presenter.present(event_kind, payload)
            except Exception as e:
                logger.error(f"{type(presenter).__name__} failed for {event_kind.value}: {e}", exc_info=True)
