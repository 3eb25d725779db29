import asyncio
import json
import logging
import math

from starlette.websockets import WebSocket, WebSocketDisconnect

from ..domain.entities import AccelerationReading
from ..infrastructure.push_motion_source import PushMotionSource
from .broadcaster import BroadcastPresenter

logger = logging.getLogger(__name__)


class WebSocketHandler:

    def __init__(self, broadcaster: BroadcastPresenter, motion_source: PushMotionSource):
        self._broadcaster = broadcaster
        self._motion_source = motion_source

    async def handle_websocket(self, websocket: WebSocket) -> None:
        # Note: websocket.accept() is called by the API endpoint before this
        queue = self._broadcaster.subscribe()
        send_task = asyncio.create_task(self._send_loop(websocket, queue))
        receive_task = asyncio.create_task(self._receive_loop(websocket))
        done, pending = await asyncio.wait(
            {send_task, receive_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        try:
            for task in done:
                exc = task.exception()
                if exc:
                    raise exc
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {websocket.client}")
        except Exception as e:
            logger.error(f"WebSocket error: {e}", exc_info=True)
        finally:
            self._broadcaster.unsubscribe(queue)
            for t in (send_task, receive_task):
                if not t.done():
                    t.cancel()
            await asyncio.gather(send_task, receive_task, return_exceptions=True)

            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")
            logger.info(f"WebSocket connection closed: {websocket.client}")

    async def _send_loop(self, websocket: WebSocket, queue: asyncio.Queue) -> None:
        while True:
            message = await queue.get()
            await websocket.send_text(json.dumps(message))

    async def _receive_loop(self, websocket: WebSocket) -> None:
        """Receive accelerometer readings and push them into the motion source."""
        while True:
            data = await websocket.receive()

            if data.get("type") == "websocket.disconnect":
                logger.info("Client disconnected")
                break

            if data.get("type") == "websocket.receive" and data.get("text") is not None:
                try:
                    message = json.loads(data["text"])
                    reading = AccelerationReading(
                        x=float(message.get("x") or 0.0),
                        y=float(message.get("y") or 0.0),
                        z=float(message.get("z") or 0.0),
                    )
                    if not all(math.isfinite(v) for v in (reading.x, reading.y, reading.z)):
                        raise ValueError("Acceleration components must be finite numbers")
                except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
                    logger.warning(f"Ignoring invalid motion message: {e}")
                    await websocket.send_text(
                        json.dumps({"type": "error", "code": "INVALID_MESSAGE", "message": str(e)})
                    )
                    continue

                self._motion_source.push(reading)
