"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Query, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..domain.errors import SessionStateError, StorageError, ValidationError
from .config import settings
from .controller import SleepTrackerController, create_controller

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


class StartSessionRequest(BaseModel):
    """Body of POST /sessions/start; omitted times default to the stored settings."""

    sleep_time: Optional[str] = None
    wake_time: Optional[str] = None


def create_app(controller: Optional[SleepTrackerController] = None) -> FastAPI:
    """Create the FastAPI app around a controller.

    Args:
        controller: Controller to serve; built from the environment settings if omitted.

    Returns:
        FastAPI: The configured application.
    """
    controller = controller or create_controller(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await controller.startup()
        logger.info(f"{settings.app_name} {settings.app_version} started")
        try:
            yield
        finally:
            await controller.shutdown()
            logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.controller = controller

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return controller.get_health_status()

    @app.get("/settings")
    async def get_settings():
        return controller.get_settings()

    @app.patch("/settings")
    async def update_settings(changes: Dict[str, Any] = Body(...)):
        """Update one or more user settings; changes are persisted immediately."""
        try:
            await controller.update_settings(changes)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except StorageError as e:
            logger.error(f"Error saving settings: {e}")
            raise HTTPException(status_code=500, detail="Settings could not be saved")
        return controller.get_settings()

    @app.post("/sessions/start", status_code=status.HTTP_201_CREATED)
    async def start_session(request: Optional[StartSessionRequest] = None):
        """Start tracking a night.

        Args:
            request: Optional planned bedtime and wake time (HH:MM).

        Returns:
            The new active session.
        """
        request = request or StartSessionRequest()
        try:
            session = await controller.start_session(request.sleep_time, request.wake_time)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except SessionStateError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except StorageError as e:
            logger.error(f"Error starting session: {e}")
            raise HTTPException(status_code=500, detail="Session could not be started")
        return {
            "session": session.model_dump(mode="json"),
            "motion_degraded": controller.tracker.motion_degraded,
        }

    @app.post("/sessions/stop")
    async def stop_session():
        """Stop tracking and save the session."""
        try:
            session = await controller.stop_session()
        except StorageError as e:
            logger.error(f"Error saving stopped session: {e}")
            raise HTTPException(
                status_code=500,
                detail="Tracking stopped but the session could not be saved; data may be lost",
            )
        return {"session": session.model_dump(mode="json") if session else None}

    @app.get("/sessions/active")
    async def get_active_session():
        return controller.get_active_session()

    @app.get("/sessions")
    async def list_sessions(day: Optional[date] = Query(None, alias="date", description="Only sessions begun on this date")):
        """Completed sessions, most recent first."""
        try:
            sessions = await controller.list_sessions(day)
        except StorageError as e:
            logger.error(f"Error listing sessions: {e}")
            raise HTTPException(status_code=500, detail="Internal server error")
        return {"sessions": sessions}

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: int):
        try:
            detail = await controller.get_session_detail(session_id)
        except StorageError as e:
            logger.error(f"Error loading session {session_id}: {e}")
            raise HTTPException(status_code=500, detail="Internal server error")
        if detail is None:
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        return detail

    @app.get("/statistics")
    async def get_statistics():
        try:
            return {"statistics": await controller.get_statistics()}
        except StorageError as e:
            logger.error(f"Error computing statistics: {e}")
            raise HTTPException(status_code=500, detail="Internal server error")

    @app.websocket("/ws/motion")
    async def motion_websocket(websocket: WebSocket):
        """
        WebSocket endpoint streaming device motion.

        Client -> server: ``{"x": .., "y": .., "z": ..}`` accelerometer readings.
        Server -> client: ``movement.buffer`` snapshots and ``presentation`` events.
        """
        await websocket.accept()
        await controller.handle_websocket_connection(websocket)

    return app


app = create_app()
