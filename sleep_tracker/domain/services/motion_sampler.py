"""Movement sampling for sleep tracking sessions."""

import asyncio
import inspect
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from ..entities.events import AccelerationReading
from ..entities.sleep_session import (
    LIGHT_THRESHOLD,
    RESTLESS_THRESHOLD,
    MovementSample,
    classify_intensity,
)
from ..errors import MotionPermissionError, StorageError
from ..interfaces.motion_source import MotionSource
from ..interfaces.storage_adapter import Collections, StorageAdapter
from ..utils import local_now, round_half_away

logger = logging.getLogger(__name__)

SAMPLE_INTERVAL_S = 30.0
PUBLISH_INTERVAL_S = 60.0
# 8 hours at one sample every 30 seconds
MAX_SAMPLES = 960

BufferObserver = Callable[[list[MovementSample]], Any]


class MotionSampler:
    """
    Reduces raw device-motion events to discrete movement samples.

    This sampler owns:
    - The current instantaneous magnitude (overwritten on every raw event)
    - The sample buffer (sliding window, oldest entries evicted first)
    - The sampling task, which snapshots the magnitude every interval
    - The publish task, which hands the buffer to an observer for display

    Every sample is persisted individually so a crash loses at most one.
    """

    def __init__(
        self,
        motion_source: MotionSource,
        storage: StorageAdapter,
        clock: Callable[[], datetime] = local_now,
        sample_interval_s: float = SAMPLE_INTERVAL_S,
        publish_interval_s: float = PUBLISH_INTERVAL_S,
        light_threshold: float = LIGHT_THRESHOLD,
        restless_threshold: float = RESTLESS_THRESHOLD,
        max_samples: int = MAX_SAMPLES,
        on_publish: Optional[BufferObserver] = None,
    ):
        self.motion_source = motion_source
        self.storage = storage
        self._clock = clock
        self.sample_interval_s = sample_interval_s
        self.publish_interval_s = publish_interval_s
        self.light_threshold = light_threshold
        self.restless_threshold = restless_threshold
        self.max_samples = max_samples
        self.on_publish = on_publish

        self.current_magnitude: float = 0.0
        self._buffer: list[MovementSample] = []

        self._running = False
        self._sample_task: Optional[asyncio.Task] = None
        self._publish_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def samples(self) -> list[MovementSample]:
        """A copy of the buffer, earliest first."""
        return list(self._buffer)

    async def start(self) -> None:
        """
        Subscribe to the motion source and start the sampling timers.

        Raises:
            MotionPermissionError: If the platform denies motion access. The
                sampler stays stopped; callers are expected to degrade.
        """
        if self._running:
            logger.warning("Motion sampler already running")
            return

        if self.motion_source.requires_permission:
            try:
                granted = await self.motion_source.request_permission()
            except Exception as e:
                raise MotionPermissionError(f"Motion permission request failed: {e}") from e
            if not granted:
                raise MotionPermissionError("Motion permission denied")

        self.motion_source.subscribe(self._handle_motion)
        self._running = True
        self._sample_task = asyncio.create_task(self._sampling_loop())
        self._publish_task = asyncio.create_task(self._publish_loop())

        logger.info(
            f"Motion sampler started (every {self.sample_interval_s}s, "
            f"{len(self._buffer)} samples buffered)"
        )

    async def stop(self) -> None:
        """Unsubscribe and release both timers. Safe to call when stopped."""
        if self._running:
            self.motion_source.unsubscribe(self._handle_motion)
        self._running = False

        tasks = [t for t in (self._sample_task, self._publish_task) if t is not None]
        self._sample_task = None
        self._publish_task = None

        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass

        if tasks:
            logger.info(f"Motion sampler stopped with {len(self._buffer)} samples")

    def reset(self) -> None:
        """Drop the buffer and the current magnitude."""
        self._buffer = []
        self.current_magnitude = 0.0

    def restore(self, samples: Iterable[MovementSample]) -> None:
        """Seed the buffer with previously persisted samples."""
        ordered = sorted(samples, key=lambda s: s.timestamp)
        self._buffer = ordered[-self.max_samples:]
        logger.info(f"Restored {len(self._buffer)} movement samples")

    def _handle_motion(self, reading: AccelerationReading) -> None:
        magnitude = reading.magnitude
        if not math.isfinite(magnitude):
            logger.warning(f"Ignoring non-finite motion reading: {reading}")
            return
        self.current_magnitude = magnitude

    async def take_sample(self) -> MovementSample:
        """
        Snapshot the current magnitude into a sample, buffer and persist it.

        Returns:
            MovementSample: The sample that was appended.
        """
        timestamp = self._clock()
        if self._buffer and timestamp <= self._buffer[-1].timestamp:
            timestamp = self._buffer[-1].timestamp + timedelta(milliseconds=1)

        magnitude = round_half_away(self.current_magnitude, 2)
        sample = MovementSample(
            timestamp=timestamp,
            magnitude=magnitude,
            intensity=classify_intensity(magnitude, self.light_threshold, self.restless_threshold),
        )

        self._buffer.append(sample)
        if len(self._buffer) > self.max_samples:
            self._buffer = self._buffer[-self.max_samples:]

        logger.debug(
            f"Movement sample: {sample.magnitude:.2f} ({sample.intensity.value}) "
            f"- Total samples: {len(self._buffer)}"
        )

        try:
            await self.storage.put(Collections.MOVEMENT, sample.model_dump(mode="json"), key=sample.key)
        except StorageError as e:
            logger.error(f"Failed to persist movement sample {sample.key}: {e}")

        return sample

    async def publish(self) -> None:
        """Hand a copy of the buffer to the observer, if any."""
        if self.on_publish is None:
            return

        try:
            result = self.on_publish(self.samples)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error publishing movement buffer: {e}", exc_info=True)

    async def _sampling_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.sample_interval_s)
            try:
                await self.take_sample()
            except Exception as e:
                logger.error(f"Error taking movement sample: {e}", exc_info=True)

    async def _publish_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.publish_interval_s)
            await self.publish()
