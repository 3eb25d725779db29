"""User settings lifecycle: load once, persist on every change."""

import inspect
import logging
from typing import Any, Callable

import pydantic

from ..entities.sleep_settings import SleepSettings
from ..errors import StorageError, ValidationError
from ..interfaces.storage_adapter import SINGLETON_KEY, Collections, StorageAdapter

logger = logging.getLogger(__name__)

SettingsListener = Callable[[SleepSettings], Any]


class SettingsService:
    """Holds the current SleepSettings and writes them through to storage."""

    def __init__(self, storage: StorageAdapter):
        self.storage = storage
        self._settings = SleepSettings()
        self._listeners: list[SettingsListener] = []

    @property
    def current(self) -> SleepSettings:
        return self._settings

    def add_listener(self, listener: SettingsListener) -> None:
        """Register a callback run with the new settings after each change."""
        self._listeners.append(listener)

    async def load(self) -> SleepSettings:
        """Load persisted settings, falling back to defaults.

        Missing, unreadable or corrupt records leave the defaults in place.
        """
        try:
            record = await self.storage.get(Collections.SETTINGS, SINGLETON_KEY)
        except StorageError as e:
            logger.error(f"Failed to load settings, using defaults: {e}")
            return self._settings

        if record is None:
            logger.info("No stored settings, using defaults")
            return self._settings

        try:
            self._settings = SleepSettings.model_validate(record)
        except pydantic.ValidationError as e:
            logger.warning(f"Ignoring corrupt settings record: {e}")

        return self._settings

    async def update(self, **changes: Any) -> SleepSettings:
        """Apply changes and persist them immediately.

        Args:
            **changes: Field names of SleepSettings mapped to new values.

        Returns:
            SleepSettings: The updated settings.

        Raises:
            ValidationError: If a key is unknown or a value is invalid.
            StorageError: If the settings could not be persisted.
        """
        unknown = set(changes) - set(SleepSettings.model_fields)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        try:
            updated = SleepSettings.model_validate({**self._settings.model_dump(), **changes})
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid settings: {e}") from e

        await self.storage.put(Collections.SETTINGS, updated.model_dump(mode="json"), key=SINGLETON_KEY)
        self._settings = updated
        logger.info(f"Settings updated: {', '.join(sorted(changes)) or 'no changes'}")

        for listener in self._listeners:
            try:
                result = listener(updated)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Settings listener failed: {e}", exc_info=True)

        return updated
