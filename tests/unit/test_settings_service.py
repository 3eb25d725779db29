"""Tests for SettingsService."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from sleep_tracker.domain.entities import SleepSettings
from sleep_tracker.domain.errors import StorageError, ValidationError
from sleep_tracker.domain.interfaces import SINGLETON_KEY, Collections
from sleep_tracker.domain.services import SettingsService
from sleep_tracker.infrastructure import LocalStorageAdapter


@pytest.fixture
def storage():
    return LocalStorageAdapter()


@pytest.fixture
def service(storage):
    return SettingsService(storage)


@pytest.mark.asyncio
async def test_load_defaults_when_nothing_stored(service):
    settings = await service.load()
    assert settings == SleepSettings()


@pytest.mark.asyncio
async def test_load_persisted_settings(service, storage):
    await storage.put(
        Collections.SETTINGS,
        SleepSettings(sleep_time="23:15", vibration_enabled=False).model_dump(mode="json"),
        key=SINGLETON_KEY,
    )

    settings = await service.load()

    assert settings.sleep_time == "23:15"
    assert settings.vibration_enabled is False
    assert service.current == settings


@pytest.mark.asyncio
async def test_load_ignores_corrupt_record(service, storage):
    await storage.put(Collections.SETTINGS, {"sleep_time": "late"}, key=SINGLETON_KEY)

    settings = await service.load()

    assert settings == SleepSettings()


@pytest.mark.asyncio
async def test_load_falls_back_on_storage_error():
    storage = MagicMock()
    storage.get = AsyncMock(side_effect=StorageError("unavailable"))
    service = SettingsService(storage)

    settings = await service.load()

    assert settings == SleepSettings()


@pytest.mark.asyncio
async def test_update_persists_immediately(service, storage):
    updated = await service.update(sleep_time="23:00", reminders_enabled=False)

    stored = await storage.get(Collections.SETTINGS, SINGLETON_KEY)
    assert stored["sleep_time"] == "23:00"
    assert stored["reminders_enabled"] is False
    assert stored["wake_time"] == "07:00"
    assert updated == service.current


@pytest.mark.asyncio
async def test_update_unknown_key_rejected(service, storage):
    with pytest.raises(ValidationError):
        await service.update(snooze_minutes=10)

    assert await storage.get(Collections.SETTINGS, SINGLETON_KEY) is None


@pytest.mark.asyncio
async def test_update_invalid_value_rejected(service, storage):
    with pytest.raises(ValidationError):
        await service.update(wake_time="7:00")

    assert service.current.wake_time == "07:00"
    assert await storage.get(Collections.SETTINGS, SINGLETON_KEY) is None


@pytest.mark.asyncio
async def test_listeners_notified(service):
    seen = []
    async_listener = AsyncMock()
    service.add_listener(seen.append)
    service.add_listener(async_listener)

    updated = await service.update(notifications_enabled=False)

    assert seen == [updated]
    async_listener.assert_awaited_once_with(updated)


@pytest.mark.asyncio
async def test_listener_error_does_not_block_update(service, storage):
    service.add_listener(MagicMock(side_effect=RuntimeError("listener broke")))

    await service.update(vibration_enabled=False)

    stored = await storage.get(Collections.SETTINGS, SINGLETON_KEY)
    assert stored["vibration_enabled"] is False


@pytest.mark.asyncio
async def test_failed_save_keeps_previous_settings():
    storage = MagicMock()
    storage.put = AsyncMock(side_effect=StorageError("unavailable"))
    service = SettingsService(storage)
    listener = MagicMock()
    service.add_listener(listener)

    with pytest.raises(StorageError):
        await service.update(sleep_time="23:30")

    assert service.current == SleepSettings()
    listener.assert_not_called()
