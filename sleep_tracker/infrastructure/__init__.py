"""Infrastructure layer components."""

from .dynamodb_storage_adapter import DynamoDBStorageAdapter
from .local_storage_adapter import LocalStorageAdapter
from .presenters import LoggingPresenter, SettingsAwarePresenter
from .push_motion_source import PushMotionSource

__all__ = [
    "DynamoDBStorageAdapter",
    "LocalStorageAdapter",
    "LoggingPresenter",
    "PushMotionSource",
    "SettingsAwarePresenter",
]
