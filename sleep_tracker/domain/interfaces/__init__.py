"""Domain interfaces for the sleep tracker application."""

from .motion_source import MotionHandler, MotionSource
from .presenter import Presenter
from .storage_adapter import SINGLETON_KEY, Collections, StorageAdapter, resolve_key

__all__ = [
    "Collections",
    "MotionHandler",
    "MotionSource",
    "Presenter",
    "SINGLETON_KEY",
    "StorageAdapter",
    "resolve_key",
]
