"""Local in-memory implementation of the Storage Adapter."""

import copy
from typing import Any, Dict, Optional

from ..domain.interfaces.storage_adapter import StorageAdapter, resolve_key


class LocalStorageAdapter(StorageAdapter):
    """Local in-memory implementation of the Storage Adapter.

    Stores records in one dictionary per collection for testing and
    development purposes. Records are copied on the way in and out so
    callers cannot mutate stored state.
    """

    def __init__(self):
        """Initialize the local storage adapter with no collections."""
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    async def put(self, collection: str, value: Dict[str, Any], key: Optional[str] = None) -> None:
        """Insert or replace a record in the in-memory dictionary.

        Args:
            collection: The collection name.
            value: The record to store.
            key: Optional explicit key; defaults to the collection's key field.

        Raises:
            StorageError: If no key can be determined.
        """
        record_key = resolve_key(collection, value, key)
        self._collections.setdefault(collection, {})[record_key] = copy.deepcopy(value)

    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        """Retrieve a record by key.

        Returns:
            The record, or None if not found.
        """
        record = self._collections.get(collection, {}).get(str(key))
        return copy.deepcopy(record) if record is not None else None

    async def get_all(self, collection: str) -> list[Dict[str, Any]]:
        """Retrieve all records of a collection in key order."""
        records = self._collections.get(collection, {})
        return [copy.deepcopy(records[k]) for k in sorted(records)]

    async def delete(self, collection: str, key: str) -> None:
        """Delete a record; missing keys are ignored."""
        self._collections.get(collection, {}).pop(str(key), None)

    async def clear(self, collection: str) -> None:
        """Delete all records of a collection."""
        self._collections.pop(collection, None)

    def count(self, collection: str) -> int:
        """Number of records in a collection."""
        return len(self._collections.get(collection, {}))
