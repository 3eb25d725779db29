"""Storage Adapter interface."""

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..errors import StorageError


class Collections:
    """Names of the persisted collections."""
    
    SESSIONS = "sessions"
    MOVEMENT = "movement"
    SETTINGS = "settings"
    ACTIVE_SESSION = "activeSession"


# Singleton key used by the settings and active-session collections
SINGLETON_KEY = "current"

# Field that provides the key when a record is stored without an explicit key
KEY_FIELDS = {
    Collections.SESSIONS: "id",
    Collections.MOVEMENT: "timestamp",
}


def resolve_key(collection: str, value: Dict[str, Any], key: Optional[str] = None) -> str:
    """Determine the storage key for a record.
    
    Args:
        collection: The collection name.
        value: The JSON-serializable record.
        key: An explicit key, if the caller has one.
        
    Returns:
        str: The key under which the record is stored.
        
    Raises:
        StorageError: If no key is given and the collection has no key field.
    """
    if key is not None:
        return str(key)
    
    field = KEY_FIELDS.get(collection)
    if field is None or field not in value:
        raise StorageError(f"No key given for record in collection {collection}")
    
    return str(value[field])


@runtime_checkable
class StorageAdapter(Protocol):
    """Protocol defining the interface for key/value storage backends.
    
    This interface can be implemented by different storage backends
    (in-memory, DynamoDB, etc.). Records are JSON-serializable dicts grouped
    in named collections. Implementations raise StorageError on failure.
    """
    
    async def put(self, collection: str, value: Dict[str, Any], key: Optional[str] = None) -> None:
        """Insert or replace a record.
        
        Args:
            collection: The collection name.
            value: The record to store.
            key: Optional explicit key; defaults to the collection's key field.
        """
        ...
    
    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        """Retrieve a record, or None if it does not exist."""
        ...
    
    async def get_all(self, collection: str) -> list[Dict[str, Any]]:
        """Retrieve every record of a collection in key order."""
        ...
    
    async def delete(self, collection: str, key: str) -> None:
        """Delete a record; deleting a missing key is not an error."""
        ...
    
    async def clear(self, collection: str) -> None:
        """Delete every record of a collection."""
        ...
