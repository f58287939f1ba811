from .Local_Storage import (
    StorageError, KeyValueStore, MemoryStore, JsonFileStore, LocalDataStore
)

__all__ = [
    "StorageError", "KeyValueStore", "MemoryStore", "JsonFileStore", "LocalDataStore",
]
