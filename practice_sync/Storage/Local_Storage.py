# Local_Storage.py
# Description: Key-value string storage used by the sync queue and the local collections
#
# Imports
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from practice_sync import Constants
#
#######################################################################################################################
#
# Functions:

class StorageError(Exception):
    """Raised when the underlying storage cannot be read or written."""
    pass


class KeyValueStore(ABC):
    """Minimal get/set-string contract the sync core relies on."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Dict-backed store. Nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class JsonFileStore(KeyValueStore):
    """
    Persists all slots into a single JSON object file.

    Writes go to a temp file in the same directory and are moved into place,
    so a crash mid-write leaves the previous contents intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Storage file {self.path} is corrupt ({e}); treating it as empty.")
            return {}
        except OSError as e:
            raise StorageError(f"Failed to read storage file {self.path}: {e}") from e
        if not isinstance(data, dict):
            logger.error(f"Storage file {self.path} does not hold a JSON object; treating it as empty.")
            return {}
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".storage_", suffix=".tmp", dir=str(self.path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write storage file {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read_all().get(key)
        return value if value is None or isinstance(value, str) else json.dumps(value)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)


class LocalDataStore:
    """Loads and saves the client and session collections owned by the application."""

    def __init__(self, store: KeyValueStore,
                 clients_key: str = Constants.STORAGE_KEY_CLIENTS,
                 sessions_key: str = Constants.STORAGE_KEY_SESSIONS):
        self.store = store
        self.clients_key = clients_key
        self.sessions_key = sessions_key

    def _load_list(self, key: str) -> List[Dict[str, Any]]:
        try:
            raw = self.store.get(key)
            if not raw:
                return []
            items = json.loads(raw)
        except (StorageError, json.JSONDecodeError) as e:
            logger.error(f"LocalDataStore: failed to load '{key}': {e}")
            return []
        if not isinstance(items, list):
            logger.error(f"LocalDataStore: '{key}' does not hold a list; ignoring it.")
            return []
        return [item for item in items if isinstance(item, dict)]

    def load(self) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        return self._load_list(self.clients_key), self._load_list(self.sessions_key)

    def save(self, clients: List[Dict[str, Any]], sessions: List[Dict[str, Any]]) -> bool:
        try:
            self.store.set(self.clients_key, json.dumps(clients, ensure_ascii=False))
            self.store.set(self.sessions_key, json.dumps(sessions, ensure_ascii=False))
            return True
        except (StorageError, TypeError, ValueError) as e:
            logger.error(f"LocalDataStore: failed to save collections: {e}")
            return False

#
# End of Local_Storage.py
#######################################################################################################################
