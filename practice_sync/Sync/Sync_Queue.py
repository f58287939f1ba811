# Sync_Queue.py
# Description: Durable offline queue of pending mutations plus the deleted-ID tombstone set
#
# Imports
import copy
import inspect
import json
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union
#
# Third-Party Imports
from loguru import logger
from pydantic import BaseModel, Field, ValidationError
#
# Local Imports
from practice_sync import Constants
from practice_sync.sheets_api.schemas import QueueEntry, action_name
from practice_sync.Storage.Local_Storage import KeyValueStore, MemoryStore, StorageError
from practice_sync.Utils.Time_Utils import utc_now_iso
#
#######################################################################################################################
#
# Functions:

DrainHandler = Callable[[QueueEntry], Union[Awaitable[bool], bool]]


class DrainResult(BaseModel):
    """Outcome of one drain pass: every entry of the pass lands in exactly one list."""
    successful: List[QueueEntry] = Field(default_factory=list)
    failed: List[QueueEntry] = Field(default_factory=list)


def _empty_tombstones() -> Dict[str, List[Any]]:
    return {kind: [] for kind in Constants.ALL_KINDS}


class SyncQueue:
    """
    Write-behind queue for mutations not yet confirmed by the remote store.

    At most one entry exists per ``data['id']``; a newer enqueue for the same id
    replaces the older entry. Entries without an id are never deduplicated.
    Both the queue and the tombstones are written to ``store`` after every change.
    """

    def __init__(self,
                 store: Optional[KeyValueStore] = None,
                 queue_key: str = Constants.STORAGE_KEY_QUEUE,
                 deleted_key: str = Constants.STORAGE_KEY_DELETED):
        self._store = store if store is not None else MemoryStore()
        self._queue_key = queue_key
        self._deleted_key = deleted_key
        self._queue: List[QueueEntry] = []
        self._deleted_ids: Dict[str, List[Any]] = _empty_tombstones()
        self._load()

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def is_empty(self) -> bool:
        return not self._queue

    # --- Mutations ---

    def enqueue(self, action: Any, data: Dict[str, Any]) -> QueueEntry:
        entry = QueueEntry(action=action_name(action), data=copy.deepcopy(dict(data)), timestamp=utc_now_iso())
        entity_id = entry.entity_id
        if entity_id is not None:
            self._queue = [item for item in self._queue if item.entity_id != entity_id]
        self._queue.append(entry)
        self._save()
        return entry

    def remove_by_id(self, entity_id: Any) -> None:
        self._queue = [item for item in self._queue if item.entity_id != entity_id]
        self._save()

    def discard(self, entry: QueueEntry) -> bool:
        """Removes exactly ``entry`` (as returned by enqueue). False if it is no longer queued."""
        remaining = [item for item in self._queue if item is not entry]
        if len(remaining) == len(self._queue):
            return False
        self._queue = remaining
        self._save()
        return True

    def remove_entries(self, entries: Iterable[QueueEntry]) -> None:
        ids_to_remove = {entry.entity_id for entry in entries}
        self._queue = [item for item in self._queue if item.entity_id not in ids_to_remove]
        self._save()

    def clear(self) -> None:
        """Drops pending mutations. Tombstones are kept."""
        self._queue = []
        self._save()

    def clear_all(self) -> None:
        self._queue = []
        self._deleted_ids = _empty_tombstones()
        self._save()

    def list_all(self) -> List[QueueEntry]:
        return [entry.model_copy(deep=True) for entry in self._queue]

    # --- Tombstones ---

    def mark_deleted(self, kind: str, entity_id: Any) -> None:
        ids = self._deleted_ids.setdefault(kind, [])
        if entity_id not in ids:
            ids.append(entity_id)
            self._save()

    def is_tombstoned(self, kind: str, entity_id: Any) -> bool:
        return entity_id in self._deleted_ids.get(kind, ())

    def list_tombstones(self, kind: str) -> List[Any]:
        return list(self._deleted_ids.get(kind, ()))

    def clear_tombstones(self) -> None:
        self._deleted_ids = _empty_tombstones()
        self._save()

    # --- Processing ---

    async def drain(self, handler: DrainHandler) -> DrainResult:
        """
        Runs ``handler`` over every queued entry, one at a time.

        A truthy result marks the entry successful; a falsy result or an exception
        marks it failed. Afterwards the queue keeps the failed entries (unless they
        were removed or superseded while the pass ran), followed by entries enqueued
        during the pass.
        """
        pending = list(self._queue)
        result = DrainResult()

        for entry in pending:
            try:
                outcome = handler(entry)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except Exception as e:
                logger.error(f"SyncQueue: processing '{entry.action}' for id={entry.entity_id} failed: {e}")
                outcome = False
            if outcome:
                result.successful.append(entry)
            else:
                result.failed.append(entry)

        pending_refs = {id(entry) for entry in pending}
        still_queued = {id(entry) for entry in self._queue}
        retained = [entry for entry in result.failed if id(entry) in still_queued]
        added_meanwhile = [entry for entry in self._queue if id(entry) not in pending_refs]
        self._queue = retained + added_meanwhile
        self._save()

        if result.failed:
            logger.info(f"SyncQueue: {len(result.successful)} sent, {len(result.failed)} kept for retry")
        return result

    # --- Persistence ---

    def _load(self) -> None:
        try:
            raw_queue = self._store.get(self._queue_key)
            items = json.loads(raw_queue) if raw_queue else []
            if not isinstance(items, list):
                raise ValueError("queue slot does not hold a list")
            self._queue = [QueueEntry.model_validate(item) for item in items]
        except (StorageError, ValueError, ValidationError) as e:  # JSONDecodeError is a ValueError
            logger.error(f"SyncQueue: failed to load queue from storage, starting empty: {e}")
            self._queue = []

        try:
            raw_deleted = self._store.get(self._deleted_key)
            deleted = json.loads(raw_deleted) if raw_deleted else {}
            if not isinstance(deleted, dict):
                raise ValueError("tombstone slot does not hold an object")
            tombstones = _empty_tombstones()
            for kind, ids in deleted.items():
                if isinstance(ids, list):
                    tombstones[kind] = list(dict.fromkeys(ids))
            self._deleted_ids = tombstones
        except (StorageError, ValueError, TypeError) as e:
            logger.error(f"SyncQueue: failed to load deleted IDs from storage, starting empty: {e}")
            self._deleted_ids = _empty_tombstones()

    def _save(self) -> None:
        try:
            self._store.set(
                self._queue_key,
                json.dumps([entry.model_dump() for entry in self._queue], ensure_ascii=False),
            )
            self._store.set(self._deleted_key, json.dumps(self._deleted_ids, ensure_ascii=False))
        except (StorageError, TypeError, ValueError) as e:
            logger.error(f"SyncQueue: failed to save to storage: {e}")

#
# End of Sync_Queue.py
#######################################################################################################################
