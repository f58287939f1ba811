# Sync_Manager.py
# Description: Orchestrates connection state, queue draining and snapshot merging against the remote store
#
# Imports
import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union
#
# Third-Party Imports
from loguru import logger
from pydantic import BaseModel
#
# Local Imports
from practice_sync import Constants
from practice_sync.config import SyncSettings
from practice_sync.sheets_api.client import SheetsAPIClient
from practice_sync.sheets_api.schemas import RemoteSnapshot, SyncAction
from practice_sync.Storage.Local_Storage import JsonFileStore, KeyValueStore, MemoryStore
from practice_sync.Sync.Sync_Queue import SyncQueue
from practice_sync.Utils.Time_Utils import is_newer
#
#######################################################################################################################
#
# Functions:

ConnectionListener = Callable[[bool, str], None]
SyncListener = Callable[[Dict[str, List[Dict[str, Any]]]], None]


class ConnectionStatus(str, Enum):
    OFFLINE = "offline"
    ONLINE = "online"


class PushResult(BaseModel):
    success: bool
    queued: bool


class DrainSummary(BaseModel):
    successful: int = 0
    failed: int = 0


# kind -> save action used when a local record has to reach the remote store
_SAVE_ACTIONS = {
    Constants.KIND_CLIENTS: SyncAction.SAVE_CLIENT,
    Constants.KIND_SESSIONS: SyncAction.SAVE_SESSION,
}


class SyncManager:
    """
    Keeps the local client/session collections consistent with the remote store.

    The manager owns one SyncQueue and one SheetsAPIClient. Local collections are
    passed in and merged results are returned; the caller adopts and persists them.
    No public coroutine raises on network or storage failure.
    """

    def __init__(self,
                 settings: Optional[SyncSettings] = None,
                 store: Optional[KeyValueStore] = None,
                 client: Optional[SheetsAPIClient] = None,
                 queue: Optional[SyncQueue] = None):
        self.settings = settings or SyncSettings()
        if store is None:
            store = JsonFileStore(self.settings.storage_path) if self.settings.storage_path else MemoryStore()
        self._client = client or SheetsAPIClient(
            script_url=self.settings.script_url,
            max_url_length=self.settings.max_url_length,
            timeout=self.settings.request_timeout,
            notes_soft_limit=self.settings.notes_soft_limit,
            notes_hard_limit=self.settings.notes_hard_limit,
        )
        self._queue = queue if queue is not None else SyncQueue(
            store,
            queue_key=self.settings.queue_storage_key,
            deleted_key=self.settings.deleted_storage_key,
        )
        self._status = ConnectionStatus.OFFLINE
        self._is_syncing = False
        self._connection_listeners: List[ConnectionListener] = []
        self._sync_listeners: List[SyncListener] = []
        self._scheduled_drains: Set[asyncio.Task] = set()

    # --- State ---

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_online(self) -> bool:
        return self._status is ConnectionStatus.ONLINE

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def queue(self) -> SyncQueue:
        return self._queue

    def set_script_url(self, url: str) -> None:
        self._client.script_url = url

    # --- Listeners ---

    def on_connection_change(self, listener: ConnectionListener) -> None:
        self._connection_listeners.append(listener)

    def on_sync_complete(self, listener: SyncListener) -> None:
        self._sync_listeners.append(listener)

    def _notify_connection_change(self, is_online: bool, status_text: str) -> None:
        for listener in list(self._connection_listeners):
            try:
                listener(is_online, status_text)
            except Exception:
                logger.exception("SyncManager: connection listener error")

    def _notify_sync_complete(self, merged: Dict[str, List[Dict[str, Any]]]) -> None:
        for listener in list(self._sync_listeners):
            try:
                listener(merged)
            except Exception:
                logger.exception("SyncManager: sync listener error")

    def status_text(self) -> str:
        if not self.is_online:
            return Constants.STATUS_OFFLINE
        if len(self._queue) > 0:
            return Constants.STATUS_QUEUED_TEMPLATE.format(count=len(self._queue))
        return Constants.STATUS_CONNECTED

    # --- Connection ---

    async def probe_connection(self) -> bool:
        if not self._client.is_configured:
            self._status = ConnectionStatus.OFFLINE
            self._notify_connection_change(False, Constants.STATUS_LOCAL_ONLY)
            return False

        self._notify_connection_change(False, Constants.STATUS_CONNECTING)
        reachable = await self._client.ping()
        self._status = ConnectionStatus.ONLINE if reachable else ConnectionStatus.OFFLINE
        logger.info(f"SyncManager: remote store is {self._status.value}")
        self._notify_connection_change(self.is_online, self.status_text())
        return self.is_online

    def mark_offline(self) -> None:
        """Used when the host reports the network is gone; no request is made."""
        self._status = ConnectionStatus.OFFLINE
        self._notify_connection_change(False, Constants.STATUS_OFFLINE)

    # --- Sync cycle ---

    async def run_sync_cycle(self,
                             local_clients: List[Dict[str, Any]],
                             local_sessions: List[Dict[str, Any]]) -> Optional[Dict[str, List[Dict[str, Any]]]]:
        """
        One full cycle: drain queue, init remote, fetch snapshot, merge, notify.
        Returns the merged collections, or None if the cycle did not run or failed.
        """
        if not self.is_online or not self._client.is_configured or self._is_syncing:
            return None

        self._is_syncing = True
        try:
            await self._process_queue()
            await self._client.initialize_remote()

            remote = await self._client.fetch_all()
            if remote is None:
                logger.error("SyncManager: failed to get remote data")
                return None

            merged = self.merge_snapshots(remote, local_clients, local_sessions)
            self._notify_sync_complete(merged)
            self._notify_connection_change(True, self.status_text())
            return merged
        except Exception:
            logger.exception("SyncManager: sync failed")
            return None
        finally:
            self._is_syncing = False

    async def push_change(self, action: Union[SyncAction, str], data: Dict[str, Any]) -> PushResult:
        """Queues the change, then tries it right away when online."""
        entry = self._queue.enqueue(action, data)

        if self.is_online and self._client.is_configured:
            success = await self.execute_action(action, data)
            if success:
                # Only this call's entry: a newer one for the same id may have been queued meanwhile
                self._queue.discard(entry)
            self._notify_connection_change(True, self.status_text())
            return PushResult(success=success, queued=not success)

        return PushResult(success=False, queued=True)

    def mark_deleted(self, kind: str, entity_id: Any) -> None:
        self._queue.mark_deleted(kind, entity_id)

    async def drain_now(self) -> DrainSummary:
        if not self.is_online or self._is_syncing:
            return DrainSummary(successful=0, failed=len(self._queue))

        result = await self._process_queue()
        self._notify_connection_change(True, self.status_text())
        return result

    def reset(self) -> None:
        """Drops every pending mutation and every tombstone."""
        self._queue.clear_all()

    async def _process_queue(self) -> DrainSummary:
        if self._queue.is_empty or not self.is_online:
            return DrainSummary()

        logger.info(f"SyncManager: processing {len(self._queue)} queue items")
        result = await self._queue.drain(lambda entry: self.execute_action(entry.action, entry.data))
        if result.failed:
            logger.info(f"SyncManager: {len(result.failed)} items failed, will retry later")
        return DrainSummary(successful=len(result.successful), failed=len(result.failed))

    async def execute_action(self, action: Union[SyncAction, str], data: Dict[str, Any]) -> bool:
        try:
            kind = SyncAction(action)
        except ValueError:
            logger.error(f"SyncManager: unknown action {action!r}")
            return False

        if kind is SyncAction.SAVE_CLIENT:
            return await self._client.save_client(data)
        if kind is SyncAction.SAVE_SESSION:
            return await self._client.save_session(data)
        if kind is SyncAction.DELETE_CLIENT:
            return await self._client.delete_client(data.get("id"))
        if kind is SyncAction.DELETE_SESSION:
            return await self._client.delete_session(data.get("id"))
        return await self._client.sync_all(data)

    # --- Merge ---

    def merge_snapshots(self,
                        remote: Union[RemoteSnapshot, Mapping[str, Any]],
                        local_clients: List[Dict[str, Any]],
                        local_sessions: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Timestamp-based merge of a remote snapshot into the local collections.

        Remote records win only when their ``updatedAt`` is strictly newer; ties keep
        the local record. Tombstoned ids never come back from the remote side
        and are never queued for upload.
        Side effect: local records missing remotely, or newer than their remote
        counterpart, are queued for upload, and a background drain is scheduled.
        """
        if isinstance(remote, RemoteSnapshot):
            remote_clients, remote_sessions = remote.clients, remote.sessions
        else:
            remote_clients = list(remote.get("clients") or [])
            remote_sessions = list(remote.get("sessions") or [])

        merged_clients = self._merge_kind(Constants.KIND_CLIENTS, remote_clients, local_clients)
        merged_sessions = self._merge_kind(Constants.KIND_SESSIONS, remote_sessions, local_sessions)

        self._queue_local_changes(Constants.KIND_CLIENTS, remote_clients, local_clients)
        self._queue_local_changes(Constants.KIND_SESSIONS, remote_sessions, local_sessions)

        if not self._queue.is_empty and self.is_online:
            self._schedule_drain()

        return {"clients": merged_clients, "sessions": merged_sessions}

    def _merge_kind(self, kind: str,
                    remote_items: List[Dict[str, Any]],
                    local_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        merged = list(local_items)
        position: Dict[Any, int] = {}
        for index, item in enumerate(merged):
            position.setdefault(item.get("id"), index)

        for remote_item in remote_items:
            remote_id = remote_item.get("id")
            if self._queue.is_tombstoned(kind, remote_id):
                continue
            index = position.get(remote_id)
            if index is None:
                position[remote_id] = len(merged)
                merged.append(remote_item)
            elif is_newer(remote_item.get("updatedAt"), merged[index].get("updatedAt")):
                merged[index] = remote_item
        return merged

    def _queue_local_changes(self, kind: str,
                             remote_items: List[Dict[str, Any]],
                             local_items: List[Dict[str, Any]]) -> None:
        remote_by_id: Dict[Any, Dict[str, Any]] = {}
        for item in remote_items:
            remote_by_id.setdefault(item.get("id"), item)

        action = _SAVE_ACTIONS[kind]
        for local_item in local_items:
            if self._queue.is_tombstoned(kind, local_item.get("id")):
                continue
            remote_item = remote_by_id.get(local_item.get("id"))
            if remote_item is None or is_newer(local_item.get("updatedAt"), remote_item.get("updatedAt")):
                self._queue.enqueue(action, local_item)

    # --- Background drain ---

    def _schedule_drain(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("SyncManager: no running event loop, post-merge drain not scheduled")
            return
        task = loop.create_task(self._delayed_drain(), name="practice_sync.post_merge_drain")
        self._scheduled_drains.add(task)
        task.add_done_callback(self._scheduled_drains.discard)

    async def _delayed_drain(self) -> None:
        await asyncio.sleep(self.settings.auto_drain_delay)
        if self._is_syncing:
            # The running cycle (or the next one) drains the queue anyway
            return
        try:
            await self._process_queue()
        except Exception:
            logger.exception("SyncManager: background drain failed")

    async def aclose(self) -> None:
        for task in list(self._scheduled_drains):
            task.cancel()
        if self._scheduled_drains:
            await asyncio.gather(*self._scheduled_drains, return_exceptions=True)
        await self._client.close()

#
# End of Sync_Manager.py
#######################################################################################################################
