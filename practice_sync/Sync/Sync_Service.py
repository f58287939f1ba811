# Sync_Service.py
# Description: Application-facing facade that owns the in-memory collections and routes edits through the SyncManager
#
# Imports
import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
#
# Third-Party Imports
from loguru import logger
from pydantic import BaseModel
#
# Local Imports
from practice_sync import Constants
from practice_sync.config import save_setting
from practice_sync.sheets_api.schemas import SyncAction
from practice_sync.Storage.Local_Storage import LocalDataStore
from practice_sync.Sync.Records import InputError, new_client, new_session, update_record
from practice_sync.Sync.Sync_Manager import DrainSummary, PushResult, SyncManager
from practice_sync.Utils.Time_Utils import utc_now_iso
#
#######################################################################################################################
#
# Functions:

class ChangeOutcome(BaseModel):
    result: PushResult
    message: Optional[str] = None
    record: Optional[Dict[str, Any]] = None


class ForceSyncReport(BaseModel):
    queue_result: Optional[DrainSummary] = None
    merged: bool = False
    remaining: int = 0
    message: str


class SyncService:
    """
    Holds the authoritative client/session lists for the application.

    Every edit is saved locally first and then pushed through the manager;
    merged snapshots returned by the manager replace the local lists.
    """

    def __init__(self, manager: SyncManager, data_store: LocalDataStore, config_path: Optional[Path] = None):
        self.manager = manager
        self.data_store = data_store
        self.config_path = config_path
        self.clients, self.sessions = data_store.load()
        logger.info(f"SyncService: loaded {len(self.clients)} clients and {len(self.sessions)} sessions")

    def _persist(self) -> None:
        self.data_store.save(self.clients, self.sessions)

    def _reconcile(self, kind: str,
                   merged: List[Dict[str, Any]],
                   sent: List[Dict[str, Any]],
                   current: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Folds edits made while a cycle was running into its merged result.

        Records created or replaced locally since ``sent`` was handed to the cycle
        win over the merged version; ids deleted in the meantime are tombstoned
        and dropped.
        """
        sent_refs = {id(item) for item in sent}
        edited = {item.get("id"): item for item in current if id(item) not in sent_refs}
        result = []
        for item in merged:
            item_id = item.get("id")
            if self.manager.queue.is_tombstoned(kind, item_id):
                continue
            result.append(edited.pop(item_id, item))
        result.extend(edited.values())
        return result

    def _adopt(self, merged: Optional[Dict[str, List[Dict[str, Any]]]],
               sent_clients: List[Dict[str, Any]],
               sent_sessions: List[Dict[str, Any]]) -> Optional[Dict[str, List[Dict[str, Any]]]]:
        if not merged:
            return None
        self.clients = self._reconcile(Constants.KIND_CLIENTS, merged["clients"], sent_clients, self.clients)
        self.sessions = self._reconcile(Constants.KIND_SESSIONS, merged["sessions"], sent_sessions, self.sessions)
        self._persist()
        return {"clients": list(self.clients), "sessions": list(self.sessions)}

    async def _push(self, action: SyncAction, data: Dict[str, Any]) -> ChangeOutcome:
        result = await self.manager.push_change(action, data)
        message = None
        if result.queued and not result.success:
            message = Constants.MSG_SAVED_LOCALLY_RETRY if self.manager.is_online else Constants.MSG_SAVED_OFFLINE
        return ChangeOutcome(result=result, message=message, record=data)

    # --- Sync entry points ---

    async def check_connection_and_sync(self) -> Optional[Dict[str, List[Dict[str, Any]]]]:
        if not await self.manager.probe_connection():
            return None
        clients, sessions = self.clients, self.sessions
        merged = await self.manager.run_sync_cycle(clients, sessions)
        return self._adopt(merged, clients, sessions)

    async def force_sync_now(self) -> ForceSyncReport:
        if not self.manager.is_configured:
            return ForceSyncReport(remaining=self.manager.queue_length, message=Constants.MSG_NOT_CONFIGURED)

        if not await self.manager.probe_connection():
            return ForceSyncReport(remaining=self.manager.queue_length, message=Constants.MSG_NO_CONNECTION)

        queue_result = await self.manager.drain_now()
        clients, sessions = self.clients, self.sessions
        merged = await self.manager.run_sync_cycle(clients, sessions)
        adopted = self._adopt(merged, clients, sessions) is not None

        remaining = self.manager.queue_length
        if remaining == 0:
            message = Constants.MSG_SYNC_DONE
        else:
            message = Constants.MSG_QUEUE_REMAINING_TEMPLATE.format(count=remaining)
        return ForceSyncReport(queue_result=queue_result, merged=adopted, remaining=remaining, message=message)

    async def update_script_url(self, url: str, persist: bool = True,
                                config_path: Optional[Path] = None) -> Optional[Dict[str, List[Dict[str, Any]]]]:
        url = (url or "").strip()
        self.manager.set_script_url(url)
        if persist:
            save_setting("sync", "script_url", url, config_path=config_path or self.config_path)
        return await self.check_connection_and_sync()

    async def set_network_available(self, available: bool) -> Optional[Dict[str, List[Dict[str, Any]]]]:
        """Hook for host network events: back online triggers a sync, going offline only updates status."""
        if not available:
            logger.info("SyncService: network offline")
            self.manager.mark_offline()
            return None
        logger.info("SyncService: network online")
        return await self.check_connection_and_sync()

    def reset_sync_state(self) -> None:
        self.manager.reset()

    # --- Backup ---

    def export_data(self) -> Dict[str, Any]:
        """Snapshot of both collections for a JSON backup file."""
        return {
            "clients": copy.deepcopy(self.clients),
            "sessions": copy.deepcopy(self.sessions),
            "exportedAt": utc_now_iso(),
        }

    def import_data(self, payload: Union[str, bytes, Mapping[str, Any]]) -> bool:
        """
        Restores a backup made by export_data. Each collection is replaced only
        when the payload carries a list for it. Nothing is pushed to the remote
        store; the next sync uploads what it is missing.

        Returns False, leaving local data untouched, if the payload is not a JSON object.
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.error(f"SyncService: import failed, payload is not valid JSON: {e}")
                return False
        if not isinstance(payload, Mapping):
            logger.error(f"SyncService: import failed, expected a JSON object, got {type(payload).__name__}")
            return False

        clients, sessions = payload.get("clients"), payload.get("sessions")
        if isinstance(clients, list):
            self.clients = [dict(item) for item in clients if isinstance(item, dict)]
        if isinstance(sessions, list):
            self.sessions = [dict(item) for item in sessions if isinstance(item, dict)]
        self._persist()
        logger.info(f"SyncService: imported {len(self.clients)} clients and {len(self.sessions)} sessions")
        return True

    def clear_local_data(self) -> None:
        """Empties both local collections. The sync queue and tombstones are left alone."""
        self.clients = []
        self.sessions = []
        self._persist()
        logger.info("SyncService: local data cleared")

    # --- Clients ---

    def find_client(self, client_id: str) -> Optional[Dict[str, Any]]:
        return next((c for c in self.clients if c.get("id") == client_id), None)

    async def save_client(self, name: str, rate: Any, currency: str = Constants.DEFAULT_CURRENCY,
                          notes: str = "", client_id: Optional[str] = None) -> ChangeOutcome:
        """Creates a client, or updates ``client_id`` when given."""
        if client_id:
            existing = self.find_client(client_id)
            if existing is None:
                raise InputError(f"Unknown client '{client_id}'")
            record = update_record(existing, name=name, rate=rate, currency=currency, notes=notes)
            self.clients = [record if c.get("id") == client_id else c for c in self.clients]
        else:
            record = new_client(name, rate, currency=currency, notes=notes)
            self.clients = self.clients + [record]
        self._persist()
        return await self._push(SyncAction.SAVE_CLIENT, record)

    async def delete_client(self, client_id: str) -> ChangeOutcome:
        """Deletes the client together with all of its sessions."""
        session_ids = [s.get("id") for s in self.sessions if s.get("clientId") == client_id]
        self.clients = [c for c in self.clients if c.get("id") != client_id]
        self.sessions = [s for s in self.sessions if s.get("clientId") != client_id]

        self.manager.mark_deleted(Constants.KIND_CLIENTS, client_id)
        for session_id in session_ids:
            self.manager.mark_deleted(Constants.KIND_SESSIONS, session_id)
        self._persist()

        outcome = await self._push(SyncAction.DELETE_CLIENT, {"id": client_id})
        for session_id in session_ids:
            await self._push(SyncAction.DELETE_SESSION, {"id": session_id})
        return outcome

    # --- Sessions ---

    def find_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return next((s for s in self.sessions if s.get("id") == session_id), None)

    async def save_session(self, client_id: str, date: str, amount: Any, paid: bool = False,
                           notes: str = "", session_id: Optional[str] = None) -> ChangeOutcome:
        """Creates a session, or updates ``session_id`` when given."""
        if self.find_client(client_id) is None:
            raise InputError(f"Unknown client '{client_id}'")
        if session_id:
            existing = self.find_session(session_id)
            if existing is None:
                raise InputError(f"Unknown session '{session_id}'")
            record = update_record(existing, clientId=client_id, date=date, amount=amount,
                                   paid=bool(paid), notes=notes)
            self.sessions = [record if s.get("id") == session_id else s for s in self.sessions]
        else:
            record = new_session(client_id, date, amount, paid=paid, notes=notes)
            self.sessions = self.sessions + [record]
        self._persist()
        return await self._push(SyncAction.SAVE_SESSION, record)

    async def delete_session(self, session_id: str) -> ChangeOutcome:
        self.sessions = [s for s in self.sessions if s.get("id") != session_id]
        self.manager.mark_deleted(Constants.KIND_SESSIONS, session_id)
        self._persist()
        return await self._push(SyncAction.DELETE_SESSION, {"id": session_id})

#
# End of Sync_Service.py
#######################################################################################################################
