from .Records import InputError, generate_id, new_client, new_session, update_record
from .Sync_Queue import DrainResult, SyncQueue
from .Sync_Manager import ConnectionStatus, DrainSummary, PushResult, SyncManager
from .Sync_Service import ChangeOutcome, ForceSyncReport, SyncService

__all__ = [
    "InputError", "generate_id", "new_client", "new_session", "update_record",
    "DrainResult", "SyncQueue",
    "ConnectionStatus", "DrainSummary", "PushResult", "SyncManager",
    "ChangeOutcome", "ForceSyncReport", "SyncService",
]
