# practice_sync/sheets_api/__init__.py
from .client import SheetsAPIClient
from .exceptions import (
    SheetsAPIError, NotConfiguredError, APIConnectionError,
    APIResponseError, PayloadTooLargeError
)
from .schemas import (
    SyncAction, QueueEntry, RemoteSnapshot, ClientRecord, SessionRecord,
    KIND_ACTIONS, action_name
)

__all__ = [
    "SheetsAPIClient",
    "SheetsAPIError", "NotConfiguredError", "APIConnectionError",
    "APIResponseError", "PayloadTooLargeError",
    "SyncAction", "QueueEntry", "RemoteSnapshot", "ClientRecord", "SessionRecord",
    "KIND_ACTIONS", "action_name",
]
