# practice_sync/sheets_api/schemas.py
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from practice_sync import Constants


class SyncAction(str, Enum):
    """Mutation actions understood by the remote store."""
    SAVE_CLIENT = "saveClient"
    SAVE_SESSION = "saveSession"
    DELETE_CLIENT = "deleteClient"
    DELETE_SESSION = "deleteSession"
    SYNC_ALL = "syncAll"


# Entity kind -> (save action, delete action)
KIND_ACTIONS = {
    Constants.KIND_CLIENTS: (SyncAction.SAVE_CLIENT, SyncAction.DELETE_CLIENT),
    Constants.KIND_SESSIONS: (SyncAction.SAVE_SESSION, SyncAction.DELETE_SESSION),
}


def action_name(action: Any) -> str:
    """Wire name of an action given either a SyncAction or a plain string."""
    if isinstance(action, SyncAction):
        return action.value
    return str(action)


# --- Queue ---
class QueueEntry(BaseModel):
    """One pending mutation. ``data`` is the payload the remote store receives."""
    action: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str

    @property
    def entity_id(self) -> Optional[Any]:
        entity_id = self.data.get("id")
        return entity_id if entity_id else None


# --- Remote snapshot (getData response) ---
class RemoteSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    clients: List[Dict[str, Any]]
    sessions: List[Dict[str, Any]]
    synced_at: Optional[str] = Field(default=None, alias="syncedAt")


# --- Entity records ---
class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    notes: str = ""
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ClientRecord(_Record):
    name: str
    rate: float
    currency: str = Constants.DEFAULT_CURRENCY


class SessionRecord(_Record):
    client_id: str = Field(alias="clientId")
    date: str
    amount: float
    paid: bool = False
