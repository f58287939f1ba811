# Tests/conftest.py
#
#
# Imports
import json
from typing import Any, Dict, List, Set
#
# Third-party imports
import httpx
import pytest
import pytest_asyncio
#
# Local imports
from practice_sync.config import SyncSettings
from practice_sync.sheets_api.client import SheetsAPIClient
from practice_sync.sheets_api.schemas import RemoteSnapshot
from practice_sync.Storage.Local_Storage import MemoryStore
from practice_sync.Sync.Sync_Manager import SyncManager
from practice_sync.Sync.Sync_Queue import SyncQueue
#
############################################################################################################################
#
# Functions:

SCRIPT_URL = "https://script.example.test/macros/s/abc/exec"


class FakeRemote:
    """
    In-memory stand-in for the remote store, served through httpx.MockTransport.
    Records every request so tests can inspect what went over the wire.
    """

    def __init__(self):
        self.clients: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.fail_actions: Set[str] = set()
        self.reachable = True
        self.init_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if not self.reachable:
            raise httpx.ConnectError("network unreachable", request=request)
        self.requests.append(request)

        action = request.url.params.get("action")
        raw = request.url.params.get("data")
        data = json.loads(raw) if raw else None

        if action in self.fail_actions:
            return httpx.Response(200, json={"error": f"{action} rejected"})
        if action == "ping":
            return httpx.Response(200, json={"status": "ok"})
        if action == "init":
            self.init_calls += 1
            return httpx.Response(200, json={"success": True})
        if action == "getData":
            return httpx.Response(200, json={
                "clients": list(self.clients.values()),
                "sessions": list(self.sessions.values()),
                "syncedAt": "2024-01-05T00:00:00.000Z",
            })
        if action == "saveClient":
            self.clients[data["id"]] = data
            return httpx.Response(200, json={"success": True})
        if action == "saveSession":
            self.sessions[data["id"]] = data
            return httpx.Response(200, json={"success": True})
        if action == "deleteClient":
            self.clients.pop(data["id"], None)
            return httpx.Response(200, json={"success": True})
        if action == "deleteSession":
            self.sessions.pop(data["id"], None)
            return httpx.Response(200, json={"success": True})
        if action == "syncAll":
            self.clients = {c["id"]: c for c in data.get("clients", [])}
            self.sessions = {s["id"]: s for s in data.get("sessions", [])}
            return httpx.Response(200, json={"success": True})
        return httpx.Response(200, json={"error": "Unknown action"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def actions(self) -> List[str]:
        return [r.url.params.get("action") for r in self.requests]

    def payloads(self, action: str) -> List[Dict[str, Any]]:
        return [json.loads(r.url.params["data"]) for r in self.requests
                if r.url.params.get("action") == action]


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def sync_queue(memory_store):
    return SyncQueue(memory_store)


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest_asyncio.fixture
async def sheets_client(fake_remote):
    client = SheetsAPIClient(SCRIPT_URL, transport=fake_remote.transport)
    yield client
    await client.close()


@pytest.fixture
def mock_client(mocker):
    """SheetsAPIClient double where every remote call succeeds."""
    client = mocker.MagicMock(spec=SheetsAPIClient)
    client.is_configured = True
    client.ping.return_value = True
    client.initialize_remote.return_value = True
    client.fetch_all.return_value = RemoteSnapshot(clients=[], sessions=[])
    for name in ("save_client", "save_session", "delete_client", "delete_session", "sync_all"):
        getattr(client, name).return_value = True
    return client


@pytest.fixture
def sync_settings():
    return SyncSettings(script_url=SCRIPT_URL, auto_drain_delay=0)


@pytest.fixture
def manager(sync_settings, memory_store, mock_client):
    return SyncManager(settings=sync_settings, store=memory_store, client=mock_client)

#
# End of conftest.py
############################################################################################################################
