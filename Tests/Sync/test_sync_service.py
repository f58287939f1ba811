# test_sync_service.py
#
# End-to-end tests for SyncService against an in-memory remote behind httpx.MockTransport.
#
# Imports
import asyncio
import json
import tomllib
#
# Third-party imports
import pytest
import pytest_asyncio
#
# Local imports
from practice_sync import Constants
from practice_sync.config import SyncSettings
from practice_sync.sheets_api.client import SheetsAPIClient
from practice_sync.Storage.Local_Storage import LocalDataStore, MemoryStore
from practice_sync.Sync.Records import InputError
from practice_sync.Sync.Sync_Manager import SyncManager
from practice_sync.Sync.Sync_Service import SyncService
#
############################################################################################################################
#
# Functions:

pytestmark = pytest.mark.asyncio

SCRIPT_URL = "https://script.example.test/macros/s/abc/exec"


def build_parts(fake_remote, memory_store, script_url=SCRIPT_URL):
    client = SheetsAPIClient(script_url, transport=fake_remote.transport)
    manager = SyncManager(settings=SyncSettings(script_url=script_url, auto_drain_delay=0),
                          store=memory_store, client=client)
    return SyncService(manager, LocalDataStore(memory_store)), client


def build_service(fake_remote, memory_store, script_url=SCRIPT_URL):
    return build_parts(fake_remote, memory_store, script_url)[0]


def hold_fetch(mocker, client):
    """Lets fetch_all take its snapshot, then parks it until ``release`` is set."""
    fetched, release = asyncio.Event(), asyncio.Event()
    original_fetch = client.fetch_all

    async def held_fetch():
        snapshot = await original_fetch()
        fetched.set()
        await release.wait()
        return snapshot

    mocker.patch.object(client, "fetch_all", side_effect=held_fetch)
    return fetched, release


@pytest_asyncio.fixture
async def service(fake_remote, memory_store):
    svc = build_service(fake_remote, memory_store)
    yield svc
    await svc.manager.aclose()


@pytest_asyncio.fixture
async def online_service(service):
    assert await service.check_connection_and_sync() == {"clients": [], "sessions": []}
    return service


# --- Saving ---

async def test_save_while_unconfigured_is_local_only(fake_remote, memory_store):
    svc = build_service(fake_remote, memory_store, script_url="")
    try:
        outcome = await svc.save_client("Ann", 100)
        assert outcome.result.queued and not outcome.result.success
        assert outcome.message == Constants.MSG_SAVED_OFFLINE
        assert fake_remote.requests == []
        assert svc.manager.queue_length == 1
    finally:
        await svc.manager.aclose()


async def test_save_online_reaches_remote(online_service, fake_remote):
    outcome = await online_service.save_client("Ann", 100, currency="EUR", notes="first visit")
    record = outcome.record

    assert outcome.result.success and not outcome.result.queued
    assert outcome.message is None
    assert fake_remote.clients[record["id"]] == record
    assert online_service.manager.queue_length == 0


async def test_rejected_save_stays_queued(online_service, fake_remote):
    fake_remote.fail_actions.add("saveClient")
    outcome = await online_service.save_client("Ann", 100)

    assert outcome.message == Constants.MSG_SAVED_LOCALLY_RETRY
    assert online_service.manager.queue_length == 1
    assert online_service.clients == [outcome.record]


async def test_long_notes_are_truncated_on_the_wire_only(online_service, fake_remote):
    outcome = await online_service.save_client("Ann", 100, notes="n" * 600)
    sent = fake_remote.payloads("saveClient")[-1]

    assert sent["notes"] == "n" * 500 + "..."
    assert online_service.find_client(outcome.record["id"])["notes"] == "n" * 600


async def test_edits_are_persisted_locally(service, memory_store, fake_remote):
    outcome = await service.save_client("Ann", 100)
    await service.save_session(outcome.record["id"], "2024-03-01", 80)

    reloaded = build_service(fake_remote, memory_store)
    try:
        assert [c["id"] for c in reloaded.clients] == [outcome.record["id"]]
        assert len(reloaded.sessions) == 1
        assert reloaded.manager.queue_length == 2
    finally:
        await reloaded.manager.aclose()


async def test_update_existing_client(online_service, fake_remote):
    created = (await online_service.save_client("Ann", 100)).record
    updated = (await online_service.save_client("Anna", 120, client_id=created["id"])).record

    assert updated["id"] == created["id"]
    assert updated["createdAt"] == created["createdAt"]
    assert [c["name"] for c in online_service.clients] == ["Anna"]
    assert fake_remote.clients[created["id"]]["name"] == "Anna"


async def test_save_session_requires_known_client(service):
    with pytest.raises(InputError):
        await service.save_session("missing", "2024-03-01", 80)


async def test_update_unknown_session_fails(service):
    client = (await service.save_client("Ann", 100)).record
    with pytest.raises(InputError):
        await service.save_session(client["id"], "2024-03-01", 80, session_id="missing")


# --- Deleting ---

async def test_delete_client_cascades_to_sessions(online_service, fake_remote):
    client = (await online_service.save_client("Ann", 100)).record
    other = (await online_service.save_client("Bob", 90)).record
    s1 = (await online_service.save_session(client["id"], "2024-03-01", 80)).record
    s2 = (await online_service.save_session(client["id"], "2024-03-08", 80)).record
    kept = (await online_service.save_session(other["id"], "2024-03-02", 70)).record

    await online_service.delete_client(client["id"])

    assert [c["id"] for c in online_service.clients] == [other["id"]]
    assert [s["id"] for s in online_service.sessions] == [kept["id"]]
    assert set(fake_remote.clients) == {other["id"]}
    assert set(fake_remote.sessions) == {kept["id"]}
    queue = online_service.manager.queue
    assert queue.is_tombstoned(Constants.KIND_CLIENTS, client["id"])
    assert queue.is_tombstoned(Constants.KIND_SESSIONS, s1["id"])
    assert queue.is_tombstoned(Constants.KIND_SESSIONS, s2["id"])


async def test_deleted_records_do_not_come_back(online_service, fake_remote):
    client = (await online_service.save_client("Ann", 100)).record
    await online_service.delete_client(client["id"])

    # A stale remote still holding the row must not resurrect it
    fake_remote.clients[client["id"]] = client
    merged = await online_service.check_connection_and_sync()
    assert merged == {"clients": [], "sessions": []}
    assert online_service.clients == []


async def test_delete_session_offline_is_queued(service):
    client = (await service.save_client("Ann", 100)).record
    session = (await service.save_session(client["id"], "2024-03-01", 80)).record

    outcome = await service.delete_session(session["id"])
    assert outcome.message == Constants.MSG_SAVED_OFFLINE
    assert service.sessions == []
    actions = [(e.action, e.entity_id) for e in service.manager.queue.list_all()]
    assert ("deleteSession", session["id"]) in actions
    assert ("saveSession", session["id"]) not in actions


# --- Sync ---

async def test_offline_edits_sync_when_network_returns(service, fake_remote):
    fake_remote.reachable = False
    assert await service.check_connection_and_sync() is None
    outcome = await service.save_client("Ann", 100)
    assert outcome.message == Constants.MSG_SAVED_OFFLINE

    fake_remote.reachable = True
    merged = await service.set_network_available(True)

    assert merged["clients"] == [outcome.record]
    assert fake_remote.clients[outcome.record["id"]] == outcome.record
    assert service.manager.queue_length == 0
    assert fake_remote.init_calls == 1


async def test_newer_remote_version_is_adopted(online_service, fake_remote, memory_store):
    client = (await online_service.save_client("Ann", 100)).record
    remote_version = dict(client, name="Ann (remote edit)", updatedAt="2999-01-01T00:00:00.000Z")
    fake_remote.clients[client["id"]] = remote_version

    await online_service.check_connection_and_sync()
    assert online_service.clients == [remote_version]
    assert LocalDataStore(memory_store).load()[0] == [remote_version]


async def test_remote_only_records_are_pulled(online_service, fake_remote):
    fake_remote.clients["r1"] = {"id": "r1", "name": "From another device", "rate": 50,
                                 "updatedAt": "2024-01-01T00:00:00.000Z"}
    await online_service.check_connection_and_sync()
    assert [c["id"] for c in online_service.clients] == ["r1"]


async def test_network_lost(online_service):
    assert await online_service.set_network_available(False) is None
    assert not online_service.manager.is_online


async def test_force_sync_not_configured(fake_remote, memory_store):
    svc = build_service(fake_remote, memory_store, script_url="")
    try:
        report = await svc.force_sync_now()
        assert report.message == Constants.MSG_NOT_CONFIGURED
        assert report.queue_result is None
    finally:
        await svc.manager.aclose()


async def test_force_sync_no_connection(service, fake_remote):
    await service.save_client("Ann", 100)
    fake_remote.reachable = False
    report = await service.force_sync_now()
    assert report.message == Constants.MSG_NO_CONNECTION
    assert report.remaining == 1


async def test_force_sync_drains_everything(service, fake_remote):
    await service.save_client("Ann", 100)
    await service.save_client("Bob", 90)

    report = await service.force_sync_now()
    assert report.message == Constants.MSG_SYNC_DONE
    assert report.queue_result.successful == 2
    assert report.merged is True
    assert report.remaining == 0
    assert len(fake_remote.clients) == 2


async def test_force_sync_reports_leftovers(service, fake_remote):
    fake_remote.fail_actions.add("saveClient")
    await service.save_client("Ann", 100)

    report = await service.force_sync_now()
    assert report.queue_result.failed == 1
    assert report.remaining == 1
    assert report.message == "Still queued: 1"


async def test_update_script_url_persists_and_syncs(fake_remote, memory_store, tmp_path):
    svc = build_service(fake_remote, memory_store, script_url="")
    config_path = tmp_path / "config.toml"
    try:
        merged = await svc.update_script_url(f"  {SCRIPT_URL}  ", config_path=config_path)
        assert merged == {"clients": [], "sessions": []}
        assert svc.manager.is_online

        with open(config_path, "rb") as f:
            assert tomllib.load(f)["sync"]["script_url"] == SCRIPT_URL
    finally:
        await svc.manager.aclose()


async def test_reset_sync_state(service):
    client = (await service.save_client("Ann", 100)).record
    await service.delete_client(client["id"])
    service.reset_sync_state()
    assert service.manager.queue_length == 0
    assert not service.manager.queue.is_tombstoned(Constants.KIND_CLIENTS, client["id"])

# --- Edits made while a sync is in flight ---

async def test_delete_during_sync_is_not_undone(fake_remote, memory_store, mocker):
    svc, client = build_parts(fake_remote, memory_store)
    try:
        assert await svc.check_connection_and_sync() is not None
        doomed = (await svc.save_client("Ann", 100)).record
        await svc.save_session(doomed["id"], "2024-03-01", 80)
        fetched, release = hold_fetch(mocker, client)

        cycle = asyncio.create_task(svc.check_connection_and_sync())
        await fetched.wait()
        await svc.delete_client(doomed["id"])
        added = (await svc.save_client("Bob", 90)).record
        release.set()
        merged = await cycle

        assert [c["id"] for c in svc.clients] == [added["id"]]
        assert svc.sessions == []
        assert merged == {"clients": svc.clients, "sessions": []}
        assert LocalDataStore(memory_store).load() == (svc.clients, [])

        await svc.check_connection_and_sync()
        assert set(fake_remote.clients) == {added["id"]}
        assert fake_remote.sessions == {}
    finally:
        await svc.manager.aclose()


async def test_offline_record_deleted_during_sync_is_never_uploaded(fake_remote, memory_store, mocker):
    svc, client = build_parts(fake_remote, memory_store)
    try:
        fake_remote.fail_actions.add("saveClient")
        local_only = (await svc.save_client("Ann", 100)).record
        fetched, release = hold_fetch(mocker, client)

        cycle = asyncio.create_task(svc.check_connection_and_sync())
        await fetched.wait()
        fake_remote.fail_actions.clear()
        await svc.delete_client(local_only["id"])
        release.set()
        await cycle
        await asyncio.sleep(0.05)

        assert svc.clients == []
        assert local_only["id"] not in fake_remote.clients
        assert svc.manager.queue_length == 0
    finally:
        await svc.manager.aclose()


async def test_edit_during_sync_wins_over_merged_copy(fake_remote, memory_store, mocker):
    svc, client = build_parts(fake_remote, memory_store)
    try:
        await svc.check_connection_and_sync()
        created = (await svc.save_client("Ann", 100)).record
        fetched, release = hold_fetch(mocker, client)

        cycle = asyncio.create_task(svc.check_connection_and_sync())
        await fetched.wait()
        await svc.save_client("Anna", 120, client_id=created["id"])
        release.set()
        await cycle

        assert [(c["id"], c["name"]) for c in svc.clients] == [(created["id"], "Anna")]
    finally:
        await svc.manager.aclose()


# --- Backup ---

async def test_export_data(service):
    client = (await service.save_client("Ann", 100)).record
    exported = service.export_data()

    assert exported["clients"] == [client]
    assert exported["sessions"] == []
    assert exported["exportedAt"].endswith("Z")
    exported["clients"][0]["name"] = "Changed"
    assert service.clients[0]["name"] == "Ann"


async def test_import_replaces_collections_and_persists(service, memory_store):
    await service.save_client("Old", 100)
    backup = {
        "clients": [{"id": "c1", "name": "Restored", "rate": 80}],
        "sessions": [{"id": "s1", "clientId": "c1", "amount": 80}, "junk"],
        "exportedAt": "2024-01-01T00:00:00.000Z",
    }

    assert service.import_data(json.dumps(backup)) is True
    assert [c["id"] for c in service.clients] == ["c1"]
    assert [s["id"] for s in service.sessions] == ["s1"]
    assert LocalDataStore(memory_store).load() == (service.clients, service.sessions)


async def test_import_keeps_collections_missing_from_payload(service):
    client = (await service.save_client("Ann", 100)).record
    await service.save_session(client["id"], "2024-03-01", 80)

    assert service.import_data({"clients": [client, {"id": "c2", "name": "Bob"}]}) is True
    assert len(service.clients) == 2
    assert len(service.sessions) == 1


@pytest.mark.parametrize("payload", ["{not json", "[1, 2]", b"\xff\xfe", 42])
async def test_import_rejects_malformed_payload(service, payload):
    client = (await service.save_client("Ann", 100)).record
    assert service.import_data(payload) is False
    assert service.clients == [client]


async def test_export_then_import_into_fresh_store(service, fake_remote):
    client = (await service.save_client("Ann", 100)).record
    await service.save_session(client["id"], "2024-03-01", 80)
    backup = json.dumps(service.export_data())

    other = build_service(fake_remote, MemoryStore())
    try:
        assert other.import_data(backup) is True
        assert other.clients == service.clients
        assert other.sessions == service.sessions
    finally:
        await other.manager.aclose()


async def test_clear_local_data(service, memory_store):
    client = (await service.save_client("Ann", 100)).record
    await service.save_session(client["id"], "2024-03-01", 80)

    service.clear_local_data()
    assert service.clients == [] and service.sessions == []
    assert LocalDataStore(memory_store).load() == ([], [])
    assert service.manager.queue_length == 2


#
# End of test_sync_service.py
############################################################################################################################
