# app.py
# Description: Application wiring: builds the sync service from the config file and runs a one-shot sync
#
# Imports
import asyncio
import sys
from pathlib import Path
from typing import Optional, Union
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from practice_sync.config import load_settings, load_sync_settings
from practice_sync.Logging_Config import configure_logging
from practice_sync.Storage.Local_Storage import JsonFileStore, KeyValueStore, LocalDataStore, MemoryStore
from practice_sync.Sync.Sync_Manager import SyncManager
from practice_sync.Sync.Sync_Service import ForceSyncReport, SyncService
#
########################################################################################################################
#
# Functions:

def create_service(config_path: Optional[Union[str, Path]] = None, setup_logging: bool = True) -> SyncService:
    """
    Loads the config (creating it from defaults if missing), sets up logging and
    returns a SyncService whose queue, tombstones and collections share one store.
    """
    path = Path(config_path).expanduser() if config_path else None
    config = load_settings(force_reload=True, config_path=path)

    if setup_logging:
        logging_section = config.get("logging", {}) or {}
        configure_logging(level=logging_section.get("level") or "INFO",
                          log_file=logging_section.get("log_file") or "")

    settings = load_sync_settings(config)
    store: KeyValueStore
    if settings.storage_path:
        store = JsonFileStore(settings.storage_path)
    else:
        logger.warning("No storage path configured; local data will not survive this process.")
        store = MemoryStore()

    manager = SyncManager(settings=settings, store=store)
    data_store = LocalDataStore(store,
                                clients_key=settings.clients_storage_key,
                                sessions_key=settings.sessions_storage_key)
    logger.info(f"practice_sync: remote store {'configured' if manager.is_configured else 'not configured'}")
    return SyncService(manager, data_store, config_path=path)


async def run_sync_once(service: SyncService) -> ForceSyncReport:
    """Pushes the queue, merges the remote snapshot and releases the HTTP client."""
    try:
        report = await service.force_sync_now()
    finally:
        await service.manager.aclose()
    logger.info(f"practice_sync: {report.message} (queued: {report.remaining})")
    return report


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    config_path = argv[0] if argv else None
    service = create_service(config_path)
    report = asyncio.run(run_sync_once(service))
    print(report.message)
    return 0 if report.remaining == 0 and report.queue_result is not None else 1


if __name__ == "__main__":
    sys.exit(main())

#
# End of app.py
########################################################################################################################
