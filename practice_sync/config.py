# config.py
# Description: Configuration management for the practice_sync package.
#
# Imports
import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional
#
# Third-Party Imports
import toml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError
#
# Local Imports
from practice_sync import Constants
#
#######################################################################################################################
#
# Functions:

# --- Path to the user's configuration file ---
CONFIG_ENV_VAR = "PRACTICE_SYNC_CONFIG"
SCRIPT_URL_ENV_VAR = "PRACTICE_SYNC_SCRIPT_URL"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "practice_sync" / "config.toml"
BASE_DATA_DIR = Path.home() / ".local" / "share" / "practice_sync"

CONFIG_TOML_CONTENT = f"""
# Configuration for practice_sync
# Remove a key to fall back to the built-in default.

[sync]
# Deployment URL of the remote store. Empty means local storage only.
script_url = ""
max_url_length = {Constants.DEFAULT_MAX_URL_LENGTH}
notes_soft_limit = {Constants.NOTES_SOFT_LIMIT}
notes_hard_limit = {Constants.NOTES_HARD_LIMIT}
request_timeout = {Constants.DEFAULT_REQUEST_TIMEOUT}
auto_drain_delay = {Constants.DEFAULT_AUTO_DRAIN_DELAY}

[storage]
# JSON file holding the queue, tombstones and the local collections.
path = "{(BASE_DATA_DIR / 'local_storage.json').as_posix()}"
queue_key = "{Constants.STORAGE_KEY_QUEUE}"
deleted_key = "{Constants.STORAGE_KEY_DELETED}"
clients_key = "{Constants.STORAGE_KEY_CLIENTS}"
sessions_key = "{Constants.STORAGE_KEY_SESSIONS}"

[logging]
level = "INFO"
# Leave empty to log to stderr only.
log_file = ""
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}")
    DEFAULT_CONFIG_FROM_TOML = {}


class SyncSettings(BaseModel):
    """Typed view of the [sync] and [storage] sections."""
    script_url: str = ""
    max_url_length: int = Field(default=Constants.DEFAULT_MAX_URL_LENGTH, gt=0)
    notes_soft_limit: int = Field(default=Constants.NOTES_SOFT_LIMIT, ge=0)
    notes_hard_limit: int = Field(default=Constants.NOTES_HARD_LIMIT, ge=0)
    request_timeout: float = Field(default=Constants.DEFAULT_REQUEST_TIMEOUT, gt=0)
    auto_drain_delay: float = Field(default=Constants.DEFAULT_AUTO_DRAIN_DELAY, ge=0)
    storage_path: Optional[Path] = None
    queue_storage_key: str = Constants.STORAGE_KEY_QUEUE
    deleted_storage_key: str = Constants.STORAGE_KEY_DELETED
    clients_storage_key: str = Constants.STORAGE_KEY_CLIENTS
    sessions_storage_key: str = Constants.STORAGE_KEY_SESSIONS


# --- Helper for deep merging dictionaries ---
def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update_dict into base_dict."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


# --- Primary Configuration Loading Logic ---
_CONFIG_CACHE: Optional[Dict[str, Any]] = None

def load_settings(force_reload: bool = False, config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Loads settings from the user's config.toml on top of the built-in defaults.
    If the file doesn't exist, it's created with default values.

    Passing an explicit ``config_path`` bypasses the cache.
    """
    global _CONFIG_CACHE
    if config_path is None and _CONFIG_CACHE is not None and not force_reload:
        return _CONFIG_CACHE

    path = Path(config_path) if config_path else get_config_path()
    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not path.exists():
        logger.info(f"Config file not found at {path}. Creating with default values.")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(CONFIG_TOML_CONTENT)
            logger.info(f"Created default config file at {path}")
        except OSError as e:
            logger.error(f"Could not create default config file {path}: {e}. Using internal defaults.")
    else:
        logger.debug(f"Attempting to load config from: {path}")
        try:
            with open(path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.info(f"Successfully loaded and merged config from {path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {path}: {e}. Using internal defaults.")

    if config_path is None:
        _CONFIG_CACHE = loaded_config
    return loaded_config


def get_cli_setting(section: str, key: str, default: Any = None) -> Any:
    """Helper to get a specific setting from the loaded configuration."""
    config = load_settings()
    section_data = config.get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


def save_setting(section: str, key: str, value: Any, config_path: Optional[Path] = None) -> bool:
    """
    Persists a single setting into the user's config file and refreshes the cache.
    Returns False if the file could not be written.
    """
    global _CONFIG_CACHE
    path = Path(config_path) if config_path else get_config_path()
    current: Dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                current = toml.load(f)
        except (toml.TomlDecodeError, OSError) as e:
            logger.warning(f"Existing config at {path} is unreadable ({e}); rewriting it from defaults.")
            current = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)
    else:
        current = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    current.setdefault(section, {})[key] = value
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(current, f)
    except OSError as e:
        logger.error(f"Failed to save setting [{section}].{key} to {path}: {e}")
        return False

    if config_path is None:
        _CONFIG_CACHE = None
    logger.info(f"Saved setting [{section}].{key} to {path}")
    return True


def load_sync_settings(config: Optional[Dict[str, Any]] = None) -> SyncSettings:
    """Builds SyncSettings from a loaded config dict (or the cached one)."""
    config = config if config is not None else load_settings()
    sync_section = config.get("sync", {}) or {}
    storage_section = config.get("storage", {}) or {}

    values: Dict[str, Any] = {
        "script_url": sync_section.get("script_url", ""),
        "max_url_length": sync_section.get("max_url_length", Constants.DEFAULT_MAX_URL_LENGTH),
        "notes_soft_limit": sync_section.get("notes_soft_limit", Constants.NOTES_SOFT_LIMIT),
        "notes_hard_limit": sync_section.get("notes_hard_limit", Constants.NOTES_HARD_LIMIT),
        "request_timeout": sync_section.get("request_timeout", Constants.DEFAULT_REQUEST_TIMEOUT),
        "auto_drain_delay": sync_section.get("auto_drain_delay", Constants.DEFAULT_AUTO_DRAIN_DELAY),
        "storage_path": storage_section.get("path") or None,
        "queue_storage_key": storage_section.get("queue_key", Constants.STORAGE_KEY_QUEUE),
        "deleted_storage_key": storage_section.get("deleted_key", Constants.STORAGE_KEY_DELETED),
        "clients_storage_key": storage_section.get("clients_key", Constants.STORAGE_KEY_CLIENTS),
        "sessions_storage_key": storage_section.get("sessions_key", Constants.STORAGE_KEY_SESSIONS),
    }
    env_url = os.environ.get(SCRIPT_URL_ENV_VAR)
    if env_url is not None:
        values["script_url"] = env_url.strip()

    try:
        return SyncSettings(**values)
    except ValidationError as e:
        logger.warning(f"Invalid sync settings in config, falling back to defaults: {e}")
        return SyncSettings(script_url=values["script_url"] if isinstance(values["script_url"], str) else "")

#
# End of config.py
#######################################################################################################################
