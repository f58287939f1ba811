# Constants.py
# Description: Constants shared by the sync core and its collaborators
#
# Imports
#
# 3rd-Party Imports
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Entity kinds (also the tombstone set keys) ---
KIND_CLIENTS = "clients"
KIND_SESSIONS = "sessions"
ALL_KINDS = [KIND_CLIENTS, KIND_SESSIONS]

# --- Local storage slots ---
STORAGE_KEY_QUEUE = "therapy_sync_queue"
STORAGE_KEY_DELETED = "therapy_deleted_ids"
STORAGE_KEY_CLIENTS = "therapy_clients"
STORAGE_KEY_SESSIONS = "therapy_sessions"

# --- Remote transport ---
ACTION_PING = "ping"
ACTION_INIT = "init"
ACTION_GET_DATA = "getData"
DEFAULT_MAX_URL_LENGTH = 1800
NOTES_SOFT_LIMIT = 500
NOTES_HARD_LIMIT = 200
TRUNCATION_MARKER = "..."
DEFAULT_REQUEST_TIMEOUT = 30.0

# Delay before the post-merge drain fires, in seconds
DEFAULT_AUTO_DRAIN_DELAY = 0.1

# --- Connection status texts ---
STATUS_LOCAL_ONLY = "Local storage only"
STATUS_CONNECTING = "Connecting..."
STATUS_OFFLINE = "Offline mode"
STATUS_CONNECTED = "Remote store connected"
STATUS_QUEUED_TEMPLATE = "Remote store (queue: {count})"

# --- User-facing messages for the service facade ---
MSG_SAVED_LOCALLY_RETRY = "Saved locally, will sync later"
MSG_SAVED_OFFLINE = "Offline: saved locally"
MSG_NOT_CONFIGURED = "Configure the remote store first"
MSG_NO_CONNECTION = "No connection"
MSG_SYNC_DONE = "Sync complete"
MSG_QUEUE_REMAINING_TEMPLATE = "Still queued: {count}"

DEFAULT_CURRENCY = "USD"
SUPPORTED_CURRENCIES = ["USD", "EUR", "PLN"]

#
# End of Constants.py
########################################################################################################################
