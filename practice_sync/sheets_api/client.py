# practice_sync/sheets_api/client.py
#
#
# Imports
import json
from typing import Optional, Dict, Any
#
# 3rd-party Libraries
import httpx
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from practice_sync import Constants
from .exceptions import (
    SheetsAPIError, NotConfiguredError, APIConnectionError, APIResponseError, PayloadTooLargeError
)
from .schemas import KIND_ACTIONS, RemoteSnapshot, SyncAction, action_name
from .utils import build_request_url, hard_truncate_notes, truncate_notes
#
########################################################################################################################
#
# Functions:

class SheetsAPIClient:
    """
    Client for the key-value-over-HTTP remote store.

    Every request is a GET with ``action`` and an optional JSON ``data`` parameter.
    Public methods never raise: failures come back as False or None.
    """

    def __init__(self,
                 script_url: str = "",
                 max_url_length: int = Constants.DEFAULT_MAX_URL_LENGTH,
                 timeout: float = Constants.DEFAULT_REQUEST_TIMEOUT,
                 notes_soft_limit: int = Constants.NOTES_SOFT_LIMIT,
                 notes_hard_limit: int = Constants.NOTES_HARD_LIMIT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._script_url = (script_url or "").strip()
        self.max_url_length = max_url_length
        self.timeout = timeout
        self.notes_soft_limit = notes_soft_limit
        self.notes_hard_limit = notes_hard_limit
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def script_url(self) -> str:
        return self._script_url

    @script_url.setter
    def script_url(self, url: Optional[str]) -> None:
        self._script_url = (url or "").strip()

    @property
    def is_configured(self) -> bool:
        return bool(self._script_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,  # Apps Script deployments answer through a redirect
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    # --- Transport ---

    async def _get(self, url: str) -> httpx.Response:
        if not self.is_configured:
            raise NotConfiguredError("No script URL configured")
        client = await self._get_client()
        try:
            return await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:  # ConnectError, TimeoutException, etc.
            raise APIConnectionError(f"Connection error to {self._script_url}: {e}") from e

    async def _request_json(self, url: str) -> Dict[str, Any]:
        response = await self._get(url)
        if not response.is_success:
            raise APIResponseError(response.status_code, response.reason_phrase or "Request failed")
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise APIResponseError(response.status_code, "Failed to decode JSON response",
                                   response_data={"raw_text": response.text})
        if not isinstance(body, dict):
            raise APIResponseError(response.status_code, "Unexpected response shape",
                                   response_data={"raw": body})
        if body.get("error"):
            raise APIResponseError(response.status_code, str(body["error"]), response_data=body)
        return body

    def _build_push_url(self, action: str, data: Dict[str, Any]) -> str:
        """Applies the two-stage notes truncation and returns a URL within budget."""
        truncated = truncate_notes(data, self.notes_soft_limit)
        url = build_request_url(self._script_url, action, truncated)
        if len(url) <= self.max_url_length:
            return url

        logger.warning(f"URL for '{action}' is {len(url)} chars, truncating notes further")
        shorter = hard_truncate_notes(truncated, self.notes_hard_limit)
        short_url = build_request_url(self._script_url, action, shorter)
        if len(short_url) > self.max_url_length:
            raise PayloadTooLargeError(action, len(short_url), self.max_url_length)
        return short_url

    async def _push(self, action: Any, data: Dict[str, Any]) -> bool:
        if not self.is_configured:
            return False
        name = action_name(action)
        try:
            url = self._build_push_url(name, data)
            body = await self._request_json(url)
        except PayloadTooLargeError as e:
            logger.error(f"Not sending '{name}': {e}")
            return False
        except SheetsAPIError as e:
            logger.error(f"Push '{name}' failed: {e}")
            return False
        except (TypeError, ValueError) as e:  # payload not JSON-serializable
            logger.error(f"Could not encode payload for '{name}': {e}")
            return False
        return body.get("success") is not False

    # --- Public operations ---

    async def ping(self) -> bool:
        if not self.is_configured:
            return False
        try:
            response = await self._get(build_request_url(self._script_url, Constants.ACTION_PING))
        except SheetsAPIError as e:
            logger.warning(f"Ping failed: {e}")
            return False
        return response.is_success

    async def initialize_remote(self) -> bool:
        """Asks the remote to create its sheets/headers if missing. Safe to call every cycle."""
        if not self.is_configured:
            return False
        try:
            body = await self._request_json(build_request_url(self._script_url, Constants.ACTION_INIT))
        except SheetsAPIError as e:
            logger.error(f"Remote init failed: {e}")
            return False
        return body.get("success") is not False

    async def fetch_all(self) -> Optional[RemoteSnapshot]:
        """Full remote snapshot, or None when a merge is not possible this cycle."""
        if not self.is_configured:
            return None
        try:
            body = await self._request_json(build_request_url(self._script_url, Constants.ACTION_GET_DATA))
            return RemoteSnapshot.model_validate(body)
        except SheetsAPIError as e:
            logger.error(f"getData failed: {e}")
            return None
        except ValidationError as e:
            logger.error(f"getData returned a malformed snapshot: {e}")
            return None

    async def save_entity(self, kind: str, record: Dict[str, Any]) -> bool:
        actions = KIND_ACTIONS.get(kind)
        if actions is None:
            logger.error(f"save_entity: unknown entity kind '{kind}'")
            return False
        return await self._push(actions[0], record)

    async def delete_entity(self, kind: str, entity_id: str) -> bool:
        actions = KIND_ACTIONS.get(kind)
        if actions is None:
            logger.error(f"delete_entity: unknown entity kind '{kind}'")
            return False
        return await self._push(actions[1], {"id": entity_id})

    async def save_client(self, client: Dict[str, Any]) -> bool:
        return await self.save_entity(Constants.KIND_CLIENTS, client)

    async def save_session(self, session: Dict[str, Any]) -> bool:
        return await self.save_entity(Constants.KIND_SESSIONS, session)

    async def delete_client(self, client_id: str) -> bool:
        return await self.delete_entity(Constants.KIND_CLIENTS, client_id)

    async def delete_session(self, session_id: str) -> bool:
        return await self.delete_entity(Constants.KIND_SESSIONS, session_id)

    async def sync_all(self, data: Dict[str, Any]) -> bool:
        """Full overwrite of the remote store with ``{"clients": [...], "sessions": [...]}``."""
        return await self._push(SyncAction.SYNC_ALL, data)

#
# End of client.py
########################################################################################################################
