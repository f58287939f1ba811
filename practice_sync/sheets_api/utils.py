# practice_sync/sheets_api/utils.py
#
#
# Imports
import json
from typing import Any, Dict, Optional
from urllib.parse import urlencode
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
from practice_sync import Constants
#
#######################################################################################################################
#
# Functions:

def encode_payload(data: Dict[str, Any]) -> str:
    """Compact JSON for the ``data`` query parameter (no whitespace, non-ASCII kept as-is)."""
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def build_request_url(script_url: str, action: str, data: Optional[Dict[str, Any]] = None) -> str:
    """
    Builds the full GET URL for an action. The payload is JSON-encoded and then
    form-encoded into the query string, so its length is what counts against the
    transport budget.
    """
    params = {"action": action}
    if data is not None:
        params["data"] = encode_payload(data)
    separator = "&" if "?" in script_url else "?"
    return f"{script_url}{separator}{urlencode(params)}"


def truncate_notes(data: Dict[str, Any],
                   limit: int = Constants.NOTES_SOFT_LIMIT,
                   marker: str = Constants.TRUNCATION_MARKER) -> Dict[str, Any]:
    """
    Returns a shallow copy of ``data`` whose ``notes`` is at most ``limit`` characters,
    followed by ``marker`` when something was cut. The input is never modified.
    """
    truncated = dict(data)
    notes = truncated.get("notes")
    if isinstance(notes, str) and len(notes) > limit:
        truncated["notes"] = notes[:limit] + marker
        logger.warning(f"Notes truncated from {len(notes)} to {limit} chars for URL length limit")
    return truncated


def hard_truncate_notes(data: Dict[str, Any], limit: int = Constants.NOTES_HARD_LIMIT) -> Dict[str, Any]:
    """Second-stage cut: ``notes`` clipped to ``limit`` with no marker. No-op if there is no notes field."""
    truncated = dict(data)
    if "notes" in truncated:
        notes = truncated["notes"]
        truncated["notes"] = notes[:limit] if isinstance(notes, str) and notes else ""
    return truncated

#
# End of utils.py
#######################################################################################################################
