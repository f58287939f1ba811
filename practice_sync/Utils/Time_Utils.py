# Time_Utils.py
# Description: ISO-8601 timestamp helpers used for conflict resolution
#
# Imports
from datetime import datetime, timezone
from typing import Any
#
#######################################################################################################################
#
# Functions:

def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision and a 'Z' suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def parse_timestamp(value: Any) -> float:
    """
    Converts an ``updatedAt``-style value into seconds since the epoch.

    Missing, empty or unparseable values map to 0.0 so they always compare as
    the oldest possible version. Naive timestamps are read as UTC.
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        # Numeric values are epoch milliseconds
        return float(value) / 1000.0
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.timestamp()
    except (OverflowError, OSError, ValueError):
        return 0.0


def is_newer(candidate: Any, reference: Any) -> bool:
    """True iff ``candidate`` is strictly newer than ``reference``."""
    return parse_timestamp(candidate) > parse_timestamp(reference)

#
# End of Time_Utils.py
#######################################################################################################################
