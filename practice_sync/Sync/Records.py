# Records.py
# Description: Creation and update helpers for client and session records
#
# Imports
import uuid
from typing import Any, Dict
#
# Third-Party Imports
from pydantic import ValidationError
#
# Local Imports
from practice_sync import Constants
from practice_sync.sheets_api.schemas import ClientRecord, SessionRecord
from practice_sync.Utils.Time_Utils import utc_now_iso
#
#######################################################################################################################
#
# Functions:

class InputError(ValueError):
    """Raised when a record is created or updated with invalid field values."""
    pass


# Fields a caller may never overwrite through update_record
_IMMUTABLE_FIELDS = ("id", "createdAt")


def generate_id() -> str:
    return uuid.uuid4().hex


def _positive_number(value: Any, field: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InputError(f"'{field}' must be a number, got {value!r}")
    if number <= 0:
        raise InputError(f"'{field}' must be greater than zero")
    return number


def new_client(name: str, rate: Any, currency: str = Constants.DEFAULT_CURRENCY, notes: str = "") -> Dict[str, Any]:
    """
    Builds a new client record with a fresh id and matching createdAt/updatedAt.

    Raises:
        InputError: if the name is blank or the rate is not a positive number.
    """
    name = (name or "").strip()
    if not name:
        raise InputError("Client name is required")
    rate = _positive_number(rate, "rate")
    if currency not in Constants.SUPPORTED_CURRENCIES:
        raise InputError(f"Unsupported currency '{currency}'")

    now = utc_now_iso()
    try:
        record = ClientRecord(id=generate_id(), name=name, rate=rate, currency=currency,
                              notes=(notes or "").strip(), created_at=now, updated_at=now)
    except ValidationError as e:
        raise InputError(str(e)) from e
    return record.to_wire()


def new_session(client_id: str, date: str, amount: Any, paid: bool = False, notes: str = "") -> Dict[str, Any]:
    """
    Builds a new session record for ``client_id``.

    Raises:
        InputError: if the client id or date is missing, or the amount is not positive.
    """
    if not client_id:
        raise InputError("A session needs a client")
    if not date:
        raise InputError("A session needs a date")
    amount = _positive_number(amount, "amount")

    now = utc_now_iso()
    try:
        record = SessionRecord(id=generate_id(), client_id=client_id, date=date, amount=amount,
                               paid=bool(paid), notes=(notes or "").strip(), created_at=now, updated_at=now)
    except ValidationError as e:
        raise InputError(str(e)) from e
    return record.to_wire()


def update_record(existing: Dict[str, Any], **changes: Any) -> Dict[str, Any]:
    """Returns a copy of ``existing`` with ``changes`` applied and a fresh updatedAt."""
    blocked = [field for field in _IMMUTABLE_FIELDS if field in changes]
    if blocked:
        raise InputError(f"Cannot change {', '.join(blocked)}")
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise InputError("Client name is required")
    if "currency" in changes and changes["currency"] not in Constants.SUPPORTED_CURRENCIES:
        raise InputError(f"Unsupported currency '{changes['currency']}'")
    if "rate" in changes:
        changes["rate"] = _positive_number(changes["rate"], "rate")
    if "amount" in changes:
        changes["amount"] = _positive_number(changes["amount"], "amount")
    if "notes" in changes:
        changes["notes"] = (changes["notes"] or "").strip()

    updated = dict(existing)
    updated.update(changes)
    updated["updatedAt"] = utc_now_iso()
    return updated

#
# End of Records.py
#######################################################################################################################
