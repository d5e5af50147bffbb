"""
Request parsing for the booking webhook and confirmation endpoints.

API Gateway proxy events are normalized here into BookingRequest (or the
email/event pair for the confirmation query) before anything touches the
datastore. The scheduling tool sends the booking either wrapped in a
"payload" key or flattened at the top level, with camelCase or snake_case
field names.
"""

import base64
import binascii
import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import jsonschema

from src.domain.booking import BookingRequest
from src.errors import MethodNotAllowedError, ValidationError
from src.utils.timezone import parse_timestamp

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "config" / "booking_request.schema.json"

MISSING_BOOKING_INFO = "Missing required booking info"
MISSING_QUERY_PARAMS = "Missing email or event id"


@lru_cache(maxsize=1)
def load_request_schema() -> Dict[str, Any]:
    with SCHEMA_PATH.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _first_present(source: Dict[str, Any], *keys: str) -> Any:
    """Return the first truthy value among keys."""
    for key in keys:
        value = source.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_text(value: Any) -> Optional[str]:
    # Scheduling tools send numeric ids; bools are never valid ids
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    if isinstance(value, str):
        return value.strip()
    return None


def _decode_body(event: Dict[str, Any]) -> Dict[str, Any]:
    raw = event.get("body") or ""
    if event.get("isBase64Encoded") and raw:
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValidationError("Invalid JSON") from e

    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValidationError("Invalid JSON") from e

    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON")
    return data


def parse_booking_event(event: Dict[str, Any]) -> BookingRequest:
    """
    Build a BookingRequest from a webhook POST event.

    Raises:
        MethodNotAllowedError: If the request is not a POST
        ValidationError: If the body is not JSON or required fields are missing
    """
    method = (event.get("httpMethod") or "").upper()
    if method != "POST":
        raise MethodNotAllowedError(method)

    data = _decode_body(event)
    payload = data.get("payload") if isinstance(data.get("payload"), dict) else data

    attendees = payload.get("attendees")
    attendee = attendees[0] if isinstance(attendees, list) and attendees else None
    if not isinstance(attendee, dict):
        attendee = {}

    email = _as_text(attendee.get("email"))
    candidate = {
        "booking_id": _as_text(_first_present(payload, "bookingId", "id")),
        "event_id": _as_text(_first_present(payload, "eventTypeId", "event_type_id")),
        "start_time": _as_text(_first_present(payload, "startTime", "start_time")),
        "email": email.lower() if email else None,
        "name": _as_text(attendee.get("name")) or "there",
        "timezone": _as_text(_first_present(attendee, "timeZone", "timezone")) or "UTC",
    }

    try:
        jsonschema.validate(instance=candidate, schema=load_request_schema())
    except jsonschema.ValidationError as e:
        if e.validator in ("required", "type", "minLength"):
            raise ValidationError(MISSING_BOOKING_INFO) from e
        raise ValidationError(f"Invalid booking info: {e.message}") from e

    try:
        parse_timestamp(candidate["start_time"])
    except ValueError as e:
        raise ValidationError(f"Invalid start time: {candidate['start_time']}") from e

    return BookingRequest(**candidate)


def parse_confirmation_query(event: Dict[str, Any]) -> Tuple[str, str]:
    """
    Extract (email, event_id) from a confirmation GET event.

    Raises:
        MethodNotAllowedError: If the request is not a GET
        ValidationError: If email or event id is missing
    """
    method = (event.get("httpMethod") or "").upper()
    if method != "GET":
        raise MethodNotAllowedError(method)

    params = event.get("queryStringParameters") or {}
    email = (_as_text(params.get("email")) or "").lower()
    event_id = _as_text(_first_present(params, "event", "event_id", "eventTypeId")) or ""

    if not email or not event_id:
        raise ValidationError(MISSING_QUERY_PARAMS)

    return email, event_id
