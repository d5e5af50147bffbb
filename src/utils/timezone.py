"""
Timezone utilities for the booking webhooks.

Session start times arrive from the scheduling tool as ISO-8601 UTC strings.
These helpers parse them consistently and render them in the attendee's own
time zone for confirmation emails.
"""

from datetime import datetime, timezone

import pytz

from src.utils.logger import get_logger

logger = get_logger(__name__)


def utc_now_iso() -> str:
    """
    Return the current UTC time as an ISO-8601 string with millisecond precision.

    Example:
        "2024-06-01T10:00:00.123Z"
    """
    current = datetime.now(timezone.utc)
    return current.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into a timezone-aware UTC datetime.

    A trailing "Z" is accepted, and naive values are treated as UTC.

    Raises:
        ValueError: If the value is empty or not ISO-8601.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")

    text = value.strip()
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def resolve_timezone(name: str):
    """Return the pytz zone for name, falling back to UTC for unknown zones."""
    try:
        return pytz.timezone(name or "UTC")
    except pytz.UnknownTimeZoneError:
        logger.warning(
            "Unknown attendee time zone; using UTC",
            operation="resolve_timezone",
            context={"timezone": name},
        )
        return pytz.UTC


MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def format_session_time(start_time: str, timezone_name: str) -> str:
    """
    Format a UTC session start time as a medium date-time in the given zone.

    Month names and AM/PM are fixed English, whatever the process locale.

    Example:
        >>> format_session_time("2024-06-01T10:00:00Z", "America/Toronto")
        "Jun 1, 2024, 6:00 AM"
    """
    local = parse_timestamp(start_time).astimezone(resolve_timezone(timezone_name))
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    month = MONTH_ABBREVIATIONS[local.month - 1]
    return f"{month} {local.day}, {local.year}, {hour}:{local.minute:02d} {meridiem}"
