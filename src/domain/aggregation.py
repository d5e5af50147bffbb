"""
Session aggregation rules.

Pure functions that merge a new session into a booking group's list and
decide when a batch confirmation email is due. Sessions are sold in blocks
of six (one per week for six weeks); the guardian gets one email per
completed block, sent when the block's last session is booked.
"""

from typing import List, Sequence, Tuple

from src.domain.booking import SessionEntry

BATCH_SIZE = 6

WELCOME_TEMPLATE = "welcome"
CONFIRMATION_TEMPLATE = "confirmation"


def sort_sessions(entries: Sequence[SessionEntry]) -> List[SessionEntry]:
    """Return entries sorted ascending by parsed start time (stable)."""
    return sorted(entries, key=lambda entry: entry.start_datetime)


def merge_session(
    entries: Sequence[SessionEntry], entry: SessionEntry
) -> Tuple[List[SessionEntry], bool]:
    """
    Merge entry into entries and re-sort.

    The entry is appended only when no existing entry has the same
    start_time string. Equivalent instants written differently are not
    considered duplicates.

    Returns:
        Tuple of (sorted entries, whether entry was added)
    """
    merged = list(entries)
    added = not any(existing.start_time == entry.start_time for existing in merged)
    if added:
        merged.append(entry)
    return sort_sessions(merged), added


def last_six(entries: Sequence[SessionEntry]) -> List[SessionEntry]:
    """Return the latest BATCH_SIZE sessions of an ascending list."""
    return list(entries[-BATCH_SIZE:])


def block_number(booking_count: int) -> int:
    return booking_count // BATCH_SIZE


def should_notify(
    sorted_entries: Sequence[SessionEntry], entry: SessionEntry, added: bool
) -> bool:
    """
    Decide whether a batch email is due after merging entry.

    Fires only when the entry was actually added, it is the chronologically
    last session of the latest six, and the total count is a multiple of six.
    """
    if not added or not sorted_entries:
        return False

    if len(sorted_entries) % BATCH_SIZE != 0:
        return False

    return last_six(sorted_entries)[-1].start_time == entry.start_time


def template_for_block(block: int) -> str:
    """The first block gets the welcome email, later blocks a confirmation."""
    return WELCOME_TEMPLATE if block == 1 else CONFIRMATION_TEMPLATE
