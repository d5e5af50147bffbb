"""Read side for the booking confirmation page."""

from typing import List

from src.database.dynamodb_client import BookingGroupRepository
from src.domain.aggregation import last_six, sort_sessions
from src.domain.booking import SessionEntry


def get_recent_sessions(
    repo: BookingGroupRepository, email: str, event_id: str
) -> List[SessionEntry]:
    """Return the latest six sessions ascending, or [] when nothing is booked."""
    group = repo.get_group(email, event_id)
    if group is None:
        return []
    return last_six(sort_sessions(group.session_start_times))
