"""
Booking domain models.

Represents the per-guardian booking group (all sessions booked for one
email + event type) and the canonical request built from a webhook payload.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.utils.timezone import parse_timestamp


@dataclass(frozen=True)
class SessionEntry:
    """
    One scheduled session.

    Attributes:
        start_time: Session start as received from the scheduling tool (ISO-8601)
        booked_at: When the booking was recorded (ISO-8601 UTC)
    """

    start_time: str
    booked_at: str

    @property
    def start_datetime(self) -> datetime:
        return parse_timestamp(self.start_time)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionEntry":
        return cls(
            start_time=str(data.get("start_time", "")),
            booked_at=str(data.get("booked_at", "")),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"start_time": self.start_time, "booked_at": self.booked_at}


@dataclass(frozen=True)
class PendingNotification:
    """
    Batch email recorded before delivery so a redelivered webhook can resend it.

    Attributes:
        block: Block number (count // 6) the email covers
        sessions: The six sessions listed in the email
        booking_id: Webhook booking id whose session completed the block
    """

    block: int
    sessions: List[SessionEntry]
    booking_id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingNotification":
        return cls(
            block=int(data.get("block", 0)),
            sessions=[SessionEntry.from_dict(item) for item in data.get("sessions", [])],
            booking_id=str(data.get("booking_id", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block": self.block,
            "sessions": [entry.to_dict() for entry in self.sessions],
            "booking_id": self.booking_id,
        }


@dataclass
class BookingGroup:
    """
    All session bookings for one guardian email and one event type.

    Attributes:
        email: Lower-cased attendee email (partition key)
        event_id: Scheduling-tool event type id (sort key)
        session_start_times: Sessions sorted ascending by start time
        booking_count: Cached length of session_start_times
        sent_email: True once any batch email was delivered
        version: Optimistic concurrency counter, bumped on every write
        notified_blocks: Block numbers (count // 6) whose email was delivered
        pending_notification: Batch email recorded but not yet delivered
    """

    email: str
    event_id: str
    session_start_times: List[SessionEntry] = field(default_factory=list)
    booking_count: int = 0
    sent_email: bool = False
    version: int = 0
    notified_blocks: List[int] = field(default_factory=list)
    pending_notification: Optional[PendingNotification] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookingGroup":
        """
        Create BookingGroup from a DynamoDB item.

        DynamoDB returns numbers as Decimal; they are converted to int here.
        """
        pending = data.get("pending_notification")
        return cls(
            email=data["email"],
            event_id=str(data["event_id"]),
            session_start_times=[
                SessionEntry.from_dict(item) for item in data.get("session_start_times") or []
            ],
            booking_count=int(data.get("booking_count", 0)),
            sent_email=bool(data.get("sent_email", False)),
            version=int(data.get("version", 0)),
            notified_blocks=[int(block) for block in data.get("notified_blocks") or []],
            pending_notification=PendingNotification.from_dict(pending) if pending else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert BookingGroup to a DynamoDB item (None values are dropped)."""
        item: Dict[str, Any] = {
            "email": self.email,
            "event_id": self.event_id,
            "session_start_times": [entry.to_dict() for entry in self.session_start_times],
            "booking_count": self.booking_count,
            "sent_email": self.sent_email,
            "version": self.version,
            "notified_blocks": list(self.notified_blocks),
        }
        if self.pending_notification is not None:
            item["pending_notification"] = self.pending_notification.to_dict()
        return item


@dataclass(frozen=True)
class BookingRequest:
    """Canonical booking extracted from a scheduling-tool webhook."""

    booking_id: str
    event_id: str
    start_time: str
    email: str
    name: str = "there"
    timezone: str = "UTC"
