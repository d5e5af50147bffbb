"""Domain models - core business entities."""

from .booking import BookingGroup, BookingRequest, PendingNotification, SessionEntry

__all__ = ["BookingGroup", "BookingRequest", "PendingNotification", "SessionEntry"]
