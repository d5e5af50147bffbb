"""
Session aggregation workflow for the booking webhook.

Records one booked session into its booking group:
1. Claim the webhook booking id (duplicate deliveries stop here)
2. Read the group, merge the session, re-sort and count
3. Write the group back, conditioned on the version that was read
4. Send the batch email when a block of six was just completed
"""

from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

from src.database.dynamodb_client import BookingGroupRepository, BookingIdRepository
from src.database.exceptions import ConflictError
from src.domain.aggregation import merge_session, should_notify
from src.domain.booking import BookingGroup, BookingRequest, SessionEntry
from src.services.batch_notifier import BatchNotifier
from src.utils.logger import get_logger, mask_email, StructuredLogger
from src.utils.timezone import utc_now_iso


@dataclass(frozen=True)
class AggregationResult:
    """Outcome of recording one webhook delivery."""

    booking_count: Optional[int]
    duplicate: bool = False
    notified: bool = False


class SessionAggregator:
    """
    Merges booked sessions into booking groups and triggers batch emails.

    Each call is independent; the only shared state is the datastore.
    """

    def __init__(
        self,
        group_repo: BookingGroupRepository,
        booking_id_repo: BookingIdRepository,
        notifier: BatchNotifier,
        clock: Callable[[], str] = utc_now_iso,
        max_conflict_retries: int = 3,
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Args:
            group_repo: Booking group persistence
            booking_id_repo: Processed booking id persistence
            notifier: Batch email sender
            clock: Returns the booked_at timestamp for new sessions
            max_conflict_retries: Attempts when a concurrent writer wins the group write
            logger: Optional structured logger instance
        """
        self.group_repo = group_repo
        self.booking_id_repo = booking_id_repo
        self.notifier = notifier
        self.clock = clock
        self.max_conflict_retries = max_conflict_retries
        self.logger = logger or get_logger(__name__)

    def record_booking(self, request: BookingRequest) -> AggregationResult:
        """
        Record request's session and send the batch email when due.

        Raises:
            DynamoDBException: On any storage failure (including exhausted conflicts)
            EmailServiceError: If the batch email could not be sent
        """
        context = {
            "booking_id": request.booking_id,
            "event_id": request.event_id,
            "email_masked": mask_email(request.email),
        }

        if not self.booking_id_repo.claim(request.booking_id, request.email):
            self.logger.info(
                "Duplicate booking webhook ignored",
                operation="record_booking",
                context=context,
            )
            resent = self._resume_pending(request)
            return AggregationResult(booking_count=None, duplicate=True, notified=resent)

        entry = SessionEntry(start_time=request.start_time, booked_at=self.clock())
        group, notify = self._merge_and_save(request, entry)

        self.logger.info(
            "Booking group updated",
            operation="record_booking",
            context={**context, "booking_count": group.booking_count, "notify": notify},
        )

        if notify and group.pending_notification is not None:
            self.notifier.deliver(
                request.email,
                request.event_id,
                group.pending_notification,
                request.name,
                request.timezone,
            )

        return AggregationResult(booking_count=group.booking_count, notified=notify)

    def _merge_and_save(
        self, request: BookingRequest, entry: SessionEntry
    ) -> Tuple[BookingGroup, bool]:
        for attempt in range(1, self.max_conflict_retries + 1):
            existing = self.group_repo.get_group(request.email, request.event_id)
            current = existing.session_start_times if existing else []

            merged, added = merge_session(current, entry)
            notify = should_notify(merged, entry, added)

            if existing is None:
                group = BookingGroup(
                    email=request.email,
                    event_id=request.event_id,
                    session_start_times=merged,
                    booking_count=len(merged),
                    sent_email=False,
                )
            else:
                group = replace(existing, session_start_times=merged, booking_count=len(merged))

            if notify:
                if group.pending_notification is not None:
                    self.logger.warning(
                        "Replacing undelivered batch notification",
                        operation="record_booking",
                        context={
                            "event_id": request.event_id,
                            "block": group.pending_notification.block,
                        },
                    )
                pending = self.notifier.build_pending(merged, request.booking_id)
                group = replace(group, pending_notification=pending)

            try:
                saved = self.group_repo.save_group(
                    group, expected_version=existing.version if existing else None
                )
                return saved, notify
            except ConflictError:
                if attempt >= self.max_conflict_retries:
                    raise
                self.logger.warning(
                    "Booking group changed concurrently; merging again",
                    operation="record_booking",
                    context={"event_id": request.event_id, "attempt": attempt},
                )

        raise ConflictError("Booking group write conflict")  # pragma: no cover

    def _resume_pending(self, request: BookingRequest) -> bool:
        """
        Resend a batch email whose earlier delivery failed.

        Only a redelivery of the booking that completed the block resends;
        replays of any other booking id leave the marker alone.
        """
        group = self.group_repo.get_group(request.email, request.event_id)
        if group is None or group.pending_notification is None:
            return False
        if group.pending_notification.booking_id != request.booking_id:
            return False

        self.logger.info(
            "Resending undelivered batch notification",
            operation="record_booking",
            context={
                "booking_id": request.booking_id,
                "event_id": request.event_id,
                "block": group.pending_notification.block,
            },
        )
        self.notifier.deliver(
            request.email,
            request.event_id,
            group.pending_notification,
            request.name,
            request.timezone,
        )
        return True
