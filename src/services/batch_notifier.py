"""
Batch confirmation email delivery.

The trigger decision itself lives in src.domain.aggregation; this module
turns a pending notification into an email and records its delivery.
"""

from typing import Optional, Sequence

from src.database.dynamodb_client import BookingGroupRepository
from src.domain.aggregation import block_number, last_six, sort_sessions, template_for_block
from src.domain.booking import PendingNotification, SessionEntry
from src.notifications.email_service import ResendEmailClient
from src.utils.logger import get_logger, mask_email, StructuredLogger
from src.utils.timezone import format_session_time


class BatchNotifier:
    """Sends the six-session summary email for a completed block."""

    def __init__(
        self,
        email_client: ResendEmailClient,
        group_repo: BookingGroupRepository,
        logger: Optional[StructuredLogger] = None,
    ):
        self.email_client = email_client
        self.group_repo = group_repo
        self.logger = logger or get_logger(__name__)

    @staticmethod
    def build_pending(
        sorted_entries: Sequence[SessionEntry], booking_id: str
    ) -> PendingNotification:
        """Snapshot the latest six sessions for the block booking_id just completed."""
        return PendingNotification(
            block=block_number(len(sorted_entries)),
            sessions=last_six(sorted_entries),
            booking_id=booking_id,
        )

    def deliver(
        self,
        email: str,
        event_id: str,
        pending: PendingNotification,
        name: str,
        timezone_name: str,
    ) -> None:
        """
        Email the pending block and mark it delivered.

        The template follows the persisted block number, so a resend after a
        failure uses the same template as the first attempt.

        Raises:
            EmailServiceError: If the email API call fails; the pending marker stays
        """
        template_key = template_for_block(pending.block)
        session_times = [
            format_session_time(entry.start_time, timezone_name)
            for entry in sort_sessions(pending.sessions)
        ]

        self.logger.info(
            "Sending batch confirmation",
            operation="deliver_batch",
            context={
                "email_masked": mask_email(email),
                "event_id": event_id,
                "block": pending.block,
                "template": template_key,
            },
        )

        self.email_client.send_session_summary(
            to=email,
            name=name,
            session_times=session_times,
            template_key=template_key,
        )
        self.group_repo.complete_notification(email, event_id, pending.block)
