"""
Lambda Handlers - HTTP entry points for session booking aggregation

booking_webhook_handler records sessions posted by the scheduling tool,
booking_confirmation_handler serves the latest six sessions to the
confirmation page, and ping_handler checks the datastore is reachable.
"""

import json
import logging
import time
from typing import Any, Dict, Optional

import boto3

from src.api.webhook import parse_booking_event, parse_confirmation_query
from src.config.settings import Settings, setup_logging_redaction
from src.database.dynamodb_client import BookingGroupRepository, BookingIdRepository
from src.errors import MethodNotAllowedError, ValidationError
from src.notifications.email_service import ResendEmailClient
from src.services.batch_notifier import BatchNotifier
from src.services.confirmation import get_recent_sessions
from src.services.session_aggregator import SessionAggregator
from src.utils.logger import get_logger, mask_email

logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Content-Type": "application/json",
}

# AWS resources (initialized on cold start)
dynamodb = boto3.resource("dynamodb", region_name=Settings().region_name)


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": dict(CORS_HEADERS),
        "body": json.dumps(body),
    }


def _request_context(context) -> Dict[str, str]:
    return {
        "aws_request_id": getattr(context, "aws_request_id", "local") if context else "local",
        "function_name": getattr(context, "function_name", "local") if context else "local",
    }


def build_aggregator(settings: Settings, email_client: Optional[ResendEmailClient] = None) -> SessionAggregator:
    """Wire repositories, email client and notifier for one invocation."""
    group_repo = BookingGroupRepository(
        table_name=settings.booking_groups_table, dynamodb_resource=dynamodb
    )
    booking_id_repo = BookingIdRepository(
        table_name=settings.booking_ids_table, dynamodb_resource=dynamodb
    )
    notifier = BatchNotifier(
        email_client=email_client or ResendEmailClient(settings=settings, logger=logger),
        group_repo=group_repo,
        logger=logger,
    )
    return SessionAggregator(group_repo, booking_id_repo, notifier, logger=logger)


def booking_webhook_handler(event, context):
    """
    Record a booked session from a scheduling-tool webhook.

    Returns:
        200 {success, bookingCount} or {success, duplicateBooking},
        400/405/500 {success: false, error}
    """
    start = time.time()
    setup_logging_redaction()

    try:
        request = parse_booking_event(event or {})
    except (ValidationError, MethodNotAllowedError) as e:
        logger.warning(
            "Rejected booking webhook",
            operation="booking_webhook",
            context={**_request_context(context), "status_code": e.status_code},
            error=str(e),
        )
        return _response(e.status_code, {"success": False, "error": str(e)})

    try:
        settings = Settings()
        result = build_aggregator(settings).record_booking(request)
    except Exception as e:
        logger.error(
            "Booking webhook failed",
            operation="booking_webhook",
            context={
                **_request_context(context),
                "booking_id": request.booking_id,
                "error_type": type(e).__name__,
            },
            error=str(e),
            duration_ms=(time.time() - start) * 1000,
        )
        return _response(500, {"success": False, "error": str(e)})

    logger.info(
        "Booking webhook processed",
        operation="booking_webhook",
        context={
            **_request_context(context),
            "booking_id": request.booking_id,
            "email_masked": mask_email(request.email),
            "duplicate": result.duplicate,
            "notified": result.notified,
        },
        duration_ms=(time.time() - start) * 1000,
    )

    if result.duplicate:
        return _response(200, {"success": True, "duplicateBooking": True})
    return _response(200, {"success": True, "bookingCount": result.booking_count})


def booking_confirmation_handler(event, context):
    """
    Return the latest six sessions for an email and event.

    Returns:
        200 {last6}, 400/405/500 {error}
    """
    setup_logging_redaction()

    try:
        email, event_id = parse_confirmation_query(event or {})
    except (ValidationError, MethodNotAllowedError) as e:
        return _response(e.status_code, {"error": str(e)})

    try:
        settings = Settings()
        repo = BookingGroupRepository(
            table_name=settings.booking_groups_table, dynamodb_resource=dynamodb
        )
        sessions = get_recent_sessions(repo, email, event_id)
    except Exception as e:
        logger.error(
            "Booking confirmation lookup failed",
            operation="booking_confirmation",
            context={**_request_context(context), "event_id": event_id},
            error=str(e),
        )
        return _response(500, {"error": str(e)})

    return _response(200, {"last6": [entry.to_dict() for entry in sessions]})


def ping_handler(event, context):
    """Confirm the booking groups table answers a one-item read."""
    setup_logging_redaction()
    settings = Settings()

    try:
        repo = BookingGroupRepository(
            table_name=settings.booking_groups_table, dynamodb_resource=dynamodb
        )
        repo.ping()
    except Exception as e:
        logger.error("Datastore ping failed", operation="ping", error=str(e))
        return _response(500, {"success": False, "error": f"Failed to ping datastore: {e}"})

    return _response(200, {"success": True, "message": "Datastore pinged successfully"})


lambda_handler = booking_webhook_handler


if __name__ == "__main__":
    """
    Local testing entry point.

    Simulates a webhook delivery with a mock Lambda context.
    """

    class MockContext:
        def __init__(self):
            self.function_name = "booking-webhook"
            self.aws_request_id = "local-test"
            self.invoked_function_arn = "arn:aws:lambda:local:local"

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    sample_event = {
        "httpMethod": "POST",
        "body": json.dumps(
            {
                "payload": {
                    "bookingId": "local-1",
                    "eventTypeId": 1,
                    "startTime": "2024-06-01T10:00:00Z",
                    "attendees": [{"email": "guardian@example.com", "name": "Local"}],
                }
            }
        ),
    }
    result = lambda_handler(sample_event, MockContext())
    print(json.dumps(result, indent=2))
