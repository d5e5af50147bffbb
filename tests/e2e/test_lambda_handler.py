"""
End-to-end tests for the Lambda handlers.

Handlers run against moto DynamoDB tables with the email client replaced by
a recording stub, exercising parsing, aggregation and response shaping.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

import src.main
from src.main import (
    CORS_HEADERS,
    booking_confirmation_handler,
    booking_webhook_handler,
    lambda_handler,
    ping_handler,
)
from src.notifications.email_service import EmailServiceError


FIRST_SESSION = datetime(2024, 6, 1, 10, tzinfo=timezone.utc)


class MockContext:
    """Mock Lambda context for testing."""

    def __init__(self):
        self.function_name = "booking-webhook-test"
        self.aws_request_id = "test-request-id"
        self.invoked_function_arn = "arn:aws:lambda:test:test"


class EmailStub:
    def __init__(self):
        self.sent = []
        self.error = None

    def send_session_summary(self, to, name, session_times, template_key):
        if self.error:
            raise self.error
        self.sent.append({"to": to, "template": template_key, "session_times": session_times})


@pytest.fixture
def email_stub():
    return EmailStub()


@pytest.fixture
def handler_env(dynamodb, email_stub, monkeypatch):
    """Point the handlers at moto tables and the stub email client."""
    monkeypatch.delenv("BOOKING_GROUPS_TABLE", raising=False)
    monkeypatch.delenv("BOOKING_IDS_TABLE", raising=False)
    with patch.object(src.main, "dynamodb", dynamodb), patch(
        "src.main.ResendEmailClient", return_value=email_stub
    ):
        yield dynamodb


def webhook_event(week=0, booking_id=None, **attendee):
    start = FIRST_SESSION + timedelta(weeks=week)
    attendee = {"email": "Alice@X.com", "name": "Alice", "timeZone": "America/Toronto", **attendee}
    return {
        "httpMethod": "POST",
        "body": json.dumps(
            {
                "payload": {
                    "bookingId": booking_id or f"B{week + 1}",
                    "eventTypeId": 555,
                    "startTime": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
                    "attendees": [attendee],
                }
            }
        ),
    }


def confirmation_event(email="alice@x.com", event="555", method="GET"):
    return {
        "httpMethod": method,
        "queryStringParameters": {"email": email, "event": event},
    }


def body_of(response):
    return json.loads(response["body"])


class TestBookingWebhookHandler:
    def test_first_booking(self, handler_env):
        response = booking_webhook_handler(webhook_event(), MockContext())

        assert response["statusCode"] == 200
        assert response["headers"] == CORS_HEADERS
        assert body_of(response) == {"success": True, "bookingCount": 1}

    def test_lambda_handler_alias(self):
        assert lambda_handler is booking_webhook_handler

    def test_duplicate_booking(self, handler_env):
        booking_webhook_handler(webhook_event(), MockContext())

        response = booking_webhook_handler(webhook_event(), MockContext())

        assert response["statusCode"] == 200
        assert body_of(response) == {"success": True, "duplicateBooking": True}

    def test_sixth_booking_sends_email(self, handler_env, email_stub):
        for week in range(6):
            response = booking_webhook_handler(webhook_event(week), MockContext())

        assert body_of(response)["bookingCount"] == 6
        assert len(email_stub.sent) == 1
        assert email_stub.sent[0]["to"] == "alice@x.com"
        assert email_stub.sent[0]["template"] == "welcome"
        assert email_stub.sent[0]["session_times"][0] == "Jun 1, 2024, 6:00 AM"

    def test_missing_booking_info(self, handler_env):
        event = {"httpMethod": "POST", "body": json.dumps({"payload": {"bookingId": "B1"}})}

        response = booking_webhook_handler(event, MockContext())

        assert response["statusCode"] == 400
        assert body_of(response) == {"success": False, "error": "Missing required booking info"}

    def test_invalid_json(self, handler_env):
        response = booking_webhook_handler(
            {"httpMethod": "POST", "body": "{oops"}, MockContext()
        )

        assert response["statusCode"] == 400
        assert body_of(response)["success"] is False

    def test_wrong_method(self, handler_env):
        response = booking_webhook_handler({"httpMethod": "GET"}, MockContext())

        assert response["statusCode"] == 405
        assert body_of(response) == {"success": False, "error": "Method Not Allowed"}

    def test_email_failure_returns_500(self, handler_env, email_stub):
        email_stub.error = EmailServiceError("Resend API error: 500 - down")
        for week in range(5):
            booking_webhook_handler(webhook_event(week), MockContext())

        response = booking_webhook_handler(webhook_event(5), MockContext())

        assert response["statusCode"] == 500
        assert body_of(response)["success"] is False
        assert "Resend API error" in body_of(response)["error"]

    def test_redelivery_after_email_failure_resends(self, handler_env, email_stub):
        for week in range(5):
            booking_webhook_handler(webhook_event(week), MockContext())
        email_stub.error = EmailServiceError("Resend API error: 500 - down")
        booking_webhook_handler(webhook_event(5), MockContext())
        email_stub.error = None

        response = booking_webhook_handler(webhook_event(5), MockContext())

        assert body_of(response) == {"success": True, "duplicateBooking": True}
        assert [email["template"] for email in email_stub.sent] == ["welcome"]

    def test_replay_of_earlier_booking_during_email_outage(self, handler_env, email_stub):
        for week in range(5):
            booking_webhook_handler(webhook_event(week), MockContext())
        email_stub.error = EmailServiceError("Resend API error: 500 - down")
        booking_webhook_handler(webhook_event(5), MockContext())

        response = booking_webhook_handler(webhook_event(0), MockContext())

        assert response["statusCode"] == 200
        assert body_of(response) == {"success": True, "duplicateBooking": True}

    def test_storage_failure_returns_500(self, handler_env, monkeypatch):
        monkeypatch.setenv("BOOKING_IDS_TABLE", "missing_table")

        response = booking_webhook_handler(webhook_event(), MockContext())

        assert response["statusCode"] == 500
        assert body_of(response)["success"] is False


class TestBookingConfirmationHandler:
    def test_returns_last_six(self, handler_env):
        for week in range(8):
            booking_webhook_handler(webhook_event(week), MockContext())

        response = booking_confirmation_handler(confirmation_event(), MockContext())

        assert response["statusCode"] == 200
        last6 = body_of(response)["last6"]
        assert len(last6) == 6
        assert last6[0]["start_time"] == "2024-06-15T10:00:00Z"
        assert last6[-1]["start_time"] == "2024-07-20T10:00:00Z"
        assert set(last6[0]) == {"start_time", "booked_at"}

    def test_unknown_group_returns_empty_list(self, handler_env):
        response = booking_confirmation_handler(
            confirmation_event(email="nobody@x.com"), MockContext()
        )

        assert response["statusCode"] == 200
        assert body_of(response) == {"last6": []}

    def test_email_is_case_insensitive(self, handler_env):
        booking_webhook_handler(webhook_event(), MockContext())

        response = booking_confirmation_handler(
            confirmation_event(email="ALICE@x.com"), MockContext()
        )

        assert len(body_of(response)["last6"]) == 1

    def test_missing_params(self, handler_env):
        event = {"httpMethod": "GET", "queryStringParameters": {"email": "alice@x.com"}}

        response = booking_confirmation_handler(event, MockContext())

        assert response["statusCode"] == 400
        assert body_of(response) == {"error": "Missing email or event id"}

    def test_wrong_method(self, handler_env):
        response = booking_confirmation_handler(
            confirmation_event(method="POST"), MockContext()
        )

        assert response["statusCode"] == 405

    def test_storage_failure_returns_500(self, handler_env, monkeypatch):
        monkeypatch.setenv("BOOKING_GROUPS_TABLE", "missing_table")

        response = booking_confirmation_handler(confirmation_event(), MockContext())

        assert response["statusCode"] == 500
        assert "error" in body_of(response)


class TestPingHandler:
    def test_ping_success(self, handler_env):
        response = ping_handler({}, MockContext())

        assert response["statusCode"] == 200
        assert body_of(response) == {
            "success": True,
            "message": "Datastore pinged successfully",
        }

    def test_ping_failure(self, handler_env, monkeypatch):
        monkeypatch.setenv("BOOKING_GROUPS_TABLE", "missing_table")

        response = ping_handler({}, MockContext())

        assert response["statusCode"] == 500
        assert body_of(response)["success"] is False
