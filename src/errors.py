"""
Error taxonomy shared by the booking webhook handlers.

Each error class carries the HTTP status code the handlers translate it to.
"""


class BookingWebhookError(Exception):
    """Base exception for all handler-level errors."""

    status_code = 500


class ValidationError(BookingWebhookError):
    """Raised when a request is missing required fields or is malformed."""

    status_code = 400


class MethodNotAllowedError(BookingWebhookError):
    """Raised when a handler is invoked with the wrong HTTP verb."""

    status_code = 405

    def __init__(self, method: str = ""):
        super().__init__("Method Not Allowed")
        self.method = method


class UpstreamError(BookingWebhookError):
    """
    Raised when the datastore or the email API fails.

    The message is passed through to the caller; the webhook is an internal
    trusted endpoint.
    """

    status_code = 500
