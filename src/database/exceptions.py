"""
Custom exception hierarchy for DynamoDB operations.

This module defines domain-specific exceptions used by the database module
to handle various failure scenarios in a granular, testable way.
"""

from src.errors import UpstreamError


class DynamoDBException(UpstreamError):
    """
    Base exception for all DynamoDB-related errors.

    Handlers report these as HTTP 500 with the message passed through.
    """

    pass


class ThrottlingError(DynamoDBException):
    """
    Raised when DynamoDB returns throttling errors after retry exhaustion.

    This indicates the table is overloaded and requests are being throttled.
    """

    pass


class NetworkError(DynamoDBException):
    """
    Raised when network-level failures occur (connection timeout, DNS failure, etc.).

    This is unrecoverable at the repository level and indicates infrastructure issues.
    """

    pass


class PermissionError(DynamoDBException):
    """
    Raised when IAM permissions are insufficient for the operation.

    Indicates a configuration/security issue that must be fixed by an administrator.
    """

    pass


class ConflictError(DynamoDBException):
    """
    Raised when a conditional write loses to a concurrent writer.

    The booking group was changed between read and write; callers re-read
    and merge again.
    """

    pass
