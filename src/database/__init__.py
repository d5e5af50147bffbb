"""Database module - DynamoDB repository pattern implementation."""

from .dynamodb_client import BookingGroupRepository, BookingIdRepository
from .exceptions import (
    DynamoDBException,
    ThrottlingError,
    NetworkError,
    PermissionError,
    ConflictError,
)

__all__ = [
    "BookingGroupRepository",
    "BookingIdRepository",
    "DynamoDBException",
    "ThrottlingError",
    "NetworkError",
    "PermissionError",
    "ConflictError",
]
