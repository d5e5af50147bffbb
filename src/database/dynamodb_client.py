"""
DynamoDB repository implementations for booking groups and booking ids.

This module provides a clean abstraction over DynamoDB operations with
dependency injection for testability and structured logging.
"""

import time
from dataclasses import replace
from typing import Any, Callable, Dict, Optional, Tuple

import boto3
from botocore.exceptions import ClientError, BotoCoreError

from src.domain.booking import BookingGroup
from src.utils.logger import get_logger, mask_email
from src.utils.timezone import utc_now_iso
from .exceptions import (
    ConflictError,
    DynamoDBException,
    ThrottlingError,
    NetworkError,
    PermissionError,
)


logger = get_logger(__name__)

THROTTLING_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
}


class _DynamoRepository:
    """Shared retry and exception translation for single-table repositories."""

    def __init__(
        self,
        table_name: str,
        dynamodb_resource: Optional[Any] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        """
        Args:
            table_name: DynamoDB table name
            dynamodb_resource: boto3 DynamoDB resource (default: creates new)
            max_retries: Number of attempts for throttled requests
            backoff_base: Base exponential backoff multiplier (seconds)
        """
        self.table_name = table_name
        self.dynamodb = dynamodb_resource or boto3.resource("dynamodb")
        self.table = self.dynamodb.Table(table_name)
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    def _execute(  # type: ignore[return]
        self,
        operation: str,
        context: Dict[str, Any],
        call: Callable[[], Any],
    ) -> Tuple[Any, float]:
        """
        Run a table call, retrying only on throttling.

        A throttled request was never applied, so retrying it keeps the
        write effect at most once.

        Returns:
            Tuple of (call result, duration in milliseconds)

        Raises:
            ConflictError: If a condition expression failed
            ThrottlingError: If throttled after max retries
            PermissionError: If IAM permissions insufficient
            NetworkError: If connection fails
            DynamoDBException: For any other DynamoDB error
        """
        for attempt in range(self.max_retries):
            try:
                start_time = time.time()
                result = call()
                return result, (time.time() - start_time) * 1000

            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")

                if error_code == "ConditionalCheckFailedException":
                    logger.debug(
                        "Conditional write rejected",
                        operation=operation,
                        context=context,
                    )
                    raise ConflictError(
                        f"Conditional write failed on {self.table_name}"
                    ) from e

                elif error_code in THROTTLING_CODES:
                    if attempt < self.max_retries - 1:
                        wait_time = self.backoff_base * (2**attempt)
                        logger.warning(
                            f"Throttled, retrying after {wait_time}s",
                            operation=operation,
                            context=context,
                            error=error_code,
                        )
                        time.sleep(wait_time)
                        continue
                    else:
                        logger.error(
                            "Throttling after max retries",
                            operation=operation,
                            context=context,
                            error=error_code,
                        )
                        raise ThrottlingError(
                            f"DynamoDB throttled after {self.max_retries} retries"
                        ) from e

                elif error_code == "AccessDeniedException":
                    logger.error(
                        "Permission denied",
                        operation=operation,
                        context=context,
                        error=error_code,
                    )
                    raise PermissionError(f"Insufficient IAM permissions: {error_code}") from e

                else:
                    logger.error(
                        "DynamoDB error",
                        operation=operation,
                        context=context,
                        error=str(e),
                    )
                    raise DynamoDBException(f"DynamoDB error: {e}") from e

            except (BotoCoreError, OSError) as e:
                logger.error(
                    "Network error",
                    operation=operation,
                    context=context,
                    error=str(e),
                )
                raise NetworkError(f"Network error: {e}") from e


class BookingGroupRepository(_DynamoRepository):
    """
    Repository for booking groups in DynamoDB.

    Writes are optimistic: every put is conditioned on the version that was
    read, so two concurrent merges for the same group cannot silently drop
    each other's session.

    Table Schema:
        Partition Key: email (lower-cased, e.g. "alice@example.com")
        Sort Key: event_id (e.g. "1234567")
    """

    def __init__(
        self,
        table_name: str = "booking_groups",
        dynamodb_resource: Optional[Any] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        super().__init__(table_name, dynamodb_resource, max_retries, backoff_base)

    def get_group(self, email: str, event_id: str) -> Optional[BookingGroup]:
        """
        Retrieve a booking group by (email, event_id).

        Uses a strongly consistent read since the result feeds a conditional write.

        Returns:
            BookingGroup, or None if no booking was recorded yet
        """
        context = {"email_masked": mask_email(email), "event_id": event_id}

        logger.debug("Fetching booking group", operation="get_group", context=context)

        response, duration_ms = self._execute(
            "get_group",
            context,
            lambda: self.table.get_item(
                Key={"email": email, "event_id": event_id}, ConsistentRead=True
            ),
        )

        item = response.get("Item")
        if item is None:
            logger.debug("Booking group not found", operation="get_group", context=context)
            return None

        logger.info(
            "Booking group retrieved",
            operation="get_group",
            context=context,
            duration_ms=duration_ms,
        )
        return BookingGroup.from_dict(item)

    def save_group(
        self, group: BookingGroup, expected_version: Optional[int] = None
    ) -> BookingGroup:
        """
        Insert or replace a booking group.

        Args:
            group: Group to persist; booking_count must already match the list
            expected_version: Version that was read, or None when inserting

        Returns:
            The persisted group carrying its new version

        Raises:
            ConflictError: If another writer changed the group since it was read
        """
        if group.booking_count != len(group.session_start_times):
            raise DynamoDBException(
                "booking_count does not match session_start_times length"
            )

        if expected_version is None:
            saved = replace(group, version=1)
            condition: Dict[str, Any] = {
                "ConditionExpression": "attribute_not_exists(email)",
            }
        else:
            saved = replace(group, version=expected_version + 1)
            condition = {
                "ConditionExpression": "attribute_not_exists(#v) OR #v = :expected",
                "ExpressionAttributeNames": {"#v": "version"},
                "ExpressionAttributeValues": {":expected": expected_version},
            }

        context = {
            "email_masked": mask_email(group.email),
            "event_id": group.event_id,
            "booking_count": group.booking_count,
            "version": saved.version,
        }

        logger.debug("Saving booking group", operation="save_group", context=context)

        _, duration_ms = self._execute(
            "save_group",
            context,
            lambda: self.table.put_item(Item=saved.to_dict(), **condition),
        )

        logger.info(
            "Booking group saved",
            operation="save_group",
            context=context,
            duration_ms=duration_ms,
        )
        return saved

    def complete_notification(self, email: str, event_id: str, block: int) -> bool:
        """
        Record that the batch email for block was delivered.

        Sets sent_email, appends the block to notified_blocks, clears the
        pending marker and bumps the version so stale writers re-read.
        """
        context = {"email_masked": mask_email(email), "event_id": event_id, "block": block}

        logger.debug(
            "Marking batch notification delivered",
            operation="complete_notification",
            context=context,
        )

        _, duration_ms = self._execute(
            "complete_notification",
            context,
            lambda: self.table.update_item(
                Key={"email": email, "event_id": event_id},
                UpdateExpression=(
                    "SET sent_email = :sent, "
                    "notified_blocks = list_append(if_not_exists(notified_blocks, :empty), :block), "
                    "#v = if_not_exists(#v, :zero) + :one "
                    "REMOVE pending_notification"
                ),
                ConditionExpression="attribute_exists(email)",
                ExpressionAttributeNames={"#v": "version"},
                ExpressionAttributeValues={
                    ":sent": True,
                    ":empty": [],
                    ":block": [block],
                    ":zero": 0,
                    ":one": 1,
                },
            ),
        )

        logger.info(
            "Batch notification marked delivered",
            operation="complete_notification",
            context=context,
            duration_ms=duration_ms,
        )
        return True

    def ping(self) -> int:
        """
        Read at most one item to confirm the table is reachable.

        Returns:
            Number of items read (0 or 1)
        """
        response, duration_ms = self._execute(
            "ping",
            {"table": self.table_name},
            lambda: self.table.scan(Limit=1),
        )
        logger.info(
            "Datastore ping succeeded",
            operation="ping",
            context={"table": self.table_name},
            duration_ms=duration_ms,
        )
        return int(response.get("Count", 0))


class BookingIdRepository(_DynamoRepository):
    """
    Repository for processed webhook booking ids.

    A record is written once per processed booking and never changed; its
    existence marks a redelivered webhook as a duplicate.

    Table Schema:
        Partition Key: booking_id (scheduling-tool booking id)
    """

    def __init__(
        self,
        table_name: str = "booking_ids",
        dynamodb_resource: Optional[Any] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        super().__init__(table_name, dynamodb_resource, max_retries, backoff_base)

    def claim(self, booking_id: str, email: str) -> bool:
        """
        Record booking_id unless it was already processed.

        Lookup and insert happen in a single conditional put, so two
        concurrent deliveries of the same webhook cannot both claim it.

        Returns:
            True if the id was recorded now, False if it already existed
        """
        context = {"booking_id": booking_id, "email_masked": mask_email(email)}

        logger.debug("Claiming booking id", operation="claim_booking_id", context=context)

        try:
            _, duration_ms = self._execute(
                "claim_booking_id",
                context,
                lambda: self.table.put_item(
                    Item={
                        "booking_id": booking_id,
                        "email": email,
                        "created_at": utc_now_iso(),
                    },
                    ConditionExpression="attribute_not_exists(booking_id)",
                ),
            )
        except ConflictError:
            logger.info(
                "Booking id already processed",
                operation="claim_booking_id",
                context=context,
            )
            return False

        logger.info(
            "Booking id recorded",
            operation="claim_booking_id",
            context=context,
            duration_ms=duration_ms,
        )
        return True
