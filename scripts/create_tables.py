"""
Provision the DynamoDB tables used by the booking webhooks.

Usage examples:
    python scripts/create_tables.py --profile stepitup-prod
    python scripts/create_tables.py --region ca-central-1 --groups-table booking_groups_staging
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError


DEFAULT_REGION = "ca-central-1"


@dataclass(frozen=True)
class TableDefinition:
    """Key schema for one table."""

    name: str
    partition_key: str
    sort_key: Optional[str] = None

    def create_kwargs(self) -> dict:
        key_schema = [{"AttributeName": self.partition_key, "KeyType": "HASH"}]
        attributes = [{"AttributeName": self.partition_key, "AttributeType": "S"}]
        if self.sort_key:
            key_schema.append({"AttributeName": self.sort_key, "KeyType": "RANGE"})
            attributes.append({"AttributeName": self.sort_key, "AttributeType": "S"})
        return {
            "TableName": self.name,
            "KeySchema": key_schema,
            "AttributeDefinitions": attributes,
            "BillingMode": "PAY_PER_REQUEST",
        }


def build_definitions(groups_table: str, ids_table: str) -> List[TableDefinition]:
    return [
        TableDefinition(name=groups_table, partition_key="email", sort_key="event_id"),
        TableDefinition(name=ids_table, partition_key="booking_id"),
    ]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create the DynamoDB tables for the tutoring booking webhooks."
    )
    parser.add_argument(
        "--profile",
        help="AWS CLI profile to use for the session.",
    )
    parser.add_argument(
        "--region",
        default=DEFAULT_REGION,
        help=f"AWS region to target (default: {DEFAULT_REGION}).",
    )
    parser.add_argument(
        "--groups-table",
        default="booking_groups",
        help="Booking groups table name (default: booking_groups).",
    )
    parser.add_argument(
        "--ids-table",
        default="booking_ids",
        help="Processed booking ids table name (default: booking_ids).",
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Return without waiting for the tables to become ACTIVE.",
    )
    return parser.parse_args(argv)


def create_table(client, definition: TableDefinition, wait: bool) -> str:
    """
    Create one table unless it already exists.

    Returns:
        "created" or "exists"
    """
    try:
        client.create_table(**definition.create_kwargs())
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") == "ResourceInUseException":
            return "exists"
        raise

    if wait:
        client.get_waiter("table_exists").wait(TableName=definition.name)
    return "created"


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    try:
        session = boto3.Session(profile_name=args.profile, region_name=args.region)
        client = session.client("dynamodb")
    except (BotoCoreError, NoCredentialsError) as exc:
        print(f"[ERROR] Failed to create AWS session: {exc}", file=sys.stderr)
        return 2

    print(f"Provisioning tables in region {args.region}")

    overall_success = True
    for definition in build_definitions(args.groups_table, args.ids_table):
        try:
            status = create_table(client, definition, wait=not args.no_wait)
        except (ClientError, BotoCoreError) as exc:
            print(f"[FAIL] {definition.name}: {exc}")
            overall_success = False
            continue
        print(f"[{status.upper()}] {definition.name}")

    return 0 if overall_success else 1


if __name__ == "__main__":
    sys.exit(main())
