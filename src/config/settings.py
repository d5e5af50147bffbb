"""
Configuration loader for the tutoring booking webhooks

Reads table names and email settings from the environment and fetches the
email API key from AWS Secrets Manager with caching, exponential backoff,
and structured logging redaction.
"""

import json
import logging
import os
import time
from typing import Any, Dict, Iterable, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""

    pass


# NOTE: This is a secret NAME, not a secret VALUE. The value is fetched from AWS Secrets Manager.
RESEND_SECRET_ID = "tutoring-bookings/resend-credentials"  # nosec B105

DEFAULT_REGION = "ca-central-1"
DEFAULT_FROM_ADDRESS = "Step it Up Learning <info@stepituplearning.ca>"
DEFAULT_LOGO_URL = "https://www.stepituplearning.ca/assets/logo.png"

PERMANENT_SECRET_ERRORS = {
    "ResourceNotFoundException": "not found in Secrets Manager region {region}",
    "AccessDeniedException": "access denied; the Lambda role needs secretsmanager:GetSecretValue",
    "UnauthorizedOperation": "access denied; the Lambda role needs secretsmanager:GetSecretValue",
    "DecryptionFailure": "decryption failed; check the KMS key grants for the Lambda role",
}

# For local development with dummy credentials file
USE_LOCAL_SECRETS = os.getenv("USE_LOCAL_SECRETS_FILE", "false").lower() == "true"
LOCAL_SECRETS_FILE = os.getenv("LOCAL_SECRETS_FILE_PATH", ".local/secrets.json")

_RESEND_API_KEY_CACHE: Optional[str] = None


class SecretRedactionFilter(logging.Filter):
    """
    Masks known API key values in log records before they are emitted.

    The record is rendered once, scrubbed, and its args cleared, so the key
    cannot reach a handler through either the message or its arguments.
    """

    MASK = "***REDACTED***"
    MIN_SECRET_LENGTH = 4

    def __init__(self, secrets: Optional[Iterable[str]] = None):
        super().__init__()
        self.redacted_values = {
            value
            for value in (secrets or ())
            if isinstance(value, str) and len(value) >= self.MIN_SECRET_LENGTH
        }

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.redacted_values:
            return True

        try:
            rendered = record.getMessage()
        except (TypeError, ValueError):
            # Malformed %-args; the logging handler reports those itself
            rendered = str(record.msg)

        record.msg = self.redact(rendered)
        record.args = ()
        return True

    def redact(self, text: str) -> str:
        for secret in self.redacted_values:
            text = text.replace(secret, self.MASK)
        return text


class Settings:
    """
    Runtime configuration for the booking webhooks.

    Table names and email settings come from environment variables read at
    construction time; the email API key is loaded on demand.
    """

    def __init__(self, region_name: Optional[str] = None):
        """
        Initialize Settings loader.

        Args:
            region_name: AWS region for DynamoDB and Secrets Manager
        """
        self.region_name = region_name or os.getenv("AWS_REGION", DEFAULT_REGION)
        self.booking_groups_table = os.getenv("BOOKING_GROUPS_TABLE", "booking_groups")
        self.booking_ids_table = os.getenv("BOOKING_IDS_TABLE", "booking_ids")
        self.email_from = os.getenv("EMAIL_FROM", DEFAULT_FROM_ADDRESS)
        self.email_logo_url = os.getenv("EMAIL_LOGO_URL", DEFAULT_LOGO_URL)

    def load_resend_api_key(self) -> str:
        """
        Load the Resend API key.

        Priority:
        1. RESEND_API_KEY environment variable
        2. Local secrets file (USE_LOCAL_SECRETS_FILE=true)
        3. Secrets Manager

        Raises:
            ConfigurationError: If no key is configured
        """
        global _RESEND_API_KEY_CACHE

        env_key = os.getenv("RESEND_API_KEY")
        if env_key:
            return env_key

        if _RESEND_API_KEY_CACHE:
            return _RESEND_API_KEY_CACHE

        if USE_LOCAL_SECRETS:
            credentials = Settings._load_from_local_file(LOCAL_SECRETS_FILE).get("resend", {})
        else:
            try:
                credentials = Settings._get_secret_value(RESEND_SECRET_ID, region_name=self.region_name)
            except (RuntimeError, ValueError) as e:
                raise ConfigurationError(f"Resend API key unavailable: {e}") from e

        api_key = credentials.get("api_key")
        if not api_key:
            raise ConfigurationError(
                f"Resend credentials missing required key 'api_key'. "
                f"Got: {list(credentials.keys())}"
            )

        _RESEND_API_KEY_CACHE = api_key
        return api_key

    @staticmethod
    def _get_secret_value(
        secret_id: str,
        region_name: str = DEFAULT_REGION,
        max_retries: int = 3,
        base_wait: float = 1.0,
    ) -> Dict[str, Any]:
        """
        Fetch a JSON secret from Secrets Manager.

        Errors listed in PERMANENT_SECRET_ERRORS fail immediately; any other
        client error is retried with exponential backoff.

        Raises:
            RuntimeError: If the secret is missing, unreadable or not JSON
            ValueError: If the secret has no SecretString
        """
        client = boto3.client("secretsmanager", region_name=region_name)

        for attempt in range(1, max_retries + 1):
            try:
                secret_string = client.get_secret_value(SecretId=secret_id).get("SecretString")
            except ClientError as e:
                error_code = e.response["Error"]["Code"]
                if error_code in PERMANENT_SECRET_ERRORS:
                    hint = PERMANENT_SECRET_ERRORS[error_code].format(region=region_name)
                    raise RuntimeError(f"Secret '{secret_id}': {hint}") from e
                if attempt == max_retries:
                    raise RuntimeError(
                        f"Failed to retrieve secret '{secret_id}' after {max_retries} attempts: {error_code}"
                    ) from e
                wait_time = base_wait * (2 ** (attempt - 1))
                logger.warning(
                    f"Transient error fetching secret {secret_id}: {error_code}. "
                    f"Retrying in {wait_time}s (attempt {attempt}/{max_retries})"
                )
                time.sleep(wait_time)
                continue

            if not secret_string:
                raise ValueError(f"Secret {secret_id} has empty value")
            try:
                return json.loads(secret_string)
            except json.JSONDecodeError as e:
                raise RuntimeError(f"Secret '{secret_id}' contains invalid JSON: {e}") from e

        raise RuntimeError(f"Failed to retrieve secret '{secret_id}'")

    @staticmethod
    def _load_from_local_file(filepath: str) -> Dict[str, Any]:
        """
        Load secrets from local JSON file for development.

        Raises:
            ConfigurationError: If file cannot be read or contains invalid JSON
        """
        try:
            with open(filepath, "r") as f:
                return json.load(f)
        except FileNotFoundError:
            raise ConfigurationError(
                f"Local secrets file not found: {filepath}. "
                f"Use AWS Secrets Manager or provide USE_LOCAL_SECRETS_FILE=true and LOCAL_SECRETS_FILE_PATH"
            )
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Local secrets file contains invalid JSON: {str(e)}")

    @staticmethod
    def setup_redaction_filter(logger_instance: logging.Logger) -> None:
        """
        Configure logger with secret redaction filter.

        Filters already attached to the logger are replaced so warm Lambda
        containers do not accumulate them.
        """
        redaction_filter = SecretRedactionFilter(
            [os.getenv("RESEND_API_KEY", ""), _RESEND_API_KEY_CACHE or ""]
        )
        for target in [logger_instance, *logger_instance.handlers]:
            for existing in list(target.filters):
                if isinstance(existing, SecretRedactionFilter):
                    target.removeFilter(existing)
            target.addFilter(redaction_filter)


def reset_secret_cache() -> None:
    """Forget the cached API key (used by tests and after key rotation)."""
    global _RESEND_API_KEY_CACHE
    _RESEND_API_KEY_CACHE = None


def setup_logging_redaction() -> None:
    """Setup logging redaction for root logger."""
    Settings.setup_redaction_filter(logging.getLogger())
