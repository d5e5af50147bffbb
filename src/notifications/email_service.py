"""
Transactional email client for batch session confirmations.

Sends templated HTML emails through the Resend HTTP API. Templates are kept
in config/email_templates.yaml so copy changes never touch code.
"""

from __future__ import annotations

import html
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import requests
import yaml

from src.config.settings import Settings
from src.errors import UpstreamError
from src.utils.logger import get_logger, log_operation, mask_email, StructuredLogger


class EmailServiceError(UpstreamError):
    """Raised when the email API fails to accept a message."""


class ResendEmailClient:
    """
    Client for sending email through Resend.

    A single attempt is made per message; callers decide how a failure is
    reported.
    """

    RESEND_URL = "https://api.resend.com/emails"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        api_key: Optional[str] = None,
        templates_path: Optional[Path] = None,
        http_client: Optional[requests.Session] = None,
        logger: Optional[StructuredLogger] = None,
        timeout: float = 10,
    ) -> None:
        """
        Initialise the email client.

        Args:
            settings: Optional Settings instance (falls back to default Settings()).
            api_key: Optional explicit API key; otherwise loaded on first send.
            templates_path: Path to email_templates.yaml.
            http_client: Optional requests-like session (useful for testing).
            logger: Optional structured logger instance.
            timeout: HTTP timeout in seconds.
        """
        self.logger = logger or get_logger(__name__)
        self.http_client = http_client or requests.Session()
        self.settings = settings or Settings()
        self.timeout = timeout
        self._api_key = api_key

        if templates_path:
            self.templates_path = Path(templates_path)
        else:
            root_dir = Path(__file__).resolve().parents[2]
            self.templates_path = root_dir / "config" / "email_templates.yaml"

        self.templates = self._load_templates()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @log_operation("send_session_summary")
    def send_session_summary(
        self,
        to: str,
        name: str,
        session_times: Sequence[str],
        template_key: str,
    ) -> None:
        """
        Send the batch email listing already formatted session times.

        Raises:
            EmailServiceError: If the API call fails or returns non-2xx
            KeyError: If template_key is not configured
        """
        payload = self.render(to, name, session_times, template_key)
        self._dispatch(payload, template_key)

    def render(
        self,
        to: str,
        name: str,
        session_times: Sequence[str],
        template_key: str,
    ) -> Dict[str, Any]:
        """Build the API payload for a templated session summary."""
        template = self._get_template(template_key)
        sessions_html = "".join(
            f"<li><b>{html.escape(formatted)}</b></li>" for formatted in session_times
        )
        body = template["html"].format(
            name=html.escape(name),
            sessions_html=sessions_html,
            logo_url=self.settings.email_logo_url,
        )
        return {
            "from": self.settings.email_from,
            "to": to,
            "subject": template["subject"],
            "html": body,
        }

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _dispatch(self, payload: Dict[str, Any], template_key: str) -> None:
        context = {"email_masked": mask_email(payload["to"]), "template": template_key}

        try:
            response = self.http_client.post(
                self.RESEND_URL,
                headers=self._build_headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            self.logger.error(
                "Email request failed",
                operation="send_email",
                context=context,
                error=str(exc),
            )
            raise EmailServiceError(f"Email API request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            self.logger.error(
                "Email API rejected message",
                operation="send_email",
                context={**context, "status_code": response.status_code},
                error=response.text,
            )
            raise EmailServiceError(
                f"Resend API error: {response.status_code} - {response.text}"
            )

        self.logger.info("Email delivered", operation="send_email", context=context)

    def _build_headers(self) -> Dict[str, str]:
        if not self._api_key:
            self._api_key = self.settings.load_resend_api_key()
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _get_template(self, template_key: str) -> Dict[str, Any]:
        template = self.templates.get(template_key)
        if template is None:
            raise KeyError(f"Template '{template_key}' not found")
        return template

    def _load_templates(self) -> Dict[str, Any]:
        """Load email templates from YAML file."""
        if not self.templates_path.exists():
            raise FileNotFoundError(f"Email templates file not found: {self.templates_path}")

        with self.templates_path.open("r", encoding="utf-8") as handle:
            parsed = yaml.safe_load(handle) or {}

        templates = parsed.get("templates")
        if not templates:
            raise ValueError("templates section missing in email_templates.yaml")

        for key, template in templates.items():
            if "subject" not in template or "html" not in template:
                raise ValueError(f"Template '{key}' requires subject and html")

        return templates
