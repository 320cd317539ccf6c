"""Outbound email notifier backed by the Resend HTTP API."""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from src.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class NotifierResult:
    """Outcome of one send attempt."""

    success: bool
    provider_message_id: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None


class Notifier(Protocol):
    """Email-sending capability used by the delivery worker."""

    def send(self, to: str, subject: str, html: str, tags: dict[str, str]) -> NotifierResult: ...

    def close(self) -> None: ...

def _format_provider_error(response: httpx.Response) -> str:
    """Turn a Resend error body into "<name>: <message>"."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    name = str(body.get("name") or "api_error").replace("_", " ")
    message = body.get("message") or response.text or f"HTTP {response.status_code}"
    return f"{name}: {message}"


class ResendNotifier:
    """Sends emails through ``POST {RESEND_API_URL}/emails``."""

    def __init__(self, settings: Settings | None = None, client: httpx.Client | None = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def enabled(self) -> bool:
        return self.settings.email_enabled

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.settings.resend_api_url,
                timeout=self.settings.resend_timeout_seconds,
            )
        return self._client

    def send(self, to: str, subject: str, html: str, tags: dict[str, str]) -> NotifierResult:
        """Send one email. Provider and transport errors are returned, not raised."""
        if not self.enabled:
            logger.warning("RESEND_API_KEY not configured, email delivery disabled")
            return NotifierResult(success=False, error_message="Email service not configured")

        payload = {
            "from": self.settings.email_from,
            "to": [to],
            "subject": subject,
            "html": html,
            "tags": [{"name": name, "value": str(value)} for name, value in tags.items()],
        }

        try:
            response = self._get_client().post(
                "/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
            )
        except httpx.TransportError as e:
            logger.error(f"Network error sending email to {to}: {e}")
            return NotifierResult(success=False, error_message=f"Network error: {e}")

        if response.is_error:
            error_message = _format_provider_error(response)
            logger.error(f"Resend API error ({response.status_code}) for {to}: {error_message}")
            return NotifierResult(
                success=False,
                error_message=error_message,
                raw_response={"status_code": response.status_code, "body": response.text},
            )

        data = response.json()
        logger.info(f"Email sent to {to} (message id {data.get('id')})")
        return NotifierResult(success=True, provider_message_id=data.get("id"), raw_response=data)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def get_notifier() -> ResendNotifier:
    """Get a notifier instance."""
    return ResendNotifier()
