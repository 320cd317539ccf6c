"""Receipt ingestion: folds provider delivery events into escalation records."""

import base64
import hashlib
import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from src.models.enums import EscalationStatus, FailureReason, ReceiptEventType
from src.schemas.receipt import ResendWebhook, WebhookResult
from src.services.escalation_state import EscalationStateError, EscalationStateManager
from src.services.escalation_store import EscalationStore, SqlEscalationStore

logger = logging.getLogger(__name__)

RESEND_EVENT_TYPES = {
    "email.sent": ReceiptEventType.SENT,
    "email.delivered": ReceiptEventType.DELIVERED,
    "email.bounced": ReceiptEventType.BOUNCED,
    "email.complained": ReceiptEventType.COMPLAINED,
    "email.opened": ReceiptEventType.OPENED,
    "email.clicked": ReceiptEventType.CLICKED,
}

SIGNATURE_TOLERANCE_SECONDS = 5 * 60


@dataclass
class ReceiptEvent:
    """A provider event correlated to one escalation."""

    event_type: ReceiptEventType
    escalation_id: int
    occurred_at: datetime
    provider_message_id: str | None = None
    recipient: str | None = None
    bounce_type: str | None = None
    bounce_reason: str | None = None
    click_url: str | None = None
    provider_payload: dict[str, Any] = field(default_factory=dict)


def parse_resend_webhook(
    webhook: ResendWebhook, received_at: datetime | None = None
) -> ReceiptEvent | WebhookResult:
    """Translate a Resend webhook into a ReceiptEvent.

    Returns an unprocessed WebhookResult for events this system does not track.
    """
    event_type = RESEND_EVENT_TYPES.get(webhook.type)
    if event_type is None:
        logger.info(f"Unhandled webhook type: {webhook.type}")
        return WebhookResult(
            processed=False, event_type=webhook.type, reason="Unhandled webhook type"
        )

    data = webhook.data
    raw_id = data.tag_value("escalation_id")
    if not raw_id or not raw_id.isdigit():
        logger.info(f"No escalation ID found in email tags for {data.email_id}")
        return WebhookResult(
            processed=False, event_type=webhook.type, reason="Not an escalation email"
        )

    occurred_at = webhook.created_at or received_at or datetime.now(UTC)
    if data.click and data.click.timestamp:
        occurred_at = data.click.timestamp

    return ReceiptEvent(
        event_type=event_type,
        escalation_id=int(raw_id),
        occurred_at=occurred_at,
        provider_message_id=data.email_id,
        recipient=data.recipient,
        bounce_type=data.bounce.type if data.bounce else None,
        bounce_reason=data.bounce.message if data.bounce else None,
        click_url=data.click.link if data.click else None,
        provider_payload=webhook.model_dump(mode="json", by_alias=True),
    )


def verify_resend_signature(
    payload: bytes,
    headers: Mapping[str, str],
    secret: str,
    now: datetime | None = None,
    tolerance_seconds: int = SIGNATURE_TOLERANCE_SECONDS,
) -> bool:
    """Check the Svix-style signature Resend attaches to webhooks.

    The signed content is "{svix-id}.{svix-timestamp}.{body}", HMAC-SHA256 with
    the base64 key after the "whsec_" prefix. The header may list several
    space-separated "v1,<signature>" entries.
    """
    message_id = headers.get("svix-id")
    timestamp = headers.get("svix-timestamp")
    signature_header = headers.get("svix-signature")
    if not message_id or not timestamp or not signature_header:
        return False

    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    now = now or datetime.now(UTC)
    if abs(now.timestamp() - sent_at) > tolerance_seconds:
        logger.warning(f"Webhook timestamp {timestamp} outside tolerance")
        return False

    try:
        key = base64.b64decode(secret.removeprefix("whsec_"))
    except ValueError:
        logger.error("RESEND_WEBHOOK_SECRET is not valid base64")
        return False

    signed_content = f"{message_id}.{timestamp}.".encode() + payload
    expected = base64.b64encode(hmac.new(key, signed_content, hashlib.sha256).digest()).decode()

    for entry in signature_header.split():
        version, _, signature = entry.partition(",")
        if version == "v1" and hmac.compare_digest(signature, expected):
            return True
    return False


class ReceiptIngestor:
    """Routes delivery events into the engagement record and the state manager."""

    def __init__(self, store: EscalationStore, state_manager: EscalationStateManager):
        self.store = store
        self.state_manager = state_manager

    def ingest_webhook(self, webhook: ResendWebhook) -> WebhookResult:
        parsed = parse_resend_webhook(webhook, received_at=self.state_manager.now())
        if isinstance(parsed, WebhookResult):
            return parsed
        result = self.ingest(parsed)
        result.event_type = webhook.type
        return result

    def ingest(self, event: ReceiptEvent) -> WebhookResult:
        """Record the event, update engagement, and apply any status change."""
        escalation = self.store.get_escalation(event.escalation_id)
        if escalation is None:
            logger.warning(f"Receipt for unknown escalation {event.escalation_id}")
            return WebhookResult(
                processed=False,
                escalation_id=event.escalation_id,
                reason="Unknown escalation",
            )

        status = EscalationStatus(escalation.status)
        self.store.add_receipt_event(
            escalation_id=event.escalation_id,
            event_type=event.event_type,
            occurred_at=event.occurred_at,
            provider_message_id=event.provider_message_id,
            recipient=event.recipient,
            provider_payload=event.provider_payload,
        )

        engagement = {
            "last_event_type": event.event_type.value,
            "last_event_at": event.occurred_at,
        }
        transition = None
        try:
            if event.event_type in (ReceiptEventType.SENT, ReceiptEventType.DELIVERED):
                if status.is_due_state:
                    self.state_manager.mark_sent(
                        event.escalation_id,
                        message_id=event.provider_message_id,
                        provider_response=event.provider_payload,
                        sent_at=event.occurred_at,
                        confirmed_via="webhook",
                    )
                    transition = f"{status.value}->sent"
                    logger.info(f"Marked escalation {event.escalation_id} as sent via webhook")
                if event.event_type == ReceiptEventType.DELIVERED:
                    engagement.update(delivery_confirmed=True, delivered_at=event.occurred_at)

            elif event.event_type == ReceiptEventType.BOUNCED:
                engagement.update(
                    bounced_at=event.occurred_at,
                    bounce_type=event.bounce_type,
                    bounce_reason=event.bounce_reason,
                )
                if status.is_due_state:
                    outcome = self.state_manager.handle_failure(
                        event.escalation_id,
                        FailureReason.EMAIL_INVALID,
                        {
                            "message": event.bounce_reason or "Email bounced",
                            "bounce_type": event.bounce_type,
                            "provider_message_id": event.provider_message_id,
                        },
                    )
                    transition = f"{status.value}->{'retrying' if outcome.will_retry else 'failed'}"
                logger.info(
                    f"Escalation {event.escalation_id} bounced: {event.bounce_reason or 'unknown'}"
                )

            elif event.event_type == ReceiptEventType.COMPLAINED:
                engagement["complained_at"] = event.occurred_at
                logger.warning(f"Spam complaint received for escalation {event.escalation_id}")

            elif event.event_type == ReceiptEventType.OPENED:
                engagement["opened_at"] = event.occurred_at

            elif event.event_type == ReceiptEventType.CLICKED:
                engagement.update(clicked_at=event.occurred_at, click_url=event.click_url)

        except EscalationStateError as e:
            logger.error(
                f"Skipped transition for escalation {event.escalation_id} "
                f"on {event.event_type.value}: {e}"
            )
            self.store.rollback()
            self.store.merge_engagement(event.escalation_id, engagement)
            return WebhookResult(
                processed=True, escalation_id=event.escalation_id, reason=str(e)
            )

        self.store.merge_engagement(event.escalation_id, engagement)
        return WebhookResult(
            processed=True, escalation_id=event.escalation_id, transition=transition
        )


def get_receipt_ingestor(db: Session) -> ReceiptIngestor:
    """Get a receipt ingestor bound to a database session."""
    store = SqlEscalationStore(db)
    return ReceiptIngestor(store, EscalationStateManager(store))
