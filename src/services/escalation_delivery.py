"""Escalation delivery worker: sends due escalations and reports the outcome."""

import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models import Escalation
from src.models.enums import CancellationReason, FailureReason, TaskStatus
from src.schemas.escalation import (
    DeliveryError,
    DeliveryOutcome,
    DeliveryRunResult,
    DeliverySummary,
)
from src.services.email_templates import render_escalation_email
from src.services.escalation_scheduler import minutes_overdue
from src.services.escalation_state import (
    EscalationStateError,
    EscalationStateManager,
    FailureOutcome,
    classify_failure_reason,
)
from src.services.escalation_store import EscalationStore, SqlEscalationStore
from src.services.notifier import Notifier, get_notifier
from src.services.shame_messages import ShameContext, ShameMessageGenerator

logger = logging.getLogger(__name__)


class EscalationDeliveryWorker:
    """Delivers pending and retrying escalations whose time has come."""

    def __init__(
        self,
        store: EscalationStore,
        state_manager: EscalationStateManager,
        notifier: Notifier,
        generator: ShameMessageGenerator,
        settings: Settings | None = None,
    ):
        self.store = store
        self.state_manager = state_manager
        self.notifier = notifier
        self.generator = generator
        self.settings = settings or get_settings()

    def run(self, now: datetime | None = None) -> DeliveryRunResult:
        """Process every due escalation in scheduled order.

        A failure on one record is isolated to that record; the run always
        returns a summary.
        """
        now = now or datetime.now(UTC)
        outcomes: list[DeliveryOutcome] = []
        errors: list[DeliveryError] = []

        due = self.store.list_due_escalations(now)
        logger.info(f"Found {len(due)} due escalations to deliver")

        for escalation in due:
            escalation_id = escalation.id
            try:
                outcome = self._process(escalation, now)
            except EscalationStateError as e:
                logger.error(f"State error delivering escalation {escalation_id}: {e}")
                self.store.rollback()
                outcome = DeliveryOutcome(escalation_id=escalation_id, status="error", error=str(e))
            except Exception as e:
                logger.error(f"Error processing escalation {escalation_id}: {e}", exc_info=True)
                self.store.rollback()
                outcome = self._fail_unexpected(escalation_id, e)

            outcomes.append(outcome)
            if outcome.status == "failed":
                errors.append(
                    DeliveryError(
                        escalation_id=escalation_id,
                        error=outcome.error or outcome.reason or "Delivery failed",
                        final_failure=True,
                    )
                )
            elif outcome.status == "error":
                errors.append(
                    DeliveryError(escalation_id=escalation_id, error=outcome.error or "Error")
                )

        summary = DeliverySummary(
            processed=len(due),
            delivered=sum(1 for o in outcomes if o.status == "sent"),
            cancelled=sum(1 for o in outcomes if o.status == "cancelled"),
            failed=sum(1 for o in outcomes if o.status == "failed"),
            retrying=sum(1 for o in outcomes if o.status == "retrying"),
        )
        logger.info(
            f"Delivery run complete: {summary.delivered} sent, {summary.cancelled} cancelled, "
            f"{summary.failed} failed, {summary.retrying} retrying"
        )
        return DeliveryRunResult(
            summary=summary,
            delivery_results=outcomes,
            errors=errors,
            timestamp=now,
        )

    def _process(self, escalation: Escalation, now: datetime) -> DeliveryOutcome:
        policy = escalation.policy
        task = policy.task
        contact = policy.contact
        escalation_id = escalation.id

        if task.status == TaskStatus.COMPLETED:
            self.state_manager.cancel_escalation(
                escalation_id,
                CancellationReason.TASK_COMPLETED,
                {"completed_at": task.completed_at.isoformat() if task.completed_at else None},
            )
            logger.info(f"Cancelled escalation {escalation_id}: task {task.id} completed")
            return DeliveryOutcome(
                escalation_id=escalation_id,
                status="cancelled",
                reason="Task was completed before escalation could be delivered",
                level=policy.level,
                task_title=task.title,
            )

        if not contact.verified:
            result = self.state_manager.handle_failure(
                escalation_id,
                FailureReason.CONTACT_NOT_VERIFIED,
                {"message": "Contact not verified", "contact_id": contact.id},
            )
            return self._failure_outcome(
                escalation_id, result, "Contact not verified", contact.email, policy.level
            )

        owner = task.owner
        owner_name = owner.display_name
        message = self.generator.generate(
            policy.level,
            ShameContext(
                task_title=task.title,
                owner_name=owner_name,
                owner_email=owner.email,
                contact_name=contact.name,
                due_date=task.due_at,
                overdue_minutes=minutes_overdue(task.due_at, now),
                relationship=contact.relation or "contact",
                custom_message=escalation.message_content or "",
            ),
        )
        html = render_escalation_email(
            message,
            owner_name=owner_name,
            custom_message=escalation.message_content or "",
            app_name=self.settings.app_name,
            app_url=self.settings.app_url,
        )
        tags = {
            "type": "escalation",
            "level": str(policy.level),
            "task_id": str(task.id),
            "escalation_id": str(escalation_id),
            "user_id": str(task.owner_id),
        }

        result = self.notifier.send(contact.email, message.subject, html, tags)

        if result.success:
            self.state_manager.mark_sent(
                escalation_id,
                message_id=result.provider_message_id,
                provider_response=result.raw_response,
            )
            logger.info(f"Delivered escalation {escalation_id} to {contact.email}")
            return DeliveryOutcome(
                escalation_id=escalation_id,
                status="sent",
                contact_email=contact.email,
                message_id=result.provider_message_id,
                level=policy.level,
                task_title=task.title,
            )

        error_message = result.error_message or "Unknown error"
        reason = classify_failure_reason(error_message)
        failure = self.state_manager.handle_failure(
            escalation_id,
            reason,
            {
                "message": error_message,
                "provider": "resend",
                "failed_at": self.state_manager.now().isoformat(),
            },
        )
        return self._failure_outcome(
            escalation_id, failure, error_message, contact.email, policy.level
        )

    def _failure_outcome(
        self,
        escalation_id: int,
        failure: FailureOutcome,
        error: str,
        contact_email: str | None = None,
        level: int | None = None,
    ) -> DeliveryOutcome:
        return DeliveryOutcome(
            escalation_id=escalation_id,
            status="retrying" if failure.will_retry else "failed",
            contact_email=contact_email,
            level=level,
            reason=failure.reason.value,
            error=error,
            will_retry=failure.will_retry,
            next_retry_at=failure.next_retry_at,
            retry_count=failure.retry_count,
        )

    def _fail_unexpected(self, escalation_id: int, error: Exception) -> DeliveryOutcome:
        """Record an unexpected processing error as an unknown_error failure."""
        try:
            failure = self.state_manager.handle_failure(
                escalation_id, FailureReason.UNKNOWN_ERROR, {"message": str(error)}
            )
        except Exception as e:
            logger.error(
                f"Could not record failure for escalation {escalation_id}: {e}", exc_info=True
            )
            self.store.rollback()
            return DeliveryOutcome(escalation_id=escalation_id, status="error", error=str(error))
        return self._failure_outcome(escalation_id, failure, str(error))


def get_delivery_worker(db: Session) -> EscalationDeliveryWorker:
    """Get a delivery worker bound to a database session."""
    settings = get_settings()
    store = SqlEscalationStore(db)
    return EscalationDeliveryWorker(
        store=store,
        state_manager=EscalationStateManager(store),
        notifier=get_notifier(),
        generator=ShameMessageGenerator(timezone=settings.display_timezone),
        settings=settings,
    )
