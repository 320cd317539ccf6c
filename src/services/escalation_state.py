"""Escalation state management.

Owns every status change of an escalation record: validates transitions,
applies them with a compare-and-set against the store, decides between retry
and final failure, and logs a structured record of each transition.
"""

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from src.models import Escalation
from src.models.enums import CancellationReason, EscalationStatus, FailureReason
from src.schemas.escalation import (
    CancelledDetails,
    DeliveryReceipt,
    EscalationStats,
    FailureDetails,
    SentDetails,
    dump_delivery_receipt,
    parse_delivery_receipt,
)
from src.services.escalation_store import EscalationStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[EscalationStatus, frozenset[EscalationStatus]] = {
    EscalationStatus.PENDING: frozenset(
        {
            EscalationStatus.SENT,
            EscalationStatus.FAILED,
            EscalationStatus.CANCELLED,
            EscalationStatus.RETRYING,
        }
    ),
    EscalationStatus.RETRYING: frozenset(
        {EscalationStatus.SENT, EscalationStatus.FAILED, EscalationStatus.CANCELLED}
    ),
    # Post-delivery cancellation is a manual override only
    EscalationStatus.SENT: frozenset({EscalationStatus.CANCELLED}),
    EscalationStatus.FAILED: frozenset(),
    EscalationStatus.CANCELLED: frozenset(),
}

NON_RETRYABLE_REASONS = frozenset(
    {
        FailureReason.EMAIL_INVALID,
        FailureReason.CONTACT_NOT_VERIFIED,
        FailureReason.TASK_COMPLETED,
    }
)

# Checked in order; first match wins
FAILURE_CLASSIFICATION_RULES: list[tuple[tuple[str, ...], FailureReason]] = [
    (("invalid email", "bad email"), FailureReason.EMAIL_INVALID),
    (("rate limit", "too many requests"), FailureReason.RATE_LIMITED),
    (("quota", "limit exceeded"), FailureReason.QUOTA_EXCEEDED),
    (("network", "connection"), FailureReason.NETWORK_ERROR),
    (("api", "server error"), FailureReason.RESEND_API_ERROR),
]

STATS_TIMEFRAME_HOURS = {"1h": 1, "24h": 24, "7d": 24 * 7, "30d": 24 * 30}


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff settings: 5, 15, 45 minutes, capped at a day."""

    max_retries: int = 3
    base_delay_minutes: int = 5
    exponential_base: int = 3
    max_delay_hours: int = 24

    def delay_minutes(self, retry_count: int) -> int:
        """Backoff delay before the given (1-based) retry."""
        delay = self.base_delay_minutes * self.exponential_base ** (retry_count - 1)
        return min(delay, self.max_delay_hours * 60)


class EscalationStateError(Exception):
    """Base class for state manager errors."""


class EscalationNotFoundError(EscalationStateError):
    """No escalation record with the given id."""

    def __init__(self, escalation_id: int):
        self.escalation_id = escalation_id
        super().__init__(f"Escalation {escalation_id} not found")


class InvalidTransitionError(EscalationStateError):
    """The requested status change is not in the transition table."""

    def __init__(
        self,
        escalation_id: int,
        current_status: EscalationStatus,
        attempted_status: EscalationStatus,
    ):
        self.escalation_id = escalation_id
        self.current_status = current_status
        self.attempted_status = attempted_status
        super().__init__(
            f"Invalid status transition for escalation {escalation_id}: "
            f"cannot transition from {current_status.value} to {attempted_status.value}"
        )


class ConcurrentTransitionError(EscalationStateError):
    """Another writer changed the record between read and update."""

    def __init__(self, escalation_id: int, expected_status: EscalationStatus):
        self.escalation_id = escalation_id
        self.expected_status = expected_status
        super().__init__(
            f"Escalation {escalation_id} is no longer {expected_status.value}; "
            "a concurrent update won"
        )


@dataclass(frozen=True)
class FailureOutcome:
    """Result of handle_failure, used by callers to build run summaries."""

    reason: FailureReason
    will_retry: bool
    retry_count: int
    next_retry_at: datetime | None = None
    delay_minutes: int | None = None
    final_failure: bool = False


@dataclass(frozen=True)
class TransitionRecord:
    """Observability record of one status change."""

    escalation_id: int
    from_status: EscalationStatus
    to_status: EscalationStatus
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


def is_transition_allowed(current: EscalationStatus, new: EscalationStatus) -> bool:
    """Check the transition table."""
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def should_retry(
    reason: FailureReason, retry_count: int, config: RetryConfig | None = None
) -> bool:
    """Retry retryable reasons until the retry budget is spent."""
    config = config or RetryConfig()
    if retry_count > config.max_retries:
        return False
    return reason not in NON_RETRYABLE_REASONS


def classify_failure_reason(error_message: str | None) -> FailureReason:
    """Map a provider error string onto a FailureReason."""
    message = (error_message or "").lower()
    for needles, reason in FAILURE_CLASSIFICATION_RULES:
        if any(needle in message for needle in needles):
            return reason
    return FailureReason.UNKNOWN_ERROR


def retry_count_of(receipt: DeliveryReceipt | None) -> int:
    """Retries already spent according to the stored receipt."""
    if isinstance(receipt, FailureDetails):
        return receipt.retry_count
    if isinstance(receipt, SentDetails):
        return receipt.retries
    return 0


class EscalationStateManager:
    """Sole authority for escalation status transitions."""

    def __init__(
        self,
        store: EscalationStore,
        retry_config: RetryConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.retry_config = retry_config or RetryConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self.transition_log: list[TransitionRecord] = []

    def now(self) -> datetime:
        return self._clock()

    def get_escalation(self, escalation_id: int) -> Escalation:
        """Load a record or raise EscalationNotFoundError."""
        escalation = self.store.get_escalation(escalation_id)
        if escalation is None:
            raise EscalationNotFoundError(escalation_id)
        return escalation

    def mark_sent(
        self,
        escalation_id: int,
        *,
        message_id: str | None = None,
        provider_response: dict[str, Any] | None = None,
        sent_at: datetime | None = None,
        provider: str = "resend",
        confirmed_via: str = "api",
    ) -> Escalation:
        """Transition to sent, stamping sent_at and recording the provider receipt."""
        escalation = self.get_escalation(escalation_id)
        sent_at = sent_at or self.now()
        receipt = SentDetails(
            provider=provider,
            message_id=message_id,
            provider_response=provider_response or {},
            sent_at=sent_at,
            retries=retry_count_of(parse_delivery_receipt(escalation.delivery_receipt)),
            confirmed_via=confirmed_via,
        )
        return self._transition(
            escalation,
            EscalationStatus.SENT,
            receipt,
            extra_values={"sent_at": sent_at},
            metadata={"message_id": message_id, "confirmed_via": confirmed_via},
        )

    def handle_failure(
        self,
        escalation_id: int,
        reason: FailureReason,
        error_details: dict[str, Any] | None = None,
    ) -> FailureOutcome:
        """Record a failed attempt and either schedule a retry or fail for good."""
        error_details = error_details or {}
        escalation = self.get_escalation(escalation_id)
        current_retries = retry_count_of(parse_delivery_receipt(escalation.delivery_receipt))
        retry_count = current_retries + 1
        now = self.now()
        last_error = str(error_details.get("message") or "Unknown error")

        if should_retry(reason, retry_count, self.retry_config):
            delay_minutes = self.retry_config.delay_minutes(retry_count)
            next_retry_at = now + timedelta(minutes=delay_minutes)
            receipt = FailureDetails(
                reason=reason,
                retry_count=retry_count,
                last_error=last_error,
                next_retry_at=next_retry_at,
                retry_delay_minutes=delay_minutes,
                failed_at=now,
                error_details=error_details,
            )
            self._transition(
                escalation,
                EscalationStatus.RETRYING,
                receipt,
                extra_values={"scheduled_for": next_retry_at},
                metadata={"reason": reason.value, "retry_count": retry_count},
                reschedule=True,
            )
            logger.info(
                f"Escalation {escalation_id} will retry in {delay_minutes} minutes "
                f"(attempt {retry_count}/{self.retry_config.max_retries}, reason={reason.value})"
            )
            return FailureOutcome(
                reason=reason,
                will_retry=True,
                retry_count=retry_count,
                next_retry_at=next_retry_at,
                delay_minutes=delay_minutes,
            )

        max_retries_exceeded = retry_count > self.retry_config.max_retries
        receipt = FailureDetails(
            reason=reason,
            retry_count=retry_count,
            last_error=last_error,
            final_failure=True,
            max_retries_exceeded=max_retries_exceeded,
            failed_at=now,
            error_details=error_details,
        )
        self._transition(
            escalation,
            EscalationStatus.FAILED,
            receipt,
            metadata={
                "reason": reason.value,
                "retry_count": retry_count,
                "max_retries_exceeded": max_retries_exceeded,
            },
        )
        logger.warning(
            f"Escalation {escalation_id} failed permanently: {reason.value} "
            f"after {retry_count} attempt(s)"
        )
        return FailureOutcome(
            reason=reason,
            will_retry=False,
            retry_count=retry_count,
            final_failure=True,
        )

    def cancel_escalation(
        self,
        escalation_id: int,
        reason: CancellationReason,
        metadata: dict[str, Any] | None = None,
    ) -> Escalation:
        """Transition to cancelled, e.g. when the task was completed in time."""
        escalation = self.get_escalation(escalation_id)
        receipt = CancelledDetails(
            reason=reason,
            cancelled_at=self.now(),
            metadata=metadata or {},
        )
        return self._transition(
            escalation,
            EscalationStatus.CANCELLED,
            receipt,
            metadata={"reason": reason.value, **(metadata or {})},
        )

    def cancel_for_task(
        self,
        task_id: int,
        reason: CancellationReason,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Cancel every open escalation of a task. Returns how many were cancelled.

        Called by the task layer when a task is completed or deleted.
        """
        cancelled = 0
        for escalation in self.store.list_open_escalations_for_task(task_id):
            try:
                self.cancel_escalation(escalation.id, reason, metadata)
                cancelled += 1
            except ConcurrentTransitionError as e:
                logger.warning(f"Skipping cancellation of escalation {escalation.id}: {e}")
        logger.info(f"Cancelled {cancelled} escalation(s) for task {task_id} ({reason.value})")
        return cancelled

    def get_stats(self, timeframe: str = "24h") -> EscalationStats:
        """Escalation counts by status over a recent window."""
        hours = STATS_TIMEFRAME_HOURS.get(timeframe, 24)
        now = self.now()
        counts = self.store.count_by_status_since(now - timedelta(hours=hours))
        total = sum(counts.values())
        sent = counts.get(EscalationStatus.SENT, 0)
        return EscalationStats(
            timeframe=timeframe if timeframe in STATS_TIMEFRAME_HOURS else "24h",
            total_escalations=total,
            success_rate=round(sent / total * 100, 2) if total else 0.0,
            status_breakdown=counts,
            timestamp=now,
        )

    def _transition(
        self,
        escalation: Escalation,
        new_status: EscalationStatus,
        receipt: DeliveryReceipt,
        extra_values: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        reschedule: bool = False,
    ) -> Escalation:
        """Validate and apply a status change with compare-and-set."""
        escalation_id = escalation.id
        current = EscalationStatus(escalation.status)

        # A retrying record that fails again stays retrying with a new schedule
        is_reschedule = reschedule and current == new_status == EscalationStatus.RETRYING
        if not is_reschedule and not is_transition_allowed(current, new_status):
            error = InvalidTransitionError(escalation_id, current, new_status)
            logger.error(str(error))
            raise error

        values = {
            "status": new_status,
            "delivery_receipt": dump_delivery_receipt(receipt),
            **(extra_values or {}),
        }
        if not self.store.compare_and_set_status(
            escalation_id, current, values, expected_version=escalation.version
        ):
            error = ConcurrentTransitionError(escalation_id, current)
            logger.error(str(error))
            raise error

        self._record_transition(escalation_id, current, new_status, metadata or {})
        return self.get_escalation(escalation_id)

    def _record_transition(
        self,
        escalation_id: int,
        from_status: EscalationStatus,
        to_status: EscalationStatus,
        metadata: dict[str, Any],
    ) -> None:
        record = TransitionRecord(
            escalation_id=escalation_id,
            from_status=from_status,
            to_status=to_status,
            timestamp=self.now(),
            metadata=metadata,
        )
        self.transition_log.append(record)
        logger.info(
            f"Escalation state transition: {escalation_id} | "
            f"{from_status.value} -> {to_status.value}",
            extra={"escalation_transition": asdict(record)},
        )
