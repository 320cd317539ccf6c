"""Enums for model fields."""

from enum import Enum


class TaskStatus(str, Enum):
    """Lifecycle of a user's task."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskPriority(str, Enum):
    """Task priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EscalationStatus(str, Enum):
    """Status of a single escalation attempt."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RETRYING = "retrying"

    @property
    def is_terminal(self) -> bool:
        """Failed and cancelled records never change again."""
        return self in (EscalationStatus.FAILED, EscalationStatus.CANCELLED)

    @property
    def is_due_state(self) -> bool:
        """States the delivery worker picks up."""
        return self in (EscalationStatus.PENDING, EscalationStatus.RETRYING)


class FailureReason(str, Enum):
    """Why an escalation delivery attempt failed."""

    EMAIL_INVALID = "email_invalid"
    CONTACT_NOT_VERIFIED = "contact_not_verified"
    TASK_COMPLETED = "task_completed"
    RESEND_API_ERROR = "resend_api_error"
    NETWORK_ERROR = "network_error"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN_ERROR = "unknown_error"


class CancellationReason(str, Enum):
    """Why an escalation was cancelled."""

    TASK_COMPLETED = "task_completed"
    TASK_DELETED = "task_deleted"
    MANUAL = "manual"


class ReceiptEventType(str, Enum):
    """Asynchronous delivery events reported by the email provider."""

    SENT = "sent"
    DELIVERED = "delivered"
    BOUNCED = "bounced"
    COMPLAINED = "complained"
    OPENED = "opened"
    CLICKED = "clicked"
