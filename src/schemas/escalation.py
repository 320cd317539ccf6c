"""Escalation-related Pydantic schemas."""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from src.models.enums import CancellationReason, EscalationStatus, FailureReason

# --- Delivery receipt: one variant per escalation state ---


class PendingDetails(BaseModel):
    """Receipt written when the scheduler creates the record."""

    kind: Literal["pending"] = "pending"
    created_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class SentDetails(BaseModel):
    """Provider acceptance of the notification."""

    kind: Literal["sent"] = "sent"
    provider: str = "resend"
    message_id: str | None = None
    provider_response: dict[str, Any] = Field(default_factory=dict)
    sent_at: datetime
    retries: int = 0
    confirmed_via: Literal["api", "webhook"] = "api"


class FailureDetails(BaseModel):
    """A failed attempt, either awaiting retry or final."""

    kind: Literal["failure"] = "failure"
    reason: FailureReason
    retry_count: int = 0
    last_error: str = "Unknown error"
    next_retry_at: datetime | None = None
    retry_delay_minutes: int | None = None
    final_failure: bool = False
    max_retries_exceeded: bool = False
    failed_at: datetime
    error_details: dict[str, Any] = Field(default_factory=dict)


class CancelledDetails(BaseModel):
    """Why and when the escalation stopped before delivery."""

    kind: Literal["cancelled"] = "cancelled"
    reason: CancellationReason
    cancelled_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


DeliveryReceipt = Annotated[
    PendingDetails | SentDetails | FailureDetails | CancelledDetails,
    Field(discriminator="kind"),
]

delivery_receipt_adapter: TypeAdapter[DeliveryReceipt] = TypeAdapter(DeliveryReceipt)


def parse_delivery_receipt(raw: dict[str, Any] | None) -> DeliveryReceipt | None:
    """Parse the stored JSON receipt into its typed variant."""
    if not raw:
        return None
    return delivery_receipt_adapter.validate_python(raw)


def dump_delivery_receipt(receipt: DeliveryReceipt) -> dict[str, Any]:
    """Serialize a receipt variant for the JSON column."""
    return receipt.model_dump(mode="json")


# --- Scheduler run ---


class ScheduledEscalation(BaseModel):
    """An escalation record created during a scheduler run."""

    id: int
    task_id: int
    policy_id: int
    level: int
    contact_email: str
    scheduled_for: datetime
    minutes_overdue: int


class ScheduleError(BaseModel):
    """A per-task or per-policy failure captured during a scheduler run."""

    task_id: int
    policy_id: int | None = None
    error: str


class ScheduleSummary(BaseModel):
    """Counts for one scheduler run."""

    overdue_tasks_checked: int = 0
    escalations_scheduled: int = 0
    errors: int = 0


class ScheduleRunResult(BaseModel):
    """Response of a scheduler run."""

    success: bool = True
    summary: ScheduleSummary
    scheduled_escalations: list[ScheduledEscalation] = Field(default_factory=list)
    errors: list[ScheduleError] = Field(default_factory=list)
    timestamp: datetime


# --- Delivery run ---

DeliveryOutcomeStatus = Literal["sent", "cancelled", "failed", "retrying", "error"]


class DeliveryOutcome(BaseModel):
    """What happened to one escalation during a delivery run."""

    escalation_id: int
    status: DeliveryOutcomeStatus
    contact_email: str | None = None
    message_id: str | None = None
    level: int | None = None
    task_title: str | None = None
    reason: str | None = None
    error: str | None = None
    will_retry: bool = False
    next_retry_at: datetime | None = None
    retry_count: int | None = None


class DeliveryError(BaseModel):
    """An error surfaced by a delivery run."""

    escalation_id: int
    error: str
    final_failure: bool = False


class DeliverySummary(BaseModel):
    """Counts for one delivery run."""

    processed: int = 0
    delivered: int = 0
    cancelled: int = 0
    failed: int = 0
    retrying: int = 0


class DeliveryRunResult(BaseModel):
    """Response of a delivery run."""

    success: bool = True
    summary: DeliverySummary
    delivery_results: list[DeliveryOutcome] = Field(default_factory=list)
    errors: list[DeliveryError] = Field(default_factory=list)
    timestamp: datetime


# --- Monitoring and previews ---


class EscalationStats(BaseModel):
    """Escalation counts over a recent window."""

    timeframe: str
    total_escalations: int
    success_rate: float
    status_breakdown: dict[EscalationStatus, int]
    timestamp: datetime


class ShamePreviewRequest(BaseModel):
    """Request to render a sample escalation message."""

    level: int = Field(default=1, ge=1, le=3)
    variant: int | None = Field(default=None, ge=0)
    task_title: str = Field(default="Finish the quarterly report", max_length=500)
    contact_name: str = Field(default="Sam", max_length=255)
    relationship: str = Field(default="friend", max_length=50)
    overdue_minutes: int = Field(default=120, ge=0)
    custom_message: str = Field(default="", max_length=5000)


class ShameMessageResponse(BaseModel):
    """Rendered escalation content."""

    subject: str
    opening: str
    body: str
    call_to_action: str
    level: int
    intensity_label: str
    adjectives: list[str] = Field(default_factory=list)
    emojis: list[str] = Field(default_factory=list)
