"""Receipt schemas: inbound provider webhooks and the owner's receipts view."""

from datetime import datetime

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from src.models.enums import (
    EscalationStatus,
    FailureReason,
    ReceiptEventType,
    TaskPriority,
    TaskStatus,
)
from src.schemas.escalation import DeliveryReceipt

# --- Resend webhook payloads ---


class ResendTag(BaseModel):
    """A name/value tag echoed back by Resend."""

    name: str
    value: str


class ResendBounce(BaseModel):
    """Bounce details on an email.bounced event."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str | None = None
    sub_type: str | None = Field(default=None, alias="subType")
    message: str | None = None


class ResendClick(BaseModel):
    """Click details on an email.clicked event."""

    model_config = ConfigDict(extra="allow")

    link: str | None = None
    timestamp: AwareDatetime | None = None


class ResendEmailData(BaseModel):
    """The ``data`` object of a Resend email webhook."""

    model_config = ConfigDict(extra="allow")

    email_id: str | None = None
    to: list[str] | str | None = None
    subject: str | None = None
    created_at: AwareDatetime | None = None
    tags: list[ResendTag] | dict[str, str] | None = None
    bounce: ResendBounce | None = None
    click: ResendClick | None = None

    def tag_value(self, name: str) -> str | None:
        """Look up a tag by name; Resend sends tags as a list or an object."""
        if isinstance(self.tags, dict):
            return self.tags.get(name) or None
        for tag in self.tags or []:
            if tag.name == name and tag.value:
                return tag.value
        return None

    @property
    def recipient(self) -> str | None:
        """First recipient address."""
        if isinstance(self.to, list):
            return self.to[0] if self.to else None
        return self.to


class ResendWebhook(BaseModel):
    """Envelope of a Resend webhook delivery."""

    model_config = ConfigDict(extra="allow")

    type: str
    # Stored as UTC, so offsets are required
    created_at: AwareDatetime | None = None
    data: ResendEmailData


class WebhookResult(BaseModel):
    """Response to a webhook delivery."""

    success: bool = True
    processed: bool
    event_type: str | None = None
    escalation_id: int | None = None
    transition: str | None = None
    reason: str | None = None


# --- Receipts view ---


class ReceiptTask(BaseModel):
    """Task details on a receipt."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None
    due_at: datetime
    priority: TaskPriority
    status: TaskStatus


class ReceiptEscalationInfo(BaseModel):
    """Policy and message details on a receipt."""

    level: int
    minutes_after_due: int
    message_content: str | None


class ReceiptContact(BaseModel):
    """Contact details on a receipt."""

    id: int
    name: str
    email: str
    relationship: str | None
    verified: bool


class ReceiptOwner(BaseModel):
    """Task owner details on a receipt."""

    email: str
    full_name: str | None


class ReceiptDelivery(BaseModel):
    """Delivery state and engagement of an escalation."""

    details: DeliveryReceipt | None = None
    message_id: str | None = None
    delivery_confirmed: bool = False
    delivered_at: datetime | None = None
    opened_at: datetime | None = None
    clicked_at: datetime | None = None
    bounced: bool = False
    complained: bool = False
    failure_reason: FailureReason | None = None
    retries: int = 0
    next_retry_at: datetime | None = None


class ReceiptResponse(BaseModel):
    """One escalation as the task owner sees it."""

    id: int
    created_at: datetime
    updated_at: datetime
    status: EscalationStatus
    scheduled_for: datetime
    sent_at: datetime | None
    task: ReceiptTask
    escalation: ReceiptEscalationInfo
    contact: ReceiptContact
    owner: ReceiptOwner
    delivery: ReceiptDelivery


class ReceiptPagination(BaseModel):
    """Offset pagination info."""

    offset: int
    limit: int
    has_more: bool


class DeliveryStats(BaseModel):
    delivered: int = 0
    bounced: int = 0
    rate: float = 0.0


class EngagementStats(BaseModel):
    opened: int = 0
    clicked: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0


class ReliabilityStats(BaseModel):
    retried: int = 0
    retry_rate: float = 0.0


class ReceiptsSummary(BaseModel):
    """Aggregate receipt statistics over a recent window."""

    total: int = 0
    status_breakdown: dict[str, int] = Field(default_factory=dict)
    delivery: DeliveryStats = Field(default_factory=DeliveryStats)
    engagement: EngagementStats = Field(default_factory=EngagementStats)
    reliability: ReliabilityStats = Field(default_factory=ReliabilityStats)
    timeframe: str = "30 days"
    generated_at: datetime


class ReceiptsListResponse(BaseModel):
    """Paginated receipts with summary."""

    receipts: list[ReceiptResponse]
    pagination: ReceiptPagination
    summary: ReceiptsSummary


class ReceiptTimeline(BaseModel):
    """Milestones of one escalation."""

    created: datetime
    scheduled: datetime
    sent: datetime | None = None
    delivered: datetime | None = None
    opened: datetime | None = None
    clicked: datetime | None = None


class ReceiptEventResponse(BaseModel):
    """A provider event recorded for an escalation."""

    model_config = ConfigDict(from_attributes=True)

    event_type: ReceiptEventType
    occurred_at: datetime
    provider_message_id: str | None
    recipient: str | None


class ReceiptDetailResponse(BaseModel):
    """Detailed receipt of one escalation."""

    escalation_id: int
    status: EscalationStatus
    timeline: ReceiptTimeline
    delivery: ReceiptDelivery
    message_content: str | None
    level: int
    task: ReceiptTask
    contact: ReceiptContact
    events: list[ReceiptEventResponse] = Field(default_factory=list)
