"""Pydantic schemas for API requests and responses."""

from src.schemas.escalation import (
    CancelledDetails,
    DeliveryReceipt,
    DeliveryRunResult,
    FailureDetails,
    PendingDetails,
    ScheduleRunResult,
    SentDetails,
)
from src.schemas.receipt import (
    ReceiptDetailResponse,
    ReceiptsListResponse,
    ResendWebhook,
    WebhookResult,
)

__all__ = [
    "PendingDetails",
    "SentDetails",
    "FailureDetails",
    "CancelledDetails",
    "DeliveryReceipt",
    "ScheduleRunResult",
    "DeliveryRunResult",
    "ResendWebhook",
    "WebhookResult",
    "ReceiptsListResponse",
    "ReceiptDetailResponse",
]
