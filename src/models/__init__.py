"""SQLAlchemy models."""

from src.models.contact import Contact
from src.models.delivery_receipt import DeliveryReceiptEvent, EscalationEngagement
from src.models.escalation import Escalation
from src.models.escalation_policy import EscalationPolicy
from src.models.task import Task
from src.models.user import User

__all__ = [
    "User",
    "Task",
    "Contact",
    "EscalationPolicy",
    "Escalation",
    "EscalationEngagement",
    "DeliveryReceiptEvent",
]
