"""Delivery receipt models: provider events and per-escalation engagement."""

from sqlalchemy import Boolean, Column, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.enums import ReceiptEventType
from src.models.mixins import JSONType, TimestampMixin, UTCDateTime


class EscalationEngagement(Base, TimestampMixin):
    """Accumulated delivery and engagement facts for a sent escalation."""

    __tablename__ = "escalation_engagements"

    id = Column(Integer, primary_key=True, index=True)
    escalation_id = Column(
        Integer, ForeignKey("escalations.id"), nullable=False, unique=True, index=True
    )
    delivery_confirmed = Column(Boolean, default=False, nullable=False)
    delivered_at = Column(UTCDateTime, nullable=True)
    opened_at = Column(UTCDateTime, nullable=True)
    clicked_at = Column(UTCDateTime, nullable=True)
    click_url = Column(Text, nullable=True)
    bounced_at = Column(UTCDateTime, nullable=True)
    bounce_type = Column(String(100), nullable=True)
    bounce_reason = Column(Text, nullable=True)
    complained_at = Column(UTCDateTime, nullable=True)
    last_event_type = Column(String(20), nullable=True)
    last_event_at = Column(UTCDateTime, nullable=True)

    # Relationships
    escalation = relationship("Escalation", back_populates="engagement")


class DeliveryReceiptEvent(Base, TimestampMixin):
    """Append-only log of provider webhook events for an escalation."""

    __tablename__ = "delivery_receipt_events"

    id = Column(Integer, primary_key=True, index=True)
    escalation_id = Column(Integer, ForeignKey("escalations.id"), nullable=False, index=True)
    event_type = Column(
        Enum(
            ReceiptEventType,
            name="receipteventtype",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    occurred_at = Column(UTCDateTime, nullable=False)
    provider = Column(String(50), default="resend", nullable=False)
    provider_message_id = Column(String(255), nullable=True, index=True)
    recipient = Column(String(255), nullable=True)
    provider_payload = Column(JSONType, nullable=True)

    # Relationships
    escalation = relationship("Escalation", back_populates="receipt_events")
