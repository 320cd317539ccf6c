"""Escalation record model."""

from sqlalchemy import Column, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.enums import EscalationStatus
from src.models.mixins import JSONType, TimestampMixin, UTCDateTime


class Escalation(Base, TimestampMixin):
    """One notification attempt for one escalation policy.

    Status changes go through EscalationStateManager only. Rows are never deleted.
    """

    __tablename__ = "escalations"

    id = Column(Integer, primary_key=True, index=True)
    # Unique: one record per policy, whatever its status
    policy_id = Column(
        Integer, ForeignKey("escalation_policies.id"), nullable=False, unique=True, index=True
    )
    status = Column(
        Enum(
            EscalationStatus,
            name="escalationstatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=EscalationStatus.PENDING,
        nullable=False,
        index=True,
    )
    scheduled_for = Column(UTCDateTime, nullable=False, index=True)
    message_content = Column(Text, nullable=True)
    sent_at = Column(UTCDateTime, nullable=True)
    # Bumped on every status write; compare-and-set matches on it
    version = Column(Integer, default=1, server_default="1", nullable=False)
    # Tagged by "kind": pending | sent | failure | cancelled (see src.schemas.escalation)
    delivery_receipt = Column(JSONType, nullable=True)

    # Relationships
    policy = relationship("EscalationPolicy", back_populates="escalation")
    engagement = relationship(
        "EscalationEngagement", back_populates="escalation", uselist=False
    )
    receipt_events = relationship(
        "DeliveryReceiptEvent",
        back_populates="escalation",
        order_by="DeliveryReceiptEvent.occurred_at",
    )

    def __repr__(self) -> str:
        return f"<Escalation(id={self.id}, policy_id={self.policy_id}, status={self.status})>"
