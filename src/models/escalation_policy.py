"""Escalation policy model."""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.mixins import TimestampMixin


class EscalationPolicy(Base, TimestampMixin):
    """Who to notify, and how long after the deadline, for one escalation level."""

    __tablename__ = "escalation_policies"
    __table_args__ = (
        UniqueConstraint("task_id", "level", name="uq_policy_task_level"),
        CheckConstraint("level BETWEEN 1 AND 3", name="ck_policy_level_range"),
        CheckConstraint("minutes_after_due >= 0", name="ck_policy_minutes_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    level = Column(Integer, nullable=False)
    minutes_after_due = Column(Integer, nullable=False, default=0)
    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=False, index=True)
    message_template = Column(Text, nullable=True)  # {{placeholder}} syntax

    # Relationships
    task = relationship("Task", back_populates="escalation_policies")
    contact = relationship("Contact")
    escalation = relationship("Escalation", back_populates="policy", uselist=False)
