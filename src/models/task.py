"""Task model."""

from sqlalchemy import Column, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.enums import TaskPriority, TaskStatus
from src.models.mixins import TimestampMixin, UTCDateTime


class Task(Base, TimestampMixin):
    """A deadline the owner committed to."""

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    due_at = Column(UTCDateTime, nullable=False, index=True)
    priority = Column(
        Enum(
            TaskPriority,
            name="taskpriority",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=TaskPriority.MEDIUM,
        nullable=False,
    )
    status = Column(
        Enum(
            TaskStatus,
            name="taskstatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=TaskStatus.PENDING,
        nullable=False,
        index=True,
    )
    completed_at = Column(UTCDateTime, nullable=True)

    # Relationships
    owner = relationship("User", backref="tasks")
    escalation_policies = relationship(
        "EscalationPolicy",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="EscalationPolicy.level",
    )
