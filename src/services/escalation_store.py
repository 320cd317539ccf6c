"""Storage access for escalation records and the entities they join.

The scheduler, delivery worker, state manager and receipt ingestor take an
``EscalationStore`` in their constructors; ``SqlEscalationStore`` is the
SQLAlchemy implementation used by the API and Celery tasks.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from src.models import (
    DeliveryReceiptEvent,
    Escalation,
    EscalationEngagement,
    EscalationPolicy,
    Task,
)
from src.models.enums import EscalationStatus, ReceiptEventType, TaskStatus

logger = logging.getLogger(__name__)

OPEN_STATUSES = (EscalationStatus.PENDING, EscalationStatus.RETRYING)


class DuplicateEscalationError(Exception):
    """An escalation record already exists for the policy."""

    def __init__(self, policy_id: int):
        self.policy_id = policy_id
        super().__init__(f"Escalation already exists for policy {policy_id}")


class EscalationStore(Protocol):
    """Operations the escalation components need from persistence."""

    def list_overdue_tasks(self, now: datetime) -> Sequence[Task]: ...

    def escalation_exists_for_policy(self, policy_id: int) -> bool: ...

    def create_escalation(
        self,
        policy_id: int,
        scheduled_for: datetime,
        message_content: str,
        delivery_receipt: dict[str, Any],
    ) -> Escalation: ...

    def list_due_escalations(self, now: datetime) -> Sequence[Escalation]: ...

    def get_escalation(self, escalation_id: int) -> Escalation | None: ...

    def list_open_escalations_for_task(self, task_id: int) -> Sequence[Escalation]: ...

    def compare_and_set_status(
        self,
        escalation_id: int,
        expected_status: EscalationStatus,
        values: dict[str, Any],
        expected_version: int | None = None,
    ) -> bool: ...

    def count_by_status_since(self, cutoff: datetime) -> dict[EscalationStatus, int]: ...

    def merge_engagement(
        self, escalation_id: int, values: dict[str, Any]
    ) -> EscalationEngagement: ...

    def add_receipt_event(
        self,
        escalation_id: int,
        event_type: ReceiptEventType,
        occurred_at: datetime,
        provider_message_id: str | None,
        recipient: str | None,
        provider_payload: dict[str, Any],
    ) -> DeliveryReceiptEvent: ...

    def rollback(self) -> None: ...


class SqlEscalationStore:
    """EscalationStore backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def list_overdue_tasks(self, now: datetime) -> list[Task]:
        """Pending tasks past their due time, oldest deadline first."""
        return (
            self.db.query(Task)
            .options(
                selectinload(Task.escalation_policies).joinedload(EscalationPolicy.contact),
                joinedload(Task.owner),
            )
            .filter(Task.status == TaskStatus.PENDING, Task.due_at < now)
            .order_by(Task.due_at.asc(), Task.id.asc())
            .all()
        )

    def escalation_exists_for_policy(self, policy_id: int) -> bool:
        return (
            self.db.query(Escalation.id).filter(Escalation.policy_id == policy_id).first()
            is not None
        )

    def create_escalation(
        self,
        policy_id: int,
        scheduled_for: datetime,
        message_content: str,
        delivery_receipt: dict[str, Any],
    ) -> Escalation:
        """Insert a pending escalation.

        Raises:
            DuplicateEscalationError: another record for the policy won the insert
        """
        escalation = Escalation(
            policy_id=policy_id,
            status=EscalationStatus.PENDING,
            scheduled_for=scheduled_for,
            message_content=message_content,
            delivery_receipt=delivery_receipt,
        )
        self.db.add(escalation)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self.escalation_exists_for_policy(policy_id):
                raise DuplicateEscalationError(policy_id) from None
            raise
        self.db.refresh(escalation)
        return escalation

    def list_due_escalations(self, now: datetime) -> list[Escalation]:
        """Pending or retrying escalations scheduled at or before now."""
        return (
            self.db.query(Escalation)
            .options(
                joinedload(Escalation.policy).joinedload(EscalationPolicy.contact),
                joinedload(Escalation.policy)
                .joinedload(EscalationPolicy.task)
                .joinedload(Task.owner),
            )
            .filter(
                Escalation.status.in_(OPEN_STATUSES),
                Escalation.scheduled_for <= now,
            )
            .order_by(Escalation.scheduled_for.asc(), Escalation.id.asc())
            .all()
        )

    def get_escalation(self, escalation_id: int) -> Escalation | None:
        return self.db.query(Escalation).filter(Escalation.id == escalation_id).first()

    def list_open_escalations_for_task(self, task_id: int) -> list[Escalation]:
        return (
            self.db.query(Escalation)
            .join(EscalationPolicy, Escalation.policy_id == EscalationPolicy.id)
            .filter(
                EscalationPolicy.task_id == task_id,
                Escalation.status.in_(OPEN_STATUSES),
            )
            .order_by(Escalation.id.asc())
            .all()
        )

    def compare_and_set_status(
        self,
        escalation_id: int,
        expected_status: EscalationStatus,
        values: dict[str, Any],
        expected_version: int | None = None,
    ) -> bool:
        """Apply values only if the row still has the expected status.

        With ``expected_version`` the row must also be unchanged since it was
        read, which catches a concurrent write that kept the same status.
        """
        conditions = [Escalation.id == escalation_id, Escalation.status == expected_status]
        if expected_version is not None:
            conditions.append(Escalation.version == expected_version)
        result = self.db.execute(
            update(Escalation)
            .where(*conditions)
            .values(**values, version=Escalation.version + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def count_by_status_since(self, cutoff: datetime) -> dict[EscalationStatus, int]:
        rows = (
            self.db.query(Escalation.status, func.count(Escalation.id))
            .filter(Escalation.created_at >= cutoff)
            .group_by(Escalation.status)
            .all()
        )
        return {EscalationStatus(status): count for status, count in rows}

    def merge_engagement(
        self, escalation_id: int, values: dict[str, Any]
    ) -> EscalationEngagement:
        """Create or update the engagement row with the given fields."""
        engagement = (
            self.db.query(EscalationEngagement)
            .filter(EscalationEngagement.escalation_id == escalation_id)
            .first()
        )
        if not engagement:
            engagement = EscalationEngagement(escalation_id=escalation_id)
            self.db.add(engagement)

        for field, value in values.items():
            setattr(engagement, field, value)

        self.db.commit()
        self.db.refresh(engagement)
        return engagement

    def add_receipt_event(
        self,
        escalation_id: int,
        event_type: ReceiptEventType,
        occurred_at: datetime,
        provider_message_id: str | None,
        recipient: str | None,
        provider_payload: dict[str, Any],
    ) -> DeliveryReceiptEvent:
        event = DeliveryReceiptEvent(
            escalation_id=escalation_id,
            event_type=event_type,
            occurred_at=occurred_at,
            provider_message_id=provider_message_id,
            recipient=recipient,
            provider_payload=provider_payload,
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event

    def rollback(self) -> None:
        self.db.rollback()
