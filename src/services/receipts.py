"""Receipts service: the task owner's view of escalation history."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Query, Session, joinedload

from src.models import Escalation, EscalationPolicy, Task, User
from src.models.enums import EscalationStatus
from src.schemas.escalation import FailureDetails, SentDetails, parse_delivery_receipt
from src.schemas.receipt import (
    DeliveryStats,
    EngagementStats,
    ReceiptContact,
    ReceiptDelivery,
    ReceiptDetailResponse,
    ReceiptEscalationInfo,
    ReceiptEventResponse,
    ReceiptOwner,
    ReceiptPagination,
    ReceiptResponse,
    ReceiptsListResponse,
    ReceiptsSummary,
    ReceiptTask,
    ReceiptTimeline,
    ReliabilityStats,
)
from src.services.escalation_state import retry_count_of

logger = logging.getLogger(__name__)

SUMMARY_WINDOW_DAYS = 30


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


class ReceiptsService:
    """Read-only queries over a user's escalations."""

    def __init__(self, db: Session):
        self.db = db

    def _user_escalations(self, user: User) -> Query:
        return (
            self.db.query(Escalation)
            .join(EscalationPolicy, Escalation.policy_id == EscalationPolicy.id)
            .join(Task, EscalationPolicy.task_id == Task.id)
            .filter(Task.owner_id == user.id)
        )

    def list_receipts(
        self,
        user: User,
        task_id: int | None = None,
        status: EscalationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ReceiptsListResponse:
        """Newest receipts first, with a summary over the last 30 days."""
        query = self._user_escalations(user).options(
            joinedload(Escalation.policy).joinedload(EscalationPolicy.contact),
            joinedload(Escalation.policy).joinedload(EscalationPolicy.task).joinedload(Task.owner),
            joinedload(Escalation.engagement),
        )
        if task_id is not None:
            query = query.filter(EscalationPolicy.task_id == task_id)
        if status is not None:
            query = query.filter(Escalation.status == status)

        rows = (
            query.order_by(Escalation.created_at.desc(), Escalation.id.desc())
            .offset(offset)
            .limit(limit + 1)
            .all()
        )
        has_more = len(rows) > limit
        rows = rows[:limit]

        return ReceiptsListResponse(
            receipts=[self._to_receipt(escalation) for escalation in rows],
            pagination=ReceiptPagination(offset=offset, limit=limit, has_more=has_more),
            summary=self.get_summary(user, task_id=task_id),
        )

    def get_summary(self, user: User, task_id: int | None = None) -> ReceiptsSummary:
        """Delivery, engagement and retry statistics for recent escalations."""
        now = datetime.now(UTC)
        query = self._user_escalations(user).options(joinedload(Escalation.engagement))
        if task_id is not None:
            query = query.filter(EscalationPolicy.task_id == task_id)
        escalations = query.filter(
            Escalation.created_at >= now - timedelta(days=SUMMARY_WINDOW_DAYS)
        ).all()

        total = len(escalations)
        status_counts: dict[str, int] = {}
        delivered = bounced = opened = clicked = retried = 0
        for escalation in escalations:
            status_value = EscalationStatus(escalation.status).value
            status_counts[status_value] = status_counts.get(status_value, 0) + 1
            engagement = escalation.engagement
            if engagement is not None:
                delivered += int(engagement.delivery_confirmed)
                bounced += int(engagement.bounced_at is not None)
                opened += int(engagement.opened_at is not None)
                clicked += int(engagement.clicked_at is not None)
            if retry_count_of(parse_delivery_receipt(escalation.delivery_receipt)) > 0:
                retried += 1

        return ReceiptsSummary(
            total=total,
            status_breakdown=status_counts,
            delivery=DeliveryStats(
                delivered=delivered, bounced=bounced, rate=_rate(delivered, total)
            ),
            engagement=EngagementStats(
                opened=opened,
                clicked=clicked,
                open_rate=_rate(opened, delivered),
                click_rate=_rate(clicked, delivered),
            ),
            reliability=ReliabilityStats(retried=retried, retry_rate=_rate(retried, total)),
            timeframe=f"{SUMMARY_WINDOW_DAYS} days",
            generated_at=now,
        )

    def get_receipt(self, user: User, escalation_id: int) -> ReceiptDetailResponse | None:
        """Detailed receipt, or None when it does not exist or belongs to someone else."""
        escalation = (
            self._user_escalations(user)
            .options(
                joinedload(Escalation.policy).joinedload(EscalationPolicy.contact),
                joinedload(Escalation.engagement),
            )
            .filter(Escalation.id == escalation_id)
            .first()
        )
        if escalation is None:
            return None

        delivery = self._to_delivery(escalation)
        policy = escalation.policy
        return ReceiptDetailResponse(
            escalation_id=escalation.id,
            status=escalation.status,
            timeline=ReceiptTimeline(
                created=escalation.created_at,
                scheduled=escalation.scheduled_for,
                sent=escalation.sent_at,
                delivered=delivery.delivered_at,
                opened=delivery.opened_at,
                clicked=delivery.clicked_at,
            ),
            delivery=delivery,
            message_content=escalation.message_content,
            level=policy.level,
            task=ReceiptTask.model_validate(policy.task),
            contact=self._to_contact(policy),
            events=[ReceiptEventResponse.model_validate(e) for e in escalation.receipt_events],
        )

    def _to_receipt(self, escalation: Escalation) -> ReceiptResponse:
        policy = escalation.policy
        owner = policy.task.owner
        return ReceiptResponse(
            id=escalation.id,
            created_at=escalation.created_at,
            updated_at=escalation.updated_at,
            status=escalation.status,
            scheduled_for=escalation.scheduled_for,
            sent_at=escalation.sent_at,
            task=ReceiptTask.model_validate(policy.task),
            escalation=ReceiptEscalationInfo(
                level=policy.level,
                minutes_after_due=policy.minutes_after_due,
                message_content=escalation.message_content,
            ),
            contact=self._to_contact(policy),
            owner=ReceiptOwner(email=owner.email, full_name=owner.full_name),
            delivery=self._to_delivery(escalation),
        )

    def _to_contact(self, policy: EscalationPolicy) -> ReceiptContact:
        contact = policy.contact
        return ReceiptContact(
            id=contact.id,
            name=contact.name,
            email=contact.email,
            relationship=contact.relation,
            verified=contact.verified,
        )

    def _to_delivery(self, escalation: Escalation) -> ReceiptDelivery:
        details = parse_delivery_receipt(escalation.delivery_receipt)
        engagement = escalation.engagement
        delivery = ReceiptDelivery(details=details, retries=retry_count_of(details))

        if isinstance(details, SentDetails):
            delivery.message_id = details.message_id
        elif isinstance(details, FailureDetails):
            delivery.failure_reason = details.reason
            delivery.next_retry_at = details.next_retry_at

        if engagement is not None:
            delivery.delivery_confirmed = engagement.delivery_confirmed
            delivery.delivered_at = engagement.delivered_at
            delivery.opened_at = engagement.opened_at
            delivery.clicked_at = engagement.clicked_at
            delivery.bounced = engagement.bounced_at is not None
            delivery.complained = engagement.complained_at is not None
        return delivery


def get_receipts_service(db: Session) -> ReceiptsService:
    """Get a receipts service instance."""
    return ReceiptsService(db)
