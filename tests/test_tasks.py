"""Tests for the Celery escalation tasks."""

from unittest.mock import patch

from src.models import Escalation
from src.models.enums import EscalationStatus
from src.services.escalation_delivery import EscalationDeliveryWorker
from src.services.escalation_state import EscalationStateManager
from src.services.escalation_store import SqlEscalationStore
from src.services.shame_messages import ShameMessageGenerator
from src.tasks.escalations import deliver_escalations, schedule_escalations


def test_schedule_escalations_task(db, session_factory, make_task, make_contact, make_policy):
    policy = make_policy(make_task(), make_contact())

    with patch("src.tasks.escalations.SessionLocal", session_factory):
        result = schedule_escalations()

    assert result["success"]
    assert result["summary"]["escalations_scheduled"] == 1
    assert db.query(Escalation).one().policy_id == policy.id


def test_deliver_escalations_task_closes_notifier(
    db, session_factory, notifier, make_escalation
):
    escalation = make_escalation()

    def build_worker(session):
        store = SqlEscalationStore(session)
        return EscalationDeliveryWorker(
            store=store,
            state_manager=EscalationStateManager(store),
            notifier=notifier,
            generator=ShameMessageGenerator(),
        )

    with (
        patch("src.tasks.escalations.SessionLocal", session_factory),
        patch("src.tasks.escalations.get_delivery_worker", side_effect=build_worker),
    ):
        result = deliver_escalations()

    assert result["summary"]["delivered"] == 1
    assert notifier.closed
    db.expire_all()
    assert db.query(Escalation).one().status == EscalationStatus.SENT
    assert escalation.id == result["delivery_results"][0]["escalation_id"]


def test_schedule_escalations_task_reports_errors(session_factory):
    with (
        patch("src.tasks.escalations.SessionLocal", session_factory),
        patch(
            "src.tasks.escalations.get_escalation_scheduler",
            side_effect=RuntimeError("db down"),
        ),
    ):
        result = schedule_escalations()

    assert result == {"error": "db down"}
