"""Tests for the escalation delivery worker."""

import random
from datetime import timedelta
from unittest.mock import patch

import pytest

from src.config import get_settings
from src.models.enums import EscalationStatus, TaskStatus
from src.schemas.escalation import parse_delivery_receipt
from src.services.escalation_delivery import EscalationDeliveryWorker
from src.services.notifier import NotifierResult
from src.services.shame_messages import ShameMessageGenerator


@pytest.fixture
def worker(store, state_manager, notifier):
    return EscalationDeliveryWorker(
        store=store,
        state_manager=state_manager,
        notifier=notifier,
        generator=ShameMessageGenerator(rng=random.Random(0)),
        settings=get_settings(),
    )


def test_delivers_due_escalation(worker, notifier, state_manager, make_escalation, fixed_now):
    escalation = make_escalation(level=2)

    result = worker.run(now=fixed_now)

    assert result.summary.processed == 1
    assert result.summary.delivered == 1
    assert result.delivery_results[0].status == "sent"
    assert result.delivery_results[0].message_id == "msg_1"

    sent = notifier.sent[0]
    assert sent["to"] == "sam@example.com"
    assert sent["tags"]["escalation_id"] == str(escalation.id)
    assert sent["tags"]["type"] == "escalation"
    assert sent["tags"]["level"] == "2"
    assert "Please check in with Jo." in sent["html"]

    record = state_manager.get_escalation(escalation.id)
    assert record.status == EscalationStatus.SENT
    assert record.sent_at == fixed_now
    assert parse_delivery_receipt(record.delivery_receipt).message_id == "msg_1"


def test_sent_at_is_taken_after_the_send(worker, notifier, state_manager, clock, make_escalation):
    escalation = make_escalation()
    batch_started = clock.now
    real_send = notifier.send

    def slow_send(to, subject, html, tags):
        clock.now = batch_started + timedelta(minutes=2)
        return real_send(to, subject, html, tags)

    with patch.object(notifier, "send", side_effect=slow_send):
        worker.run(now=batch_started)

    record = state_manager.get_escalation(escalation.id)
    assert record.sent_at == batch_started + timedelta(minutes=2)
    assert parse_delivery_receipt(record.delivery_receipt).sent_at == record.sent_at


def test_ignores_future_and_terminal_records(
    worker, notifier, state_manager, make_escalation, fixed_now
):
    make_escalation(scheduled_for=fixed_now + timedelta(minutes=10))
    done = make_escalation()
    state_manager.mark_sent(done.id)

    result = worker.run(now=fixed_now)

    assert result.summary.processed == 0
    assert notifier.sent == []


def test_completed_task_is_cancelled_without_sending(
    db, worker, notifier, state_manager, make_escalation, fixed_now
):
    escalation = make_escalation()
    task = escalation.policy.task
    task.status = TaskStatus.COMPLETED
    task.completed_at = fixed_now - timedelta(minutes=5)
    db.commit()

    result = worker.run(now=fixed_now)

    assert notifier.sent == []
    assert result.summary.cancelled == 1
    record = state_manager.get_escalation(escalation.id)
    assert record.status == EscalationStatus.CANCELLED
    receipt = parse_delivery_receipt(record.delivery_receipt)
    assert receipt.reason == "task_completed"
    assert receipt.metadata["completed_at"] == task.completed_at.isoformat()


def test_unverified_contact_fails_permanently(
    db, worker, notifier, state_manager, make_escalation, fixed_now
):
    escalation = make_escalation()
    escalation.policy.contact.verified = False
    db.commit()

    result = worker.run(now=fixed_now)

    assert notifier.sent == []
    assert result.summary.failed == 1
    assert result.errors[0].final_failure
    record = state_manager.get_escalation(escalation.id)
    assert record.status == EscalationStatus.FAILED
    assert parse_delivery_receipt(record.delivery_receipt).reason == "contact_not_verified"


def test_provider_failure_schedules_retry(
    worker, notifier, state_manager, make_escalation, fixed_now
):
    escalation = make_escalation()
    notifier.results = [
        NotifierResult(success=False, error_message="rate limit exceeded: slow down")
    ]

    result = worker.run(now=fixed_now)

    outcome = result.delivery_results[0]
    assert outcome.status == "retrying"
    assert outcome.will_retry
    assert outcome.retry_count == 1
    assert outcome.reason == "rate_limited"
    assert result.summary.retrying == 1
    assert result.errors == []

    record = state_manager.get_escalation(escalation.id)
    assert record.status == EscalationStatus.RETRYING
    assert record.scheduled_for == fixed_now + timedelta(minutes=5)

    # Not due again until the backoff elapses
    assert worker.run(now=fixed_now + timedelta(minutes=4)).summary.processed == 0
    retry = worker.run(now=fixed_now + timedelta(minutes=5))
    assert retry.summary.delivered == 1
    assert len(notifier.sent) == 2


def test_invalid_email_is_final(worker, notifier, make_escalation, fixed_now):
    make_escalation()
    notifier.results = [NotifierResult(success=False, error_message="Invalid email address")]

    result = worker.run(now=fixed_now)

    assert result.delivery_results[0].status == "failed"
    assert result.summary.failed == 1
    assert result.errors[0].final_failure


def test_unexpected_error_is_isolated(worker, notifier, state_manager, make_escalation, fixed_now):
    broken = make_escalation(scheduled_for=fixed_now - timedelta(minutes=5))
    healthy = make_escalation(scheduled_for=fixed_now - timedelta(minutes=1))
    real_send = notifier.send

    def send(to, subject, html, tags):
        if tags["escalation_id"] == str(broken.id):
            raise RuntimeError("template exploded")
        return real_send(to, subject, html, tags)

    with patch.object(notifier, "send", side_effect=send):
        result = worker.run(now=fixed_now)

    statuses = {o.escalation_id: o.status for o in result.delivery_results}
    assert statuses == {broken.id: "retrying", healthy.id: "sent"}
    receipt = parse_delivery_receipt(state_manager.get_escalation(broken.id).delivery_receipt)
    assert receipt.reason == "unknown_error"
    assert receipt.last_error == "template exploded"
