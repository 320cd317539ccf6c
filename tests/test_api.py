"""API endpoint tests."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from src.api.dependencies import get_worker
from src.config import get_settings
from src.main import app
from src.models import Escalation, User
from src.models.enums import EscalationStatus
from src.services.escalation_delivery import EscalationDeliveryWorker
from src.services.escalation_state import EscalationStateManager
from src.services.shame_messages import ShameMessageGenerator


@pytest.fixture
def fake_notifier(client, store, notifier):
    def override_get_worker():
        return EscalationDeliveryWorker(
            store=store,
            state_manager=EscalationStateManager(store),
            notifier=notifier,
            generator=ShameMessageGenerator(),
        )

    app.dependency_overrides[get_worker] = override_get_worker
    return notifier


@pytest.fixture
def overdue_policy(make_task, make_contact, make_policy):
    task = make_task(due_at=datetime.now(UTC) - timedelta(hours=2))
    return make_policy(task, make_contact(), minutes_after_due=30)


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.parametrize("path", ["/api/v1/escalation/schedule", "/api/v1/escalation/deliver"])
def test_cron_endpoints_require_secret(client, db, overdue_policy, path):
    assert client.post(path).status_code == 401
    assert client.post(path, headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert db.query(Escalation).count() == 0


def test_cron_endpoint_rejects_when_secret_unset(client, cron_headers, monkeypatch):
    monkeypatch.setattr(get_settings(), "cron_secret", None)
    response = client.post("/api/v1/escalation/schedule", headers=cron_headers)
    assert response.status_code == 401


def test_schedule_then_deliver(client, db, cron_headers, overdue_policy, fake_notifier):
    response = client.post("/api/v1/escalation/schedule", headers=cron_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["success"]
    assert data["summary"] == {
        "overdue_tasks_checked": 1,
        "escalations_scheduled": 1,
        "errors": 0,
    }
    assert data["scheduled_escalations"][0]["policy_id"] == overdue_policy.id

    response = client.post("/api/v1/escalation/deliver", headers=cron_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["summary"]["processed"] == 1
    assert data["summary"]["delivered"] == 1
    assert len(fake_notifier.sent) == 1
    assert db.query(Escalation).one().status == EscalationStatus.SENT


def test_deliver_endpoint_closes_notifier(client, store, cron_headers, notifier):
    worker = EscalationDeliveryWorker(
        store=store,
        state_manager=EscalationStateManager(store),
        notifier=notifier,
        generator=ShameMessageGenerator(),
    )

    with patch("src.api.dependencies.get_delivery_worker", return_value=worker):
        response = client.post("/api/v1/escalation/deliver", headers=cron_headers)

    assert response.status_code == 200
    assert notifier.closed


def test_stats(client, cron_headers, make_escalation):
    make_escalation()
    response = client.get("/api/v1/escalation/stats?timeframe=7d", headers=cron_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["timeframe"] == "7d"
    assert data["total_escalations"] == 1
    assert data["status_breakdown"] == {"pending": 1}


def test_preview_requires_user(client):
    assert client.post("/api/v1/escalation/preview", json={}).status_code == 401


def test_preview(client, auth_headers):
    response = client.post(
        "/api/v1/escalation/preview",
        headers=auth_headers,
        json={"level": 3, "variant": 0, "task_title": "Taxes", "overdue_minutes": 1500},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["level"] == 3
    assert data["intensity_label"] == "maximum shame"
    assert "Taxes" in data["subject"]
    assert "1 days and 1 hours" in data["body"]
    assert "utterly unreliable" in data["adjectives"]
    assert data["emojis"][0] == "💀"


def test_resend_webhook_marks_sent(client, db, make_escalation):
    escalation = make_escalation()
    payload = {
        "type": "email.delivered",
        "created_at": datetime.now(UTC).isoformat(),
        "data": {
            "email_id": "re_1",
            "to": ["sam@example.com"],
            "tags": [{"name": "escalation_id", "value": str(escalation.id)}],
        },
    }

    response = client.post("/api/v1/webhooks/resend", json=payload)

    assert response.status_code == 200
    assert response.json()["processed"]
    db.expire_all()
    assert db.query(Escalation).one().status == EscalationStatus.SENT


def test_resend_webhook_ignores_other_emails(client):
    payload = {"type": "email.sent", "data": {"email_id": "re_1", "tags": []}}
    response = client.post("/api/v1/webhooks/resend", json=payload)
    assert response.status_code == 200
    assert response.json()["processed"] is False


def test_resend_webhook_rejects_invalid_payload(client):
    response = client.post("/api/v1/webhooks/resend", json={"data": {}})
    assert response.status_code == 422


def test_resend_webhook_rejects_naive_timestamps(client, make_escalation):
    escalation = make_escalation()
    payload = {
        "type": "email.opened",
        "created_at": "2025-01-15T12:00:00",
        "data": {
            "email_id": "re_1",
            "tags": [{"name": "escalation_id", "value": str(escalation.id)}],
        },
    }

    response = client.post("/api/v1/webhooks/resend", json=payload)

    assert response.status_code == 422


def test_resend_webhook_signature(client, monkeypatch, webhook_secret, sign_webhook):
    monkeypatch.setattr(get_settings(), "resend_webhook_secret", webhook_secret)
    body = json.dumps({"type": "email.sent", "data": {"email_id": "re_1"}}).encode()
    headers = sign_webhook(body, timestamp=int(datetime.now(UTC).timestamp()))

    unsigned = client.post("/api/v1/webhooks/resend", content=body)
    signed = client.post(
        "/api/v1/webhooks/resend",
        content=body,
        headers={**headers, "Content-Type": "application/json"},
    )

    assert unsigned.status_code == 401
    assert signed.status_code == 200


def test_receipts_list_and_detail(client, auth_headers, state_manager, make_escalation):
    sent = make_escalation(level=1)
    pending = make_escalation(level=2)
    state_manager.mark_sent(sent.id, message_id="re_9")

    response = client.get("/api/v1/receipts", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert {r["id"] for r in data["receipts"]} == {sent.id, pending.id}
    assert data["pagination"] == {"offset": 0, "limit": 50, "has_more": False}
    assert data["summary"]["total"] == 2
    assert data["summary"]["status_breakdown"] == {"sent": 1, "pending": 1}

    filtered = client.get("/api/v1/receipts?status=sent&limit=1", headers=auth_headers).json()
    assert [r["id"] for r in filtered["receipts"]] == [sent.id]
    assert filtered["receipts"][0]["delivery"]["message_id"] == "re_9"
    assert filtered["receipts"][0]["contact"]["relationship"] == "friend"

    detail = client.get(f"/api/v1/receipts/{sent.id}", headers=auth_headers)
    assert detail.status_code == 200
    assert detail.json()["timeline"]["sent"] is not None
    assert detail.json()["delivery"]["details"]["kind"] == "sent"


def test_receipts_are_private(client, db, auth_headers, make_escalation):
    escalation = make_escalation()
    stranger = User(email="other@example.com")
    db.add(stranger)
    db.commit()
    escalation.policy.task.owner_id = stranger.id
    db.commit()

    assert client.get(f"/api/v1/receipts/{escalation.id}", headers=auth_headers).status_code == 404
    assert client.get("/api/v1/receipts", headers=auth_headers).json()["receipts"] == []
    assert client.get("/api/v1/receipts").status_code == 401
