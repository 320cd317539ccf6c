"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("CRON_SECRET", "test-cron-secret")

import base64
import hashlib
import hmac
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.config import get_settings
from src.database import Base, get_db
from src.main import app
from src.models import Contact, EscalationPolicy, Task, User
from src.models.enums import TaskStatus
from src.services.escalation_state import EscalationStateManager
from src.services.escalation_store import SqlEscalationStore
from src.services.notifier import NotifierResult

FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)
CRON_SECRET = os.environ["CRON_SECRET"]
WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"super-secret-key").decode()


class AuthHeaders(dict):
    """Dict subclass that also stores user_id."""

    def __init__(self, *args, user_id: int | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = user_id


class FakeNotifier:
    """Notifier that records sends and replays queued results."""

    def __init__(self, results: list[NotifierResult] | None = None):
        self.results = list(results or [])
        self.sent: list[dict] = []
        self.closed = False

    def send(self, to: str, subject: str, html: str, tags: dict[str, str]) -> NotifierResult:
        self.sent.append({"to": to, "subject": subject, "html": html, "tags": tags})
        if self.results:
            return self.results.pop(0)
        return NotifierResult(
            success=True,
            provider_message_id=f"msg_{len(self.sent)}",
            raw_response={"id": f"msg_{len(self.sent)}"},
        )

    def close(self) -> None:
        self.closed = True


# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - use PostgreSQL test database
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace(
        "/accountalist", "/accountalist_test"
    )
else:
    # Running locally - use SQLite
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

connect_args = {"check_same_thread": False} if "sqlite" in SQLALCHEMY_DATABASE_URL else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        # For PostgreSQL, create the test database
        from sqlalchemy_utils import create_database, database_exists

        # Create test database if it doesn't exist
        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield
    # Don't drop database - just leave it for next run (each test cleans up after itself)


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    """A task owner."""
    owner = User(email="jo@example.com", full_name="Jo")
    db.add(owner)
    db.commit()
    return owner


@pytest.fixture
def auth_headers(user):
    """Bearer token for the user, signed like the auth provider's tokens."""
    settings = get_settings()
    token = jwt.encode(
        {"sub": str(user.id), "email": user.email, "exp": datetime.now(UTC) + timedelta(hours=1)},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    return AuthHeaders({"Authorization": f"Bearer {token}"}, user_id=user.id)


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def make_contact(db, user) -> Callable[..., Contact]:
    def _make(name: str = "Sam", email: str = "sam@example.com", verified: bool = True, **kwargs):
        contact = Contact(
            owner_id=user.id,
            name=name,
            email=email,
            relation=kwargs.pop("relation", "friend"),
            verified=verified,
            **kwargs,
        )
        db.add(contact)
        db.commit()
        return contact

    return _make


@pytest.fixture
def make_task(db, user) -> Callable[..., Task]:
    def _make(
        title: str = "Report",
        due_at: datetime = FIXED_NOW - timedelta(hours=2),
        status: TaskStatus = TaskStatus.PENDING,
        **kwargs,
    ):
        task = Task(owner_id=user.id, title=title, due_at=due_at, status=status, **kwargs)
        db.add(task)
        db.commit()
        return task

    return _make


@pytest.fixture
def make_policy(db) -> Callable[..., EscalationPolicy]:
    def _make(task: Task, contact: Contact, level: int = 1, minutes_after_due: int = 0, **kwargs):
        policy = EscalationPolicy(
            task_id=task.id,
            contact_id=contact.id,
            level=level,
            minutes_after_due=minutes_after_due,
            **kwargs,
        )
        db.add(policy)
        db.commit()
        return policy

    return _make


@pytest.fixture
def store(db):
    return SqlEscalationStore(db)


@pytest.fixture
def clock():
    """Mutable clock; set clock.now to move time."""

    class _Clock:
        now = FIXED_NOW

        def __call__(self) -> datetime:
            return self.now

    return _Clock()


@pytest.fixture
def state_manager(store, clock):
    return EscalationStateManager(store, clock=clock)


@pytest.fixture
def make_escalation(store, make_task, make_contact, make_policy):
    """A pending escalation for a fresh task/contact/policy."""

    def _make(level: int = 1, scheduled_for: datetime = FIXED_NOW - timedelta(minutes=1)):
        task = make_task()
        contact = make_contact()
        policy = make_policy(task, contact, level=level)
        return store.create_escalation(
            policy_id=policy.id,
            scheduled_for=scheduled_for,
            message_content="Please check in with Jo.",
            delivery_receipt={"kind": "pending", "created_at": FIXED_NOW.isoformat()},
        )

    return _make


@pytest.fixture
def fixed_now() -> datetime:
    """The instant the clock fixture starts at."""
    return FIXED_NOW


@pytest.fixture
def session_factory():
    """Opens extra sessions on the test database, e.g. for a second worker."""
    return TestingSessionLocal


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def sign_webhook() -> Callable[..., dict[str, str]]:
    """Build Svix signature headers for a webhook body."""

    def _sign(body: bytes, msg_id: str = "msg_1", timestamp: int | None = None):
        timestamp = timestamp or int(FIXED_NOW.timestamp())
        key = base64.b64decode(WEBHOOK_SECRET.removeprefix("whsec_"))
        digest = hmac.new(key, f"{msg_id}.{timestamp}.".encode() + body, hashlib.sha256).digest()
        return {
            "svix-id": msg_id,
            "svix-timestamp": str(timestamp),
            "svix-signature": f"v1,{base64.b64encode(digest).decode()}",
        }

    return _sign
