"""FastAPI dependencies for authentication and services."""

import hmac
import logging
from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from src.config import get_settings
from src.database import get_db
from src.models.user import User
from src.services.auth import decode_access_token
from src.services.escalation_delivery import EscalationDeliveryWorker, get_delivery_worker
from src.services.escalation_scheduler import EscalationScheduler, get_escalation_scheduler
from src.services.escalation_state import EscalationStateManager
from src.services.escalation_store import SqlEscalationStore
from src.services.receipt_ingestor import ReceiptIngestor, get_receipt_ingestor
from src.services.receipts import ReceiptsService, get_receipts_service

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid authentication credentials")

    user_id = payload.get("sub")
    if user_id is None or not str(user_id).isdigit():
        raise _unauthorized("Invalid authentication credentials")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise _unauthorized("User not found")

    return user


def verify_cron_secret(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> None:
    """Reject requests whose bearer token does not match CRON_SECRET."""
    cron_secret = get_settings().cron_secret
    if (
        not cron_secret
        or credentials is None
        or not hmac.compare_digest(credentials.credentials.encode(), cron_secret.encode())
    ):
        logger.warning("Rejected escalation trigger with invalid cron secret")
        raise _unauthorized("Unauthorized - Invalid cron secret")


def get_scheduler(db: Annotated[Session, Depends(get_db)]) -> EscalationScheduler:
    """Get escalation scheduler with dependencies."""
    return get_escalation_scheduler(db)


def get_worker(
    db: Annotated[Session, Depends(get_db)],
) -> Generator[EscalationDeliveryWorker, None, None]:
    """Get delivery worker with dependencies; closes its notifier after the request."""
    worker = get_delivery_worker(db)
    try:
        yield worker
    finally:
        worker.notifier.close()


def get_state_manager(db: Annotated[Session, Depends(get_db)]) -> EscalationStateManager:
    """Get escalation state manager with dependencies."""
    return EscalationStateManager(SqlEscalationStore(db))


def get_ingestor(db: Annotated[Session, Depends(get_db)]) -> ReceiptIngestor:
    """Get receipt ingestor with dependencies."""
    return get_receipt_ingestor(db)


def get_receipts(db: Annotated[Session, Depends(get_db)]) -> ReceiptsService:
    """Get receipts service with dependencies."""
    return get_receipts_service(db)
