"""Receipts API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_current_user, get_receipts
from src.models.enums import EscalationStatus
from src.models.user import User
from src.schemas.receipt import ReceiptDetailResponse, ReceiptsListResponse
from src.services.receipts import ReceiptsService

router = APIRouter(prefix="/api/v1/receipts", tags=["receipts"])


@router.get("", response_model=ReceiptsListResponse)
def list_receipts(
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ReceiptsService, Depends(get_receipts)],
    task_id: int | None = None,
    status_filter: Annotated[EscalationStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
):
    """Get the current user's escalation receipts with a 30 day summary."""
    return service.list_receipts(
        current_user, task_id=task_id, status=status_filter, limit=limit, offset=offset
    )


@router.get("/{escalation_id}", response_model=ReceiptDetailResponse)
def get_receipt(
    escalation_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ReceiptsService, Depends(get_receipts)],
):
    """Get the detailed receipt of one escalation."""
    receipt = service.get_receipt(current_user, escalation_id)
    if receipt is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found")
    return receipt
