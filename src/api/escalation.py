"""Escalation API endpoints: cron triggers, monitoring and message previews."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import (
    get_current_user,
    get_scheduler,
    get_state_manager,
    get_worker,
    verify_cron_secret,
)
from src.config import get_settings
from src.models.user import User
from src.schemas.escalation import (
    DeliveryRunResult,
    EscalationStats,
    ScheduleRunResult,
    ShameMessageResponse,
    ShamePreviewRequest,
)
from src.services.escalation_delivery import EscalationDeliveryWorker
from src.services.escalation_scheduler import EscalationScheduler
from src.services.escalation_state import EscalationStateManager
from src.services.shame_messages import (
    ShameContext,
    ShameMessageGenerator,
    get_escalation_emojis,
    get_shame_adjectives,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/escalation", tags=["escalation"])


@router.post(
    "/schedule",
    response_model=ScheduleRunResult,
    dependencies=[Depends(verify_cron_secret)],
)
def schedule_escalations(
    scheduler: Annotated[EscalationScheduler, Depends(get_scheduler)],
):
    """Create escalation records for overdue tasks whose thresholds have passed."""
    return scheduler.run()


@router.post(
    "/deliver",
    response_model=DeliveryRunResult,
    dependencies=[Depends(verify_cron_secret)],
)
def deliver_escalations(
    worker: Annotated[EscalationDeliveryWorker, Depends(get_worker)],
):
    """Deliver every pending or retrying escalation that is due."""
    return worker.run()


@router.get(
    "/stats",
    response_model=EscalationStats,
    dependencies=[Depends(verify_cron_secret)],
)
def get_escalation_stats(
    state_manager: Annotated[EscalationStateManager, Depends(get_state_manager)],
    timeframe: Annotated[str, Query(pattern="^(1h|24h|7d|30d)$")] = "24h",
):
    """Escalation counts by status for monitoring."""
    return state_manager.get_stats(timeframe)


@router.post("/preview", response_model=ShameMessageResponse)
async def preview_shame_message(
    request: ShamePreviewRequest,
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Render a sample escalation message as a contact would receive it."""
    settings = get_settings()
    generator = ShameMessageGenerator(timezone=settings.display_timezone)
    message = generator.generate(
        request.level,
        ShameContext(
            task_title=request.task_title,
            owner_name=current_user.display_name,
            owner_email=current_user.email,
            contact_name=request.contact_name,
            due_date=datetime.now(UTC) - timedelta(minutes=request.overdue_minutes),
            overdue_minutes=request.overdue_minutes,
            relationship=request.relationship,
            custom_message=request.custom_message,
        ),
        variant=request.variant,
    )
    return ShameMessageResponse(
        subject=message.subject,
        opening=message.opening,
        body=message.body,
        call_to_action=message.call_to_action,
        level=message.level,
        intensity_label=message.intensity_label,
        adjectives=get_shame_adjectives(message.level),
        emojis=get_escalation_emojis(message.level),
    )
