"""Webhook endpoints for Resend delivery events."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from src.api.dependencies import get_ingestor
from src.config import get_settings
from src.schemas.receipt import ResendWebhook, WebhookResult
from src.services.receipt_ingestor import ReceiptIngestor, verify_resend_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/resend", response_model=WebhookResult)
async def handle_resend_webhook(
    request: Request,
    ingestor: Annotated[ReceiptIngestor, Depends(get_ingestor)],
):
    """Handle delivery callbacks from Resend.

    When RESEND_WEBHOOK_SECRET is set the Svix signature headers are required.
    Emails without an escalation_id tag are acknowledged but not processed.
    """
    body = await request.body()

    secret = get_settings().resend_webhook_secret
    if secret and not verify_resend_signature(body, request.headers, secret):
        logger.warning("Rejected Resend webhook with invalid signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        webhook = ResendWebhook.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False),
        ) from e

    logger.info(f"Received Resend webhook: {webhook.type} for {webhook.data.email_id}")
    return ingestor.ingest_webhook(webhook)
