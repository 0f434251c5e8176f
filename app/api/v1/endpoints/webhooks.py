"""
Payment provider webhook.

Marks orders paid and runs the commission calculation. Processing errors are
rolled back and answered with 500 so the provider redelivers the event.
Order updates and commission creation are idempotent across redelivery.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request, status

from app.api.deps import DB
from app.config import settings
from app.services.payment_webhook_service import PaymentWebhookService, verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/payments",
    summary="Payment provider webhook handler",
    include_in_schema=False  # Hide from API docs for security
)
async def payment_webhook(
    request: Request,
    db: DB,
    signature: Optional[str] = Header(None, alias="Payment-Signature"),
):
    """
    Handle payment events.

    Events handled:
    - payment_intent.succeeded: order paid, commission calculated
    - payment_intent.payment_failed: order marked failed
    """
    body = await request.body()

    if settings.PAYMENT_WEBHOOK_SECRET:
        if not verify_webhook_signature(body, signature, settings.PAYMENT_WEBHOOK_SECRET):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid webhook signature"
            )
    else:
        logger.warning("PAYMENT_WEBHOOK_SECRET not set, accepting unsigned webhook")

    try:
        event = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload"
        )

    event_type = event.get("type") if isinstance(event, dict) else None
    logger.info(f"Received payment webhook: {event_type}")

    service = PaymentWebhookService(db)
    try:
        return await service.handle_event(event)
    except Exception as e:
        logger.error(f"Error processing webhook {event_type}: {e}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed"
        )
