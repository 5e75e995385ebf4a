"""
Square Webhook Route

Receives Square labor notifications. Signature and envelope problems are
rejected; everything after that is acknowledged.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.db.session import get_db
from backend.services.square_webhooks import SIGNATURE_HEADER, SquareWebhookProcessor
from integrations.exceptions import SignatureInvalid, WebhookPayloadInvalid

logger = logging.getLogger(__name__)

router = APIRouter()


def get_webhook_processor(db: AsyncSession = Depends(get_db)) -> SquareWebhookProcessor:
    return SquareWebhookProcessor(db)


@router.post(
    "/square/webhook",
    summary="Square webhook",
    description="Timecard created/updated notifications from Square.",
)
async def square_webhook(
    request: Request,
    processor: SquareWebhookProcessor = Depends(get_webhook_processor),
) -> dict:
    settings = get_settings()
    if not settings.square_webhook_signature_key or not settings.square_webhook_notification_url:
        logger.error("Square webhook received but signing key or notification URL is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook not configured",
        )

    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing signature header",
        )

    body = await request.body()
    try:
        outcome = await processor.process(body, signature)
    except SignatureInvalid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    except WebhookPayloadInvalid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    logger.info(f"Square webhook handled: {outcome.value}")
    return {"received": True}
