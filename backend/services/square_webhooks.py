"""
Square Webhook Receiver

Verifies and dispatches Square labor events. A verified, parseable event is
always acknowledged; failures while applying the timecard are logged and
left to the next poll.
"""

import base64
import hashlib
import hmac
import json
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.services.square_sync import SquareSyncService
from integrations.base import TimecardData
from integrations.exceptions import SignatureInvalid, WebhookPayloadInvalid
from integrations.pos.square import TIMECARD_EVENT_TYPES, SquareClient

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-square-hmacsha256-signature"


class WebhookOutcome(str, Enum):
    PROCESSED = "processed"
    IGNORED_TENANT = "ignored_tenant"
    IGNORED_TYPE = "ignored_type"
    MISSING_PAYLOAD = "missing_payload"
    UNMAPPED = "unmapped"
    FAILED = "failed"


class SquareWebhookEvent(BaseModel):
    """Envelope of a Square webhook notification."""

    merchant_id: str
    type: str
    event_id: str | None = None
    data: dict[str, Any] = {}

    def timecard_payload(self) -> dict | None:
        obj = self.data.get("object") or {}
        timecard = obj.get("timecard")
        return timecard if isinstance(timecard, dict) else None


def compute_signature(body: bytes, signature_key: str, notification_url: str) -> str:
    """Base64 HMAC-SHA256 over the notification URL followed by the raw body."""
    digest = hmac.new(
        signature_key.encode("utf-8"),
        notification_url.encode("utf-8") + body,
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_signature(
    body: bytes,
    signature: str | None,
    signature_key: str,
    notification_url: str,
) -> bool:
    if not signature or not signature_key or not notification_url:
        return False
    expected = compute_signature(body, signature_key, notification_url)
    return hmac.compare_digest(expected, signature)


def parse_event(body: bytes) -> SquareWebhookEvent:
    try:
        return SquareWebhookEvent.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        raise WebhookPayloadInvalid(f"Unparseable Square webhook: {e}") from e


class SquareWebhookProcessor:
    """Handles one inbound Square notification."""

    def __init__(self, db: AsyncSession, sync_service: SquareSyncService | None = None):
        self.db = db
        self.sync = sync_service or SquareSyncService(db)
        self.settings = self.sync.settings

    async def process(self, body: bytes, signature: str | None) -> WebhookOutcome:
        """
        Verify, parse, resolve the tenant and apply the timecard.

        Raises ``SignatureInvalid`` before touching the database when the
        signature does not verify, and ``WebhookPayloadInvalid`` for a body
        that is not an event envelope.
        """
        if not verify_signature(
            body,
            signature,
            self.settings.square_webhook_signature_key,
            self.settings.square_webhook_notification_url,
        ):
            logger.warning("Rejected Square webhook with invalid signature")
            raise SignatureInvalid("Square webhook signature did not verify")

        event = parse_event(body)

        connection = await self.sync.store.find_by_merchant(event.merchant_id)
        if connection is None:
            logger.warning(
                f"Dropping Square event {event.event_id}: no sync-enabled tenant "
                f"for merchant {event.merchant_id}"
            )
            return WebhookOutcome.IGNORED_TENANT

        if event.type not in TIMECARD_EVENT_TYPES:
            logger.warning(f"Ignoring Square event type {event.type} ({event.event_id})")
            return WebhookOutcome.IGNORED_TYPE

        payload = event.timecard_payload()
        if payload is None:
            logger.warning(f"Square event {event.event_id} has no timecard object")
            return WebhookOutcome.MISSING_PAYLOAD

        tenant_id = connection.tenant_id
        try:
            timecard = TimecardData.model_validate(payload)
            entry_id = await self.sync.process_single_timecard(tenant_id, timecard)
        except Exception as e:
            logger.error(
                f"Failed to apply Square event {event.event_id} "
                f"(timecard {payload.get('id')}) for tenant {tenant_id}: {e}"
            )
            return WebhookOutcome.FAILED

        if entry_id is None:
            logger.info(
                f"Square timecard {timecard.id} for tenant {tenant_id} "
                f"has no confirmed mapping; skipped"
            )
            return WebhookOutcome.UNMAPPED

        logger.info(f"Applied Square timecard {timecard.id} for tenant {tenant_id}")
        return WebhookOutcome.PROCESSED


async def ensure_webhook_subscription(client: SquareClient, notification_url: str) -> dict:
    """
    Subscription that delivers timecard events to ``notification_url``.

    Reuses an enabled subscription already pointing at the URL; otherwise
    creates one.
    """
    for subscription in await client.list_webhook_subscriptions():
        if subscription.get("notification_url") == notification_url and subscription.get(
            "enabled", True
        ):
            logger.info(f"Reusing Square webhook subscription {subscription.get('id')}")
            return subscription
    return await client.create_webhook_subscription(notification_url, TIMECARD_EVENT_TYPES)
