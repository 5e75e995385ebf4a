"""
Register Square Webhook

Ensures a Square webhook subscription delivers timecard events to
SQUARE_WEBHOOK_NOTIFICATION_URL. Safe to run repeatedly.

Usage:
    python -m scripts.register_square_webhook
"""

import asyncio
import sys

from backend.config import get_settings
from backend.services.square_webhooks import ensure_webhook_subscription
from integrations.pos.square import SquareClient


async def register() -> int:
    settings = get_settings()
    if not settings.square_app_access_token:
        print("SQUARE_APP_ACCESS_TOKEN is not set")
        return 1
    if not settings.square_webhook_notification_url:
        print("SQUARE_WEBHOOK_NOTIFICATION_URL is not set")
        return 1

    async with SquareClient(
        settings.square_app_access_token,
        base_url=settings.square_base_url,
        api_version=settings.square_api_version,
        timeout=settings.square_request_timeout_seconds,
    ) as client:
        subscription = await ensure_webhook_subscription(
            client, settings.square_webhook_notification_url
        )

    print(f"Subscription: {subscription.get('id')}")
    print(f"Notification URL: {subscription.get('notification_url')}")
    print(f"Event types: {', '.join(subscription.get('event_types') or [])}")
    if subscription.get("signature_key"):
        print(f"Signature key (set SQUARE_WEBHOOK_SIGNATURE_KEY): {subscription['signature_key']}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(register()))
