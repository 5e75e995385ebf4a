"""
Square Labor Integration

Connects to the Square API for locations, team members, timecards and
webhook subscriptions. Every list call walks Square's cursor pagination
internally and returns the complete collection.
"""

import logging
from datetime import date
from uuid import uuid4

import httpx

from integrations.base import (
    LocationData,
    TeamMemberData,
    TimecardData,
    TimekeepingIntegration,
)

logger = logging.getLogger(__name__)

SQUARE_PRODUCTION_URL = "https://connect.squareup.com"
SQUARE_SANDBOX_URL = "https://connect.squareupsandbox.com"
# Timecard endpoints and labor.timecard.* events need 2025-05-21 or later
SQUARE_API_VERSION = "2025-05-21"

DEFAULT_WORKDAY_TIMEZONE = "America/Los_Angeles"
TIMECARD_EVENT_TYPES = ("labor.timecard.created", "labor.timecard.updated")


class SquareClient(TimekeepingIntegration):
    """Per-tenant Square client authenticated with the merchant's OAuth token."""

    provider_name = "square"

    def __init__(
        self,
        access_token: str,
        base_url: str = SQUARE_SANDBOX_URL,
        api_version: str = SQUARE_API_VERSION,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(access_token)
        self.base_url = base_url
        self.api_version = api_version
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json",
                    "Square-Version": self.api_version,
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _collect(
        self,
        method: str,
        path: str,
        key: str,
        body: dict | None = None,
    ) -> list[dict]:
        """Follow ``cursor`` until Square stops returning one."""
        items: list[dict] = []
        cursor = None
        while True:
            if method == "GET":
                params = {"cursor": cursor} if cursor else None
                response = await self.client.get(path, params=params)
            else:
                payload = dict(body or {})
                if cursor:
                    payload["cursor"] = cursor
                response = await self.client.post(path, json=payload)
            response.raise_for_status()
            data = response.json()

            items.extend(data.get(key) or [])

            cursor = data.get("cursor")
            if not cursor:
                break
        return items

    async def list_locations(self) -> list[LocationData]:
        raw = await self._collect("GET", "/v2/locations", "locations")
        return [
            LocationData(
                id=loc["id"],
                name=loc.get("name"),
                status=loc.get("status"),
                timezone=loc.get("timezone"),
                address=loc.get("address"),
            )
            for loc in raw
        ]

    async def list_team_members(
        self,
        location_id: str | None = None,
    ) -> list[TeamMemberData]:
        query_filter: dict = {"status": "ACTIVE"}
        if location_id:
            query_filter["location_ids"] = [location_id]

        raw = await self._collect(
            "POST",
            "/v2/team-members/search",
            "team_members",
            body={"query": {"filter": query_filter}, "limit": 100},
        )
        return [
            TeamMemberData(
                id=member["id"],
                given_name=member.get("given_name"),
                family_name=member.get("family_name"),
                email_address=member.get("email_address"),
                status=member.get("status"),
            )
            for member in raw
        ]

    async def search_timecards(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        location_id: str | None = None,
        workday_timezone: str = DEFAULT_WORKDAY_TIMEZONE,
    ) -> list[TimecardData]:
        query_filter: dict = {}
        if location_id:
            query_filter["location_ids"] = [location_id]
        if start_date and end_date:
            query_filter["workday"] = {
                "date_range": {
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                },
                "match_timecards_by": "START_AT",
                "default_timezone": workday_timezone,
            }

        raw = await self._collect(
            "POST",
            "/v2/labor/timecards/search",
            "timecards",
            body={"query": {"filter": query_filter}, "limit": 100},
        )
        return [TimecardData.model_validate(tc) for tc in raw]

    async def list_webhook_subscriptions(self) -> list[dict]:
        return await self._collect("GET", "/v2/webhooks/subscriptions", "subscriptions")

    async def create_webhook_subscription(
        self,
        notification_url: str,
        event_types: tuple[str, ...] = TIMECARD_EVENT_TYPES,
        name: str = "BrewOps timecard sync",
    ) -> dict:
        response = await self.client.post(
            "/v2/webhooks/subscriptions",
            json={
                "idempotency_key": str(uuid4()),
                "subscription": {
                    "name": name,
                    "event_types": list(event_types),
                    "notification_url": notification_url,
                    "api_version": self.api_version,
                },
            },
        )
        response.raise_for_status()
        subscription = response.json().get("subscription", {})
        logger.info(f"Created Square webhook subscription {subscription.get('id')}")
        return subscription
