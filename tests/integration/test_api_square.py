"""
Integration Tests for the Square API and Webhook Endpoints

Drives the routers through the async test client with the fake Square API
behind every outbound call.
"""

import json
from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.square_mapping import MappingStatus
from backend.models.tenant import Tenant
from backend.models.time_clock import TimeClockEntry
from backend.services.auth import create_access_token
from backend.services.square_webhooks import SIGNATURE_HEADER, compute_signature
from tests.factories import (
    FakeSquareAPI,
    make_connection,
    make_mapping,
    make_tenant,
    make_timecard_payload,
    make_user_profile,
)


def _base(tenant_id) -> str:
    return f"/api/v1/tenants/{tenant_id}/square"


@pytest_asyncio.fixture
async def connected(db_session: AsyncSession, token_service, test_tenant: Tenant) -> Tenant:
    db_session.add(make_connection(test_tenant.id, token_service.token_manager))
    await db_session.flush()
    return test_tenant


# ---------------------------------------------------------------------------
# Auth and tenant scoping
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_status_no_auth(client: AsyncClient, test_tenant: Tenant) -> None:
    response = await client.get(f"{_base(test_tenant.id)}/status")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_other_tenant_forbidden(
    client: AsyncClient,
    db_session: AsyncSession,
    auth_headers: dict[str, str],
) -> None:
    other = make_tenant(name="Other Roasters")
    db_session.add(other)
    await db_session.flush()

    response = await client.get(f"{_base(other.id)}/status", headers=auth_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_manager_cannot_disconnect(
    client: AsyncClient,
    db_session: AsyncSession,
    connected: Tenant,
) -> None:
    manager = make_user_profile(connected.id, role="manager")
    db_session.add(manager)
    await db_session.flush()
    token = create_access_token(str(manager.id), manager.email, str(connected.id), "manager")

    response = await client.post(
        f"{_base(connected.id)}/disconnect",
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 403


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_status_without_connection(
    client: AsyncClient,
    test_tenant: Tenant,
    auth_headers: dict[str, str],
) -> None:
    response = await client.get(f"{_base(test_tenant.id)}/status", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["connected"] is False
    assert data["needs_reconnect"] is False
    assert data["mapping_stats"] == {"suggested": 0, "confirmed": 0, "ignored": 0}


@pytest.mark.asyncio
async def test_oauth_round_trip(
    client: AsyncClient,
    square_api: FakeSquareAPI,
    test_tenant: Tenant,
    auth_headers: dict[str, str],
) -> None:
    redirect_uri = "https://app.example.test/square/callback"
    response = await client.get(
        f"{_base(test_tenant.id)}/auth-url",
        params={"redirect_uri": redirect_uri},
        headers=auth_headers,
    )
    assert response.status_code == 200
    query = parse_qs(urlparse(response.json()["auth_url"]).query)
    assert query["redirect_uri"] == [redirect_uri]

    response = await client.post(
        f"{_base(test_tenant.id)}/callback",
        json={"code": "auth-code", "redirect_uri": redirect_uri, "state": query["state"][0]},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"connected": True, "merchant_id": "MERCHANT_1"}
    assert square_api.token_calls[0]["grant_type"] == "authorization_code"


@pytest.mark.asyncio
async def test_callback_with_wrong_state(
    client: AsyncClient,
    square_api: FakeSquareAPI,
    test_tenant: Tenant,
    auth_headers: dict[str, str],
) -> None:
    response = await client.post(
        f"{_base(test_tenant.id)}/callback",
        json={"code": "auth-code", "redirect_uri": "https://app.example.test/cb", "state": "forged"},
        headers=auth_headers,
    )

    assert response.status_code == 502
    assert square_api.token_calls == []


@pytest.mark.asyncio
async def test_callback_without_state(
    client: AsyncClient,
    square_api: FakeSquareAPI,
    test_tenant: Tenant,
    auth_headers: dict[str, str],
) -> None:
    await client.get(
        f"{_base(test_tenant.id)}/auth-url",
        params={"redirect_uri": "https://app.example.test/cb"},
        headers=auth_headers,
    )

    response = await client.post(
        f"{_base(test_tenant.id)}/callback",
        json={"code": "auth-code", "redirect_uri": "https://app.example.test/cb"},
        headers=auth_headers,
    )

    assert response.status_code == 422
    assert square_api.token_calls == []


@pytest.mark.asyncio
async def test_list_locations(
    client: AsyncClient,
    square_api: FakeSquareAPI,
    connected: Tenant,
    auth_headers: dict[str, str],
) -> None:
    square_api.locations = [
        {"id": "LOC_1", "name": "Main St", "status": "ACTIVE", "timezone": "America/Los_Angeles"},
        {"id": "LOC_2", "name": "Harbor", "status": "ACTIVE"},
        {"id": "LOC_3", "name": "Airport", "status": "INACTIVE"},
    ]

    response = await client.get(f"{_base(connected.id)}/locations", headers=auth_headers)

    assert response.status_code == 200
    assert [loc["id"] for loc in response.json()] == ["LOC_1", "LOC_2", "LOC_3"]


@pytest.mark.asyncio
async def test_set_location_requires_connection(
    client: AsyncClient,
    test_tenant: Tenant,
    auth_headers: dict[str, str],
) -> None:
    response = await client.post(
        f"{_base(test_tenant.id)}/location",
        json={"location_id": "LOC_1"},
        headers=auth_headers,
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_disconnect(
    client: AsyncClient,
    db_session: AsyncSession,
    connected: Tenant,
    auth_headers: dict[str, str],
) -> None:
    db_session.add(make_mapping(connected.id, "TM_1"))
    await db_session.flush()

    response = await client.post(f"{_base(connected.id)}/disconnect", headers=auth_headers)
    assert response.status_code == 204

    data = (await client.get(f"{_base(connected.id)}/status", headers=auth_headers)).json()
    assert data["connected"] is False
    assert data["sync_enabled"] is False
    assert data["mapping_stats"] == {"suggested": 0, "confirmed": 0, "ignored": 0}


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_sync_now(
    client: AsyncClient,
    db_session: AsyncSession,
    square_api: FakeSquareAPI,
    connected: Tenant,
    auth_headers: dict[str, str],
) -> None:
    profile = make_user_profile(connected.id, full_name="Jane Doe")
    db_session.add(profile)
    await db_session.flush()
    db_session.add(
        make_mapping(
            connected.id, "TM_JANE", user_profile_id=profile.id, status=MappingStatus.CONFIRMED.value
        )
    )
    await db_session.flush()
    square_api.timecards = [
        make_timecard_payload("TC1", "TM_JANE"),
        make_timecard_payload("TC2", "TM_UNKNOWN"),
    ]

    response = await client.post(
        f"{_base(connected.id)}/sync",
        json={"start_date": "2025-03-01", "end_date": "2025-03-02"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"synced": 1, "skipped": 1, "errors": 0}

    status = (await client.get(f"{_base(connected.id)}/status", headers=auth_headers)).json()
    assert status["last_sync_status"] == "success"
    assert status["last_sync_at"] is not None


@pytest.mark.asyncio
async def test_sync_without_location(
    client: AsyncClient,
    db_session: AsyncSession,
    token_service,
    test_tenant: Tenant,
    auth_headers: dict[str, str],
) -> None:
    db_session.add(make_connection(test_tenant.id, token_service.token_manager, location_id=None))
    await db_session.flush()

    response = await client.post(f"{_base(test_tenant.id)}/sync", headers=auth_headers)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_sync_rejects_inverted_window(
    client: AsyncClient,
    connected: Tenant,
    auth_headers: dict[str, str],
) -> None:
    response = await client.post(
        f"{_base(connected.id)}/sync",
        json={"start_date": "2025-03-05", "end_date": "2025-03-01"},
        headers=auth_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_sync_upstream_error(
    client: AsyncClient,
    square_api: FakeSquareAPI,
    connected: Tenant,
    auth_headers: dict[str, str],
) -> None:
    square_api.fail_paths["/v2/labor/timecards/search"] = 500

    response = await client.post(f"{_base(connected.id)}/sync", headers=auth_headers)

    assert response.status_code == 502
    assert "INTERNAL_SERVER_ERROR" not in response.text


# ---------------------------------------------------------------------------
# Mappings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_suggest_and_confirm(
    client: AsyncClient,
    db_session: AsyncSession,
    square_api: FakeSquareAPI,
    connected: Tenant,
    test_owner,
    auth_headers: dict[str, str],
) -> None:
    jane = make_user_profile(connected.id, full_name="Jane Doe")
    db_session.add(jane)
    await db_session.flush()
    square_api.team_members = [{"id": "TM_JANE", "given_name": "Jane", "family_name": "Doe"}]

    response = await client.post(f"{_base(connected.id)}/mappings/suggest", headers=auth_headers)
    assert response.status_code == 200
    assert len(response.json()) == 1

    mappings = (await client.get(f"{_base(connected.id)}/mappings", headers=auth_headers)).json()
    assert [m["square_team_member_id"] for m in mappings] == ["TM_JANE"]
    mapping_id = mappings[0]["id"]

    response = await client.post(
        f"{_base(connected.id)}/mappings/{mapping_id}/confirm",
        json={"user_profile_id": str(jane.id)},
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["user_profile_id"] == str(jane.id)
    assert data["confirmed_by"] == str(test_owner.id)


@pytest.mark.asyncio
async def test_confirm_requires_exactly_one_target(
    client: AsyncClient,
    db_session: AsyncSession,
    connected: Tenant,
    auth_headers: dict[str, str],
) -> None:
    mapping = make_mapping(connected.id, "TM_1")
    db_session.add(mapping)
    await db_session.flush()

    response = await client.post(
        f"{_base(connected.id)}/mappings/{mapping.id}/confirm",
        json={},
        headers=auth_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_mapping_is_404(
    client: AsyncClient,
    connected: Tenant,
    auth_headers: dict[str, str],
) -> None:
    response = await client.post(
        f"{_base(connected.id)}/mappings/{uuid4()}/ignore",
        headers=auth_headers,
    )

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


def _webhook_body(timecard: dict) -> bytes:
    return json.dumps(
        {
            "merchant_id": "MERCHANT_1",
            "type": "labor.timecard.created",
            "event_id": "evt-1",
            "data": {"type": "timecard", "id": timecard["id"], "object": {"timecard": timecard}},
        }
    ).encode()


@pytest.mark.asyncio
async def test_webhook_applies_signed_event(
    client: AsyncClient,
    db_session: AsyncSession,
    settings,
    connected: Tenant,
) -> None:
    profile = make_user_profile(connected.id, full_name="Jane Doe")
    db_session.add(profile)
    await db_session.flush()
    db_session.add(
        make_mapping(
            connected.id, "TM_JANE", user_profile_id=profile.id, status=MappingStatus.CONFIRMED.value
        )
    )
    await db_session.flush()
    body = _webhook_body(make_timecard_payload("TC1", "TM_JANE"))
    signature = compute_signature(
        body, settings.square_webhook_signature_key, settings.square_webhook_notification_url
    )

    response = await client.post(
        "/api/square/webhook",
        content=body,
        headers={SIGNATURE_HEADER: signature, "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert await db_session.scalar(select(func.count()).select_from(TimeClockEntry)) == 1


@pytest.mark.asyncio
async def test_webhook_bad_signature(client: AsyncClient, db_session: AsyncSession, connected: Tenant) -> None:
    body = _webhook_body(make_timecard_payload("TC1", "TM_JANE"))

    response = await client.post(
        "/api/square/webhook",
        content=body,
        headers={SIGNATURE_HEADER: "bm90LXRoZS1zaWduYXR1cmU="},
    )

    assert response.status_code == 401
    assert await db_session.scalar(select(func.count()).select_from(TimeClockEntry)) == 0


@pytest.mark.asyncio
async def test_webhook_missing_signature(client: AsyncClient) -> None:
    response = await client.post("/api/square/webhook", content=b"{}")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_unparseable_body(client: AsyncClient, settings) -> None:
    body = b"definitely not json"
    signature = compute_signature(
        body, settings.square_webhook_signature_key, settings.square_webhook_notification_url
    )

    response = await client.post("/api/square/webhook", content=body, headers={SIGNATURE_HEADER: signature})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_unknown_merchant_acknowledged(client: AsyncClient, settings) -> None:
    body = _webhook_body(make_timecard_payload("TC1", "TM_JANE")).replace(b"MERCHANT_1", b"MERCHANT_9")
    signature = compute_signature(
        body, settings.square_webhook_signature_key, settings.square_webhook_notification_url
    )

    response = await client.post("/api/square/webhook", content=body, headers={SIGNATURE_HEADER: signature})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_webhook_unconfigured(client: AsyncClient, settings, monkeypatch) -> None:
    monkeypatch.setattr(settings, "square_webhook_signature_key", "")

    response = await client.post(
        "/api/square/webhook",
        content=b"{}",
        headers={SIGNATURE_HEADER: "anything"},
    )

    assert response.status_code == 503
