"""
Unit tests for backend.services.square_webhooks
"""

import json

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from backend.models.square_mapping import MappingStatus
from backend.models.time_clock import TimeClockBreak, TimeClockEntry
from backend.services.square_sync import SquareSyncService
from backend.services.square_webhooks import (
    SquareWebhookProcessor,
    WebhookOutcome,
    compute_signature,
    ensure_webhook_subscription,
    parse_event,
    verify_signature,
)
from backend.services.timecard_upsert import TimecardUpserter
from integrations.exceptions import RecordApplyFailed, SignatureInvalid, WebhookPayloadInvalid
from integrations.pos.square import TIMECARD_EVENT_TYPES, SquareClient
from tests.factories import (
    make_break_payload,
    make_connection,
    make_mapping,
    make_timecard_payload,
    make_user_profile,
)


def _event(timecard: dict | None, event_type: str = "labor.timecard.updated", merchant_id: str = "MERCHANT_1") -> bytes:
    data: dict = {"type": "timecard", "id": "TC1"}
    if timecard is not None:
        data["object"] = {"timecard": timecard}
    return json.dumps(
        {
            "merchant_id": merchant_id,
            "type": event_type,
            "event_id": "evt-1",
            "created_at": "2025-03-01T22:00:05Z",
            "data": data,
        }
    ).encode()


def _sign(body: bytes, settings) -> str:
    return compute_signature(
        body,
        settings.square_webhook_signature_key,
        settings.square_webhook_notification_url,
    )


async def _entry_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(TimeClockEntry))


class TestSignature:
    URL = "https://api.example.test/api/square/webhook"

    def test_valid_signature(self):
        body = b'{"merchant_id": "M"}'
        signature = compute_signature(body, "key", self.URL)

        assert verify_signature(body, signature, "key", self.URL) is True

    def test_tampered_body(self):
        signature = compute_signature(b'{"merchant_id": "M"}', "key", self.URL)

        assert verify_signature(b'{"merchant_id": "X"}', signature, "key", self.URL) is False

    def test_url_is_part_of_signature(self):
        body = b"{}"
        signature = compute_signature(body, "key", self.URL)

        assert verify_signature(body, signature, "key", "https://elsewhere.test/hook") is False

    @pytest.mark.parametrize(
        "signature,key,url",
        [(None, "key", URL), ("", "key", URL), ("sig", "", URL), ("sig", "key", "")],
    )
    def test_missing_inputs_never_verify(self, signature, key, url):
        assert verify_signature(b"{}", signature, key, url) is False


class TestParseEvent:
    def test_timecard_payload(self):
        event = parse_event(_event(make_timecard_payload("TC1", "TM_JANE")))

        assert event.merchant_id == "MERCHANT_1"
        assert event.timecard_payload()["id"] == "TC1"

    def test_missing_object(self):
        assert parse_event(_event(None)).timecard_payload() is None

    @pytest.mark.parametrize("body", [b"not json", b"[]", b'{"type": "labor.timecard.updated"}'])
    def test_invalid_envelope(self, body):
        with pytest.raises(WebhookPayloadInvalid):
            parse_event(body)


@pytest_asyncio.fixture
async def webhook_tenant(db_session, token_service, test_tenant):
    profile = make_user_profile(test_tenant.id, full_name="Jane Doe")
    db_session.add(profile)
    await db_session.flush()
    db_session.add_all(
        [
            make_connection(test_tenant.id, token_service.token_manager),
            make_mapping(
                test_tenant.id,
                "TM_JANE",
                user_profile_id=profile.id,
                status=MappingStatus.CONFIRMED.value,
            ),
        ]
    )
    await db_session.flush()
    return test_tenant


@pytest.fixture
def processor(db_session, token_service):
    return SquareWebhookProcessor(db_session, SquareSyncService(db_session, token_service))


class TestProcessor:
    @pytest.mark.asyncio
    async def test_applies_timecard(self, db_session, processor, settings, webhook_tenant):
        body = _event(make_timecard_payload("TC1", "TM_JANE", breaks=[make_break_payload("BR1")]))

        outcome = await processor.process(body, _sign(body, settings))

        assert outcome == WebhookOutcome.PROCESSED
        entry = (await db_session.execute(select(TimeClockEntry))).scalar_one()
        assert entry.tenant_id == webhook_tenant.id
        assert entry.external_id == "TC1"
        assert await db_session.scalar(select(func.count()).select_from(TimeClockBreak)) == 1

    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(self, db_session, processor, settings, webhook_tenant):
        body = _event(make_timecard_payload("TC1", "TM_JANE"))

        await processor.process(body, _sign(body, settings))
        await processor.process(body, _sign(body, settings))

        assert await _entry_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_tampered_body_rejected_before_any_write(
        self, db_session, processor, settings, webhook_tenant
    ):
        body = _event(make_timecard_payload("TC1", "TM_JANE"))
        signature = _sign(body, settings)
        tampered = body.replace(b"TM_JANE", b"TM_EVIL")

        with pytest.raises(SignatureInvalid):
            await processor.process(tampered, signature)

        assert await _entry_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_invalid_body_with_valid_signature(self, processor, settings, webhook_tenant):
        body = b"not json"

        with pytest.raises(WebhookPayloadInvalid):
            await processor.process(body, _sign(body, settings))

    @pytest.mark.asyncio
    async def test_unknown_merchant_ignored(self, db_session, processor, settings, webhook_tenant):
        body = _event(make_timecard_payload("TC1", "TM_JANE"), merchant_id="MERCHANT_OTHER")

        assert await processor.process(body, _sign(body, settings)) == WebhookOutcome.IGNORED_TENANT
        assert await _entry_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_sync_disabled_merchant_ignored(
        self, db_session, processor, token_service, settings, webhook_tenant
    ):
        await token_service.store.set_sync_enabled(webhook_tenant.id, False)
        body = _event(make_timecard_payload("TC1", "TM_JANE"))

        assert await processor.process(body, _sign(body, settings)) == WebhookOutcome.IGNORED_TENANT

    @pytest.mark.asyncio
    async def test_other_event_types_ignored(self, db_session, processor, settings, webhook_tenant):
        body = _event(make_timecard_payload("TC1", "TM_JANE"), event_type="labor.shift.updated")

        assert await processor.process(body, _sign(body, settings)) == WebhookOutcome.IGNORED_TYPE
        assert await _entry_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_missing_timecard_object(self, processor, settings, webhook_tenant):
        body = _event(None)

        assert await processor.process(body, _sign(body, settings)) == WebhookOutcome.MISSING_PAYLOAD

    @pytest.mark.asyncio
    async def test_unmapped_team_member(self, db_session, processor, settings, webhook_tenant):
        body = _event(make_timecard_payload("TC1", "TM_STRANGER"))

        assert await processor.process(body, _sign(body, settings)) == WebhookOutcome.UNMAPPED
        assert await _entry_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_malformed_timecard_is_acknowledged(self, processor, settings, webhook_tenant):
        body = _event({"id": "TC1", "team_member_id": "TM_JANE", "start_at": "yesterday-ish"})

        assert await processor.process(body, _sign(body, settings)) == WebhookOutcome.FAILED

    @pytest.mark.asyncio
    async def test_apply_failure_is_acknowledged(
        self, db_session, token_service, settings, webhook_tenant
    ):
        class BrokenUpserter(TimecardUpserter):
            async def apply(self, tenant_id, timecard, mappings=None):
                raise RecordApplyFailed("disk full", external_id=timecard.id)

        processor = SquareWebhookProcessor(
            db_session,
            SquareSyncService(db_session, token_service, upserter=BrokenUpserter(db_session)),
        )
        body = _event(make_timecard_payload("TC1", "TM_JANE"))

        assert await processor.process(body, _sign(body, settings)) == WebhookOutcome.FAILED
        assert await _entry_count(db_session) == 0


class TestEnsureSubscription:
    URL = "https://api.example.test/api/square/webhook"

    @pytest.mark.asyncio
    async def test_creates_when_missing(self, square_api):
        square_api.subscriptions = [
            {"id": "wbhk_old", "enabled": True, "notification_url": "https://old.test/hook"}
        ]

        async with SquareClient("app-token", transport=square_api.transport()) as client:
            subscription = await ensure_webhook_subscription(client, self.URL)

        assert subscription["notification_url"] == self.URL
        assert subscription["event_types"] == list(TIMECARD_EVENT_TYPES)
        posts = [r for r in square_api.calls_to("/v2/webhooks/subscriptions") if r.method == "POST"]
        assert len(posts) == 1

    @pytest.mark.asyncio
    async def test_reuses_enabled_subscription(self, square_api):
        square_api.subscriptions = [
            {"id": "wbhk_disabled", "enabled": False, "notification_url": self.URL},
            {"id": "wbhk_live", "enabled": True, "notification_url": self.URL},
        ]

        async with SquareClient("app-token", transport=square_api.transport()) as client:
            subscription = await ensure_webhook_subscription(client, self.URL)

        assert subscription["id"] == "wbhk_live"
        assert all(r.method == "GET" for r in square_api.calls_to("/v2/webhooks/subscriptions"))
