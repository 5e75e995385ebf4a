"""
Sync Tasks

Background polling of Square timecards for every syncable tenant.
"""

import asyncio
import logging
from uuid import UUID

from workers.celery_app import app

logger = logging.getLogger(__name__)


@app.task
def sync_all_square():
    """One scheduler cycle over every tenant with sync enabled."""
    from backend.config import get_settings

    if not get_settings().square_is_configured:
        logger.info("Square OAuth not configured; skipping sync cycle")
        return {"skipped": True}

    logger.info("Starting Square sync for all tenants")
    return _run(_async_sync_all())


@app.task(bind=True, max_retries=3, default_retry_delay=60)
def sync_tenant(self, tenant_id: str, start_date: str | None = None, end_date: str | None = None):
    """
    Sync a single tenant on demand.

    Connection and configuration errors are not retried; they need the
    tenant to act. API transport failures are retried.
    """
    from datetime import date

    import httpx

    from integrations.exceptions import SquareIntegrationError

    logger.info(f"Starting Square sync for tenant {tenant_id}")
    try:
        result = _run(
            _async_sync_tenant(
                UUID(tenant_id),
                date.fromisoformat(start_date) if start_date else None,
                date.fromisoformat(end_date) if end_date else None,
            )
        )
    except SquareIntegrationError as exc:
        logger.error(f"Square sync aborted for {tenant_id}: {exc}")
        return {"error": exc.code}
    except httpx.HTTPError as exc:
        logger.error(f"Square sync failed for {tenant_id}: {exc}")
        raise self.retry(exc=exc)
    return result.model_dump()


def _run(coro):
    """Run a coroutine on a fresh loop and release pooled connections bound to it."""
    from backend.db.session import engine

    async def runner():
        try:
            return await coro
        finally:
            await engine.dispose()

    return asyncio.run(runner())


async def _async_sync_tenant(tenant_id: UUID, start_date=None, end_date=None):
    """Sync one tenant in its own session."""
    from backend.db.session import get_async_session
    from backend.services.square_sync import SquareSyncService

    async with get_async_session() as db:
        return await SquareSyncService(db).sync_shifts_for_tenant(
            tenant_id, start_date, end_date
        )


async def _async_list_syncable() -> list[UUID]:
    from backend.config import get_settings
    from backend.db.session import get_async_session
    from backend.services.square_credentials import SquareCredentialStore
    from integrations.oauth_manager import OAuthTokenManager

    async with get_async_session() as db:
        store = SquareCredentialStore(db, OAuthTokenManager(get_settings().encryption_key))
        return await store.list_syncable()


async def _async_sync_all() -> dict:
    from backend.services.sync_scheduler import SquareSyncScheduler

    scheduler = SquareSyncScheduler(
        list_tenants=_async_list_syncable,
        sync_tenant=_async_sync_tenant,
    )
    report = await scheduler.run_cycle()
    return report.as_dict()
