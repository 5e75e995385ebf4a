"""
Square Sync Scheduler

One polling cycle over every syncable tenant. Timing lives in Celery beat;
this component only decides what a cycle does, so it can be driven directly.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import UUID

from integrations.base import SyncResult

logger = logging.getLogger(__name__)

TenantLister = Callable[[], Awaitable[list[UUID]]]
TenantSyncer = Callable[[UUID], Awaitable[SyncResult]]


@dataclass
class CycleReport:
    """Outcome of one scheduler cycle."""

    results: dict[UUID, SyncResult] = field(default_factory=dict)
    failures: dict[UUID, str] = field(default_factory=dict)

    @property
    def tenants(self) -> int:
        return len(self.results) + len(self.failures)

    def as_dict(self) -> dict:
        return {
            "tenants": self.tenants,
            "succeeded": len(self.results),
            "failed": len(self.failures),
            "synced": sum(r.synced for r in self.results.values()),
            "skipped": sum(r.skipped for r in self.results.values()),
            "errors": sum(r.errors for r in self.results.values()),
        }


class SquareSyncScheduler:
    """Runs tenants one at a time; a failing tenant never stops the cycle."""

    def __init__(self, list_tenants: TenantLister, sync_tenant: TenantSyncer):
        self.list_tenants = list_tenants
        self.sync_tenant = sync_tenant

    async def run_cycle(self) -> CycleReport:
        report = CycleReport()
        tenant_ids = await self.list_tenants()
        logger.info(f"Square sync cycle starting for {len(tenant_ids)} tenants")

        for tenant_id in tenant_ids:
            try:
                report.results[tenant_id] = await self.sync_tenant(tenant_id)
            except Exception as e:
                logger.error(f"Square sync failed for tenant {tenant_id}: {e}")
                report.failures[tenant_id] = type(e).__name__

        logger.info(f"Square sync cycle finished: {report.as_dict()}")
        return report
