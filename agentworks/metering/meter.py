from __future__ import annotations

"""Usage meter.

Every routing attempt becomes one immutable ``UsageEvent``. The event log is
the source of truth; the per-project ``ProjectUsageAggregate`` is a cache the
store maintains by folding each event into it (see ``aggregate``).
"""

from datetime import date
from typing import List, Optional

from ..core.logging_config import get_logger
from ..repos.interfaces import UsageStore
from ..schemas.base import utc_now
from ..schemas.usage import ProjectUsageAggregate, UsageEvent
from .aggregate import rebuild_aggregate
from .pricing import PricingPolicy

logger = get_logger(__name__)


class UsageMeter:
    """
    Records usage events and serves the cached aggregate.

    Args:
        store: Persistence for the event log and aggregate. ``store.record``
            appends the event and applies it to the aggregate as one unit.
        pricing: Pricing policy the router prices events with.
    """

    def __init__(self, store: UsageStore, pricing: PricingPolicy = PricingPolicy()) -> None:
        self._store = store
        self.pricing = pricing

    @property
    def store(self) -> UsageStore:
        return self._store

    async def record_event(self, event: UsageEvent) -> UsageEvent:
        await self._store.record(event)
        logger.debug(
            f"Recorded usage event {event.id} project={event.project_id} agent={event.agent_name} "
            f"success={event.success} price={event.cost.customer_price}"
        )
        return event

    async def get_aggregate(self, project_id: str) -> ProjectUsageAggregate:
        return await self._store.get_aggregate(project_id)

    async def list_events(
        self, project_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[UsageEvent]:
        return await self._store.list_events(project_id, start, end)

    async def reconcile(self, project_id: str) -> bool:
        """
        Rebuild the aggregate from the full event log and store it.

        Returns:
            True if the cached aggregate differed from the rebuilt one.
        """
        rebuilt = rebuild_aggregate(await self._store.list_events(project_id))
        cached = await self._store.get_aggregate(project_id)
        drifted = not cached.same_totals(rebuilt)
        if drifted:
            logger.warning(f"Usage aggregate for project {project_id} drifted from its event log; replacing it")
        rebuilt.last_updated = rebuilt.last_updated or utc_now()
        await self._store.replace_aggregate(project_id, rebuilt)
        return drifted
