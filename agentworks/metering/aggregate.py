"""The aggregate fold shared by the stores, the meter and report replay.

Stores call ``apply_event`` when recording and replay calls
``rebuild_aggregate`` over the log, so a replay reproduces the cached
aggregate exactly.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..schemas.usage import ProjectUsageAggregate, UsageBucket, UsageEvent
from .pricing import money


def _add_to_bucket(bucket: Optional[UsageBucket], event: UsageEvent) -> UsageBucket:
    bucket = bucket or UsageBucket()
    return UsageBucket(
        calls=bucket.calls + 1,
        cost=money(bucket.cost + event.cost.provider_cost),
        price=money(bucket.price + event.cost.customer_price),
    )


def apply_event(aggregate: ProjectUsageAggregate, event: UsageEvent) -> ProjectUsageAggregate:
    """
    Fold one event into an aggregate and return the new aggregate.

    Successful events add to the totals and to the per-agent and per-provider
    buckets. Failed events only bump ``failed_calls``. Both add their duration.
    The input aggregate is not modified.
    """
    updated = aggregate.model_copy(deep=True)
    updated.total_duration_ms += event.duration_ms
    updated.last_updated = event.timestamp
    if not event.success:
        updated.failed_calls += 1
        return updated

    updated.total_calls += 1
    updated.total_cost = money(updated.total_cost + event.cost.provider_cost)
    updated.total_price = money(updated.total_price + event.cost.customer_price)
    updated.calls_by_agent[event.agent_name] = _add_to_bucket(updated.calls_by_agent.get(event.agent_name), event)
    provider_key = event.provider or "unknown"
    updated.calls_by_provider[provider_key] = _add_to_bucket(updated.calls_by_provider.get(provider_key), event)
    return updated


def rebuild_aggregate(events: Iterable[UsageEvent]) -> ProjectUsageAggregate:
    aggregate = ProjectUsageAggregate()
    for event in events:
        aggregate = apply_event(aggregate, event)
    return aggregate
