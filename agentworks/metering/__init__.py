from .aggregate import apply_event, rebuild_aggregate
from .meter import UsageMeter
from .pricing import (
    PricingPolicy,
    compute_cost,
    compute_price,
    compute_provider_cost,
    compute_usage,
    estimate_tokens,
)

__all__ = [
    "PricingPolicy",
    "UsageMeter",
    "apply_event",
    "compute_cost",
    "compute_price",
    "compute_provider_cost",
    "compute_usage",
    "estimate_tokens",
    "rebuild_aggregate",
]
