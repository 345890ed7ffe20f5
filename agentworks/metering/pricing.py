"""Token estimation and cost/price arithmetic.

All functions here are pure. Token counts come from ``estimate_tokens``, a
4-characters-per-token heuristic. It is not a tokenizer and drifts from what
providers bill, so customer prices derived from it carry that drift unless
provider-reported counts are used instead (see ``Settings.prefer_provider_usage``).

Money values are kept at ``MONEY_DECIMALS`` places. Every per-event cost fits
well inside that precision, so sums of rounded values do not depend on the
order events are added in.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..schemas.providers import Provider
from ..schemas.usage import CostBreakdown, TokenUsage

CHARS_PER_TOKEN = 4
MONEY_DECIMALS = 10
DEFAULT_MARKUP = 5.0
DEFAULT_INCREMENT = 0.25

# Quotients within this many decimals of a whole increment count as that increment.
_INCREMENT_TOLERANCE_DECIMALS = 9


def money(value: float) -> float:
    return round(value, MONEY_DECIMALS)


@dataclass(frozen=True)
class PricingPolicy:
    """Markup multiplier and billing increment used to turn cost into price."""

    markup: float = DEFAULT_MARKUP
    increment: float = DEFAULT_INCREMENT

    def __post_init__(self) -> None:
        if self.markup < 1:
            raise ValueError(f"markup must be >= 1, got {self.markup}")
        if self.increment <= 0:
            raise ValueError(f"increment must be > 0, got {self.increment}")


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per 4 characters, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def compute_usage(prompt_text: str, response_text: str) -> TokenUsage:
    return TokenUsage.of(estimate_tokens(prompt_text), estimate_tokens(response_text))


def compute_provider_cost(usage: TokenUsage, provider: Provider) -> float:
    rates = provider.cost_per_1k
    return money((usage.input_tokens / 1000) * rates.input + (usage.output_tokens / 1000) * rates.output)


def compute_price(provider_cost: float, policy: PricingPolicy = PricingPolicy()) -> float:
    """
    Customer price for a provider cost.

    ``ceil(cost * markup / increment) * increment``. A call that costs anything
    at all is billed at least one increment; that floor is intentional.
    """
    if provider_cost <= 0:
        return 0.0
    units = math.ceil(round(provider_cost * policy.markup / policy.increment, _INCREMENT_TOLERANCE_DECIMALS))
    return money(units * policy.increment)


def compute_cost(usage: TokenUsage, provider: Provider, policy: PricingPolicy = PricingPolicy()) -> CostBreakdown:
    provider_cost = compute_provider_cost(usage, provider)
    price = compute_price(provider_cost, policy)
    return CostBreakdown(provider_cost=provider_cost, customer_price=price, margin=money(price - provider_cost))
