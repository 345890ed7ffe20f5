from __future__ import annotations

from typing import List

from pydantic import ConfigDict, Field

from .base import BaseSchema


class RateLimits(BaseSchema):
    requests_per_minute: int = Field(alias="requestsPerMinute", ge=0)
    tokens_per_minute: int = Field(alias="tokensPerMinute", ge=0)


class CostPer1K(BaseSchema):
    """USD cost per 1,000 input / output tokens."""

    input: float = Field(ge=0)
    output: float = Field(ge=0)


class Provider(BaseSchema):
    """An LLM vendor entry in the provider catalog. Immutable once loaded."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    id: str
    name: str
    models: List[str]
    rate_limits: RateLimits = Field(alias="rateLimits")
    cost_per_1k: CostPer1K = Field(alias="costPer1K")
    enabled: bool = True
    timeout_seconds: float = Field(default=60.0, alias="timeoutSeconds", gt=0)
