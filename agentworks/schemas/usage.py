from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import uuid4

from pydantic import ConfigDict, Field

from .base import BaseSchema, as_utc, utc_now


class TokenUsage(BaseSchema):
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    @classmethod
    def of(cls, input_tokens: int, output_tokens: int) -> "TokenUsage":
        return cls(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=input_tokens + output_tokens)


class CostBreakdown(BaseSchema):
    provider_cost: float = Field(default=0.0, ge=0)
    customer_price: float = Field(default=0.0, ge=0)
    margin: float = 0.0


class UsageEvent(BaseSchema):
    """One immutable billing/audit record for a single routing attempt."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=utc_now)
    project_id: str
    card_id: Optional[str] = None
    agent_name: str
    provider: Optional[str] = None
    model: Optional[str] = None
    prompt_preview: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: CostBreakdown = Field(default_factory=CostBreakdown)
    duration_ms: int = Field(default=0, ge=0)
    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def day(self) -> str:
        """UTC calendar day (``YYYY-MM-DD``) the event is partitioned under."""
        return as_utc(self.timestamp).date().isoformat()


class UsageBucket(BaseSchema):
    calls: int = 0
    cost: float = 0.0
    price: float = 0.0


class ProjectUsageAggregate(BaseSchema):
    """Running usage totals cached on a project.

    ``calls_by_agent`` / ``calls_by_provider`` and the three totals only count
    successful events; ``failed_calls`` and ``total_duration_ms`` count every
    event. The aggregate can always be rebuilt from the event log.
    """

    total_calls: int = 0
    total_cost: float = 0.0
    total_price: float = 0.0
    failed_calls: int = 0
    total_duration_ms: int = 0
    calls_by_agent: Dict[str, UsageBucket] = Field(default_factory=dict)
    calls_by_provider: Dict[str, UsageBucket] = Field(default_factory=dict)
    last_updated: Optional[datetime] = None

    def same_totals(self, other: "ProjectUsageAggregate") -> bool:
        """Compare everything except ``last_updated``."""
        return self.model_dump(exclude={"last_updated"}) == other.model_dump(exclude={"last_updated"})
