from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseSchema, OpenSchema, utc_now

MIN_LANE = 0
MAX_LANE = 10


class CardStatus(str, Enum):
    draft = "draft"
    ready = "ready"
    in_progress = "in_progress"
    review = "review"
    completed = "completed"
    error = "error"
    moved = "moved"


class LaneTransition(BaseSchema):
    from_lane: int = Field(alias="from")
    to_lane: int = Field(alias="to", ge=MIN_LANE, le=MAX_LANE)
    timestamp: datetime = Field(default_factory=utc_now)
    reason: str = "manual"


class StatusTransition(BaseSchema):
    from_status: CardStatus = Field(alias="from")
    to_status: CardStatus = Field(alias="to")
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AgentOutput(BaseSchema):
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    processed: bool = False


class AgentRunRecord(BaseSchema):
    """Summary of one sealed run session, appended to the owning card."""

    run_id: str
    agent_name: str
    status: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_ms: int = 0
    log_count: int = 0
    summary: Dict[str, Any] = Field(default_factory=dict)


class Card(OpenSchema):
    """The unit of work advanced through the lanes.

    ``artifacts`` maps an agent name to the stored artifact reference and
    ``agent_outputs`` keeps the latest output body per agent.
    """

    id: str
    title: str = ""
    description: str = ""
    type: str = "feature"
    lane: int = Field(default=MIN_LANE, ge=MIN_LANE, le=MAX_LANE)
    status: CardStatus = CardStatus.draft
    lane_history: List[LaneTransition] = Field(default_factory=list)
    status_history: List[StatusTransition] = Field(default_factory=list)
    agent_outputs: Dict[str, AgentOutput] = Field(default_factory=dict)
    artifacts: Dict[str, str] = Field(default_factory=dict)
    agent_runs: List[AgentRunRecord] = Field(default_factory=list)
    acceptance_criteria: List[str] = Field(default_factory=list)
    test_results: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def has_output(self, agent_name: str) -> bool:
        return agent_name in self.artifacts or agent_name in self.agent_outputs
