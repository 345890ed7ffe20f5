from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from .base import OpenSchema, utc_now
from .usage import ProjectUsageAggregate


class AgentConfig(OpenSchema):
    """Routing configuration of one agent inside a project.

    Written by the onboarding service after a successful validation. ``lanes``
    of ``None`` means the agent may run in any lane.
    """

    provider: str
    model: str
    temperature: float = 0.7
    max_tokens: int = Field(default=0, alias="maxTokens", ge=0)
    lanes: Optional[List[int]] = None
    active: bool = True
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")

    def allows_lane(self, lane: int) -> bool:
        return self.lanes is None or lane in self.lanes


class LaneCardRef(OpenSchema):
    id: str
    moved_at: datetime = Field(default_factory=utc_now, alias="movedAt")


class LaneIndex(OpenSchema):
    cards: List[LaneCardRef] = Field(default_factory=list)

    @field_validator("cards", mode="before")
    @classmethod
    def _plain_ids(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"id": item} if isinstance(item, str) else item for item in value]
        return value


class Project(OpenSchema):
    """Project configuration document (``project.json``)."""

    id: str
    name: str = ""
    agents: Dict[str, AgentConfig] = Field(default_factory=dict)
    lanes: Dict[str, LaneIndex] = Field(default_factory=dict)
    usage: ProjectUsageAggregate = Field(default_factory=ProjectUsageAggregate)

    @field_validator("lanes", mode="before")
    @classmethod
    def _lanes_from_list(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {str(index): item for index, item in enumerate(value) if item is not None}
        return value

    def move_card_index(self, card_id: str, from_lane: int, to_lane: int) -> None:
        """Move ``card_id`` from one lane bucket to another in the lane index."""
        source = self.lanes.get(str(from_lane))
        if source is not None:
            source.cards = [ref for ref in source.cards if ref.id != card_id]
        target = self.lanes.setdefault(str(to_lane), LaneIndex())
        target.cards = [ref for ref in target.cards if ref.id != card_id]
        target.cards.append(LaneCardRef(id=card_id))
