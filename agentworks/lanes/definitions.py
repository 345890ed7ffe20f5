"""
Lane definitions and completion criteria.

The pipeline has eleven ordered lanes. Each lane lists the agents that work
in it, the agents that start automatically when a card enters it, the
completion criteria that must all hold before the card advances, and the
fixed lane it advances to. The table is static; manual moves may jump to any
lane but automatic advancement always follows ``next_lane``.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple

from pydantic import ConfigDict, Field

from ..schemas.base import BaseSchema
from ..schemas.cards import MAX_LANE, MIN_LANE, Card, CardStatus


class LaneDefinition(BaseSchema):
    """
    Static rules for one lane.

    Attributes:
        id: Lane number, 0 through 10.
        name: Display name.
        agents: Agents eligible to work on cards in this lane.
        auto_triggers: Agents run automatically when a card enters the lane.
        completion_criteria: Criterion names that must all be satisfied to advance.
        next_lane: Lane reached on automatic advancement; ``None`` for the last lane.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    id: int = Field(ge=MIN_LANE, le=MAX_LANE)
    name: str
    agents: Tuple[str, ...] = ()
    auto_triggers: Tuple[str, ...] = ()
    completion_criteria: Tuple[str, ...] = ()
    next_lane: Optional[int] = None


LANES: Dict[int, LaneDefinition] = {
    lane.id: lane
    for lane in (
        LaneDefinition(
            id=0,
            name="Vision & CoPilot Planning",
            agents=("ceo_copilot", "strategy", "storyboard_ux"),
            auto_triggers=("ceo_copilot",),
            completion_criteria=("blueprint_approved",),
            next_lane=1,
        ),
        LaneDefinition(
            id=1,
            name="PRD / MVP Definition",
            agents=("prd", "mvp"),
            auto_triggers=("prd",),
            completion_criteria=("prd_generated", "mvp_defined"),
            next_lane=2,
        ),
        LaneDefinition(
            id=2,
            name="Research",
            agents=("research",),
            completion_criteria=("research_complete",),
            next_lane=3,
        ),
        LaneDefinition(
            id=3,
            name="Architecture & Stack",
            agents=("architect",),
            auto_triggers=("architect",),
            completion_criteria=("architecture_designed",),
            next_lane=4,
        ),
        LaneDefinition(
            id=4,
            name="Planning & Task Breakdown",
            agents=("planner",),
            auto_triggers=("planner",),
            completion_criteria=("tasks_created",),
            next_lane=5,
        ),
        LaneDefinition(
            id=5,
            name="Scaffolding / Setup",
            agents=("devops",),
            auto_triggers=("devops",),
            completion_criteria=("infrastructure_setup",),
            next_lane=6,
        ),
        LaneDefinition(
            id=6,
            name="Build",
            agents=("dev_backend", "dev_frontend"),
            completion_criteria=("implementation_complete",),
            next_lane=7,
        ),
        LaneDefinition(
            id=7,
            name="Test & QA",
            agents=("qa", "troubleshooter"),
            auto_triggers=("qa",),
            completion_criteria=("tests_passing",),
            next_lane=8,
        ),
        LaneDefinition(
            id=8,
            name="Deploy",
            agents=("devops",),
            auto_triggers=("devops",),
            completion_criteria=("deployed",),
            next_lane=9,
        ),
        LaneDefinition(
            id=9,
            name="Docs & Training",
            agents=("docs",),
            auto_triggers=("docs",),
            completion_criteria=("documentation_complete",),
            next_lane=10,
        ),
        LaneDefinition(
            id=10,
            name="Learn & Optimize",
            agents=("refactor",),
            completion_criteria=("optimization_complete",),
            next_lane=None,
        ),
    )
}


def is_valid_lane(lane: object) -> bool:
    return isinstance(lane, int) and not isinstance(lane, bool) and lane in LANES


def get_lane(lane: int) -> LaneDefinition:
    """Return the definition of ``lane``; raises ``KeyError`` for ids outside 0-10."""
    return LANES[lane]


def get_lane_name(lane: int) -> str:
    definition = LANES.get(lane)
    return definition.name if definition is not None else f"Lane {lane}"


# Completion criteria

Criterion = Callable[[Card], bool]


def _status_completed(card: Card) -> bool:
    return card.status is CardStatus.completed


def _has_output(*agents: str) -> Criterion:
    def _check(card: Card) -> bool:
        return any(card.has_output(agent) for agent in agents)

    return _check


def _tests_passing(card: Card) -> bool:
    return _status_completed(card) and bool((card.test_results or {}).get("success"))


def _deployed(card: Card) -> bool:
    return _status_completed(card) and card.has_output("devops")


CRITERIA: Dict[str, Criterion] = {
    "blueprint_approved": _status_completed,
    "prd_generated": _has_output("prd"),
    "mvp_defined": _has_output("mvp"),
    "research_complete": _has_output("research"),
    "architecture_designed": _has_output("architect"),
    "tasks_created": _has_output("planner"),
    "infrastructure_setup": _has_output("devops"),
    "implementation_complete": _has_output("dev_backend", "dev_frontend"),
    "tests_passing": _tests_passing,
    "deployed": _deployed,
    "documentation_complete": _has_output("docs"),
    "optimization_complete": _has_output("refactor"),
}


def criterion_met(name: str, card: Card) -> bool:
    """Evaluate one criterion; unknown names never hold."""
    check = CRITERIA.get(name)
    return check is not None and check(card)


def criteria_met(lane: LaneDefinition, card: Card) -> bool:
    """All of the lane's criteria hold for ``card`` (AND only)."""
    return all(criterion_met(name, card) for name in lane.completion_criteria)
