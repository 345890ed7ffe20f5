import pytest

from agentworks.lanes import LANES, build_agent_prompt, criteria_met, get_lane, get_lane_name, is_valid_lane
from agentworks.lanes.definitions import CRITERIA, criterion_met
from agentworks.schemas.cards import AgentOutput, Card, CardStatus
from agentworks.schemas.projects import Project


def test_eleven_ordered_lanes():
    assert sorted(LANES) == list(range(11))
    for lane_id, lane in LANES.items():
        expected_next = lane_id + 1 if lane_id < 10 else None
        assert lane.next_lane == expected_next


def test_auto_triggers_are_lane_agents():
    for lane in LANES.values():
        assert set(lane.auto_triggers) <= set(lane.agents)


def test_every_criterion_is_defined():
    for lane in LANES.values():
        assert lane.completion_criteria
        for name in lane.completion_criteria:
            assert name in CRITERIA


@pytest.mark.parametrize("lane, valid", [(0, True), (10, True), (11, False), (-1, False), ("3", False), (True, False)])
def test_is_valid_lane(lane, valid):
    assert is_valid_lane(lane) is valid


def test_lane_lookup():
    assert get_lane(3).name == "Architecture & Stack"
    assert get_lane_name(6) == "Build"
    assert get_lane_name(42) == "Lane 42"
    with pytest.raises(KeyError):
        get_lane(11)


def test_definitions_are_frozen():
    with pytest.raises(Exception):
        LANES[0].next_lane = 5  # type: ignore[misc]


class TestCriteria:
    def test_blueprint_approved_needs_completed_status(self):
        lane = get_lane(0)
        assert not criteria_met(lane, Card(id="c", status=CardStatus.review))
        assert criteria_met(lane, Card(id="c", status=CardStatus.completed))

    def test_lane_one_needs_both_outputs(self):
        lane = get_lane(1)
        card = Card(id="c", artifacts={"prd": "artifacts/c/prd_output.md"})
        assert not criteria_met(lane, card)
        card.agent_outputs["mvp"] = AgentOutput(content="MVP scope")
        assert criteria_met(lane, card)

    def test_build_accepts_either_developer(self):
        assert criteria_met(get_lane(6), Card(id="c", artifacts={"dev_frontend": "x"}))

    def test_tests_passing(self):
        lane = get_lane(7)
        card = Card(id="c", status=CardStatus.completed, test_results={"success": False})
        assert not criteria_met(lane, card)
        card.test_results = {"success": True}
        assert criteria_met(lane, card)

    def test_deployed_needs_devops_output_and_completion(self):
        lane = get_lane(8)
        assert not criteria_met(lane, Card(id="c", status=CardStatus.completed))
        assert criteria_met(lane, Card(id="c", status=CardStatus.completed, artifacts={"devops": "x"}))

    def test_unknown_criterion_never_holds(self):
        assert criterion_met("moon_landing", Card(id="c", status=CardStatus.completed)) is False


class TestPrompts:
    @pytest.fixture
    def project(self):
        return Project(id="demo", name="Demo")

    @pytest.fixture
    def card(self):
        return Card(id="c", title="Login page", description="Email sign in", lane=3, acceptance_criteria=["works"])

    def test_architect_prompt_includes_context(self, project, card):
        prompt = build_agent_prompt("architect", project, card, {"blueprint": "B" * 600, "prd": "short prd"})
        assert 'project "Demo"' in prompt
        assert "B" * 500 + "..." in prompt
        assert "short prd" in prompt
        assert "Acceptance Criteria: works" in prompt

    def test_missing_documents(self, project, card):
        prompt = build_agent_prompt("ceo_copilot", project, card)
        assert "Blueprint: Missing" in prompt
        assert "Lane: 3 (Architecture & Stack)" in prompt

    def test_developer_prompts_differ_by_kind(self, project, card):
        assert "backend" in build_agent_prompt("dev_backend", project, card)
        assert "frontend" in build_agent_prompt("dev_frontend", project, card)

    def test_generic_fallback(self, project, card):
        prompt = build_agent_prompt("planner", project, card)
        assert "As the planner agent" in prompt
        assert "Login page" in prompt
