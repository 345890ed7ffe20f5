from .automator import CardAutomator, TriggerOutcome
from .definitions import CRITERIA, LANES, LaneDefinition, criteria_met, get_lane, get_lane_name, is_valid_lane
from .prompts import build_agent_prompt

__all__ = [
    "CRITERIA",
    "CardAutomator",
    "LANES",
    "LaneDefinition",
    "TriggerOutcome",
    "build_agent_prompt",
    "criteria_met",
    "get_lane",
    "get_lane_name",
    "is_valid_lane",
]
