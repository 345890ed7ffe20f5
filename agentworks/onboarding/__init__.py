from .service import OnboardingService, routing_config
from .validator import TOOL_CATEGORY_TOOLS, VALID_LANES, OnboardingValidator, validate

__all__ = [
    "OnboardingService",
    "OnboardingValidator",
    "TOOL_CATEGORY_TOOLS",
    "VALID_LANES",
    "routing_config",
    "validate",
]
