"""Agent onboarding configuration records.

Field names are snake_case in Python and camelCase on the wire, matching what
the config editor produces. The models are deliberately loose (plain strings
for enumerated values) so any editor payload that is structurally a config can
be loaded and then reported on by the validator.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OnboardingSchema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class AgentRoleSpec(OnboardingSchema):
    title: str = ""
    category: str = ""
    seniority: str = ""


class SkillDefinition(OnboardingSchema):
    name: str = ""
    description: str = ""
    location: Optional[str] = None
    required_tools: List[str] = Field(default_factory=list)


class ToolParameter(OnboardingSchema):
    name: str
    type: str = "string"
    description: str = ""
    required: bool = False
    enum: Optional[List[str]] = None
    items: Optional[dict] = None
    default: Any = None


class CustomToolDefinition(OnboardingSchema):
    name: str = ""
    description: str = ""
    category: str = ""
    parameters: List[ToolParameter] = Field(default_factory=list)
    endpoint: Optional[str] = None


class MCPServerConfig(OnboardingSchema):
    name: str = ""
    url: str = ""
    transport: str = "stdio"
    auth_type: Optional[str] = None
    tools: List[str] = Field(default_factory=list)


class GuardrailConfig(OnboardingSchema):
    can_execute_code: bool = False
    can_modify_files: bool = False
    can_access_network: bool = False
    can_manage_git: bool = False
    requires_approval: bool = True
    max_budget_per_run: float = 0.0
    soul_md: str = ""


class ChainOfCommandEntry(OnboardingSchema):
    agent_name: str = ""
    relationship: str = ""


class ExecutionMode(OnboardingSchema):
    auto_run: bool = False
    risk_level: str = "low"


class ChannelConfig(OnboardingSchema):
    type: str
    channel_id: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)


class SOPStep(OnboardingSchema):
    order: int
    action: str = ""
    description: str = ""
    tool_required: Optional[str] = None
    acceptance_criteria: str = ""


class SOPTemplate(OnboardingSchema):
    name: str = ""
    description: str = ""
    steps: List[SOPStep] = Field(default_factory=list)
    expected_duration: str = ""
    required_tools: List[str] = Field(default_factory=list)


class AgentOnboardingConfig(OnboardingSchema):
    """Complete declarative definition of an agent, from identity to SOPs."""

    # Identity
    name: str = ""
    display_name: str = ""
    emoji: str = ""
    description: str = ""

    # Role
    role: AgentRoleSpec = Field(default_factory=AgentRoleSpec)
    responsibilities: List[str] = Field(default_factory=list)
    specializations: List[str] = Field(default_factory=list)

    # Skills and tools
    skills: List[SkillDefinition] = Field(default_factory=list)
    tool_categories: List[str] = Field(default_factory=list)
    custom_tools: Optional[List[CustomToolDefinition]] = None
    mcp_servers: Optional[List[MCPServerConfig]] = None

    # LLM
    provider: str = ""
    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 0

    # Behavior
    system_prompt: str = ""
    guardrails: GuardrailConfig = Field(default_factory=GuardrailConfig)

    # Organization
    chain_of_command: List[ChainOfCommandEntry] = Field(default_factory=list)
    allowed_lanes: List[int] = Field(default_factory=list)
    execution_mode: ExecutionMode = Field(default_factory=ExecutionMode)
    communication_channels: List[ChannelConfig] = Field(default_factory=list)
    sop_templates: Optional[List[SOPTemplate]] = None


class ValidationErrorCode(str, Enum):
    REQUIRED_FIELD = "REQUIRED_FIELD"
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_VALUE = "INVALID_VALUE"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    TOOL_INCOMPATIBLE = "TOOL_INCOMPATIBLE"
    MODEL_INVALID = "MODEL_INVALID"
    CHAIN_CYCLE = "CHAIN_CYCLE"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    LANE_INVALID = "LANE_INVALID"


class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str
    code: ValidationErrorCode


class ValidationResult(BaseModel):
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def errors_for(self, field: str) -> List[ValidationIssue]:
        return [issue for issue in self.errors if issue.field == field]
