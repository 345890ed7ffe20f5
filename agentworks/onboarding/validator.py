"""Onboarding config validation.

``validate`` walks every section of an agent onboarding config and collects
every problem it finds into one ``ValidationResult``. Nothing here raises on
bad input: a config editor needs the full list to render at once, so a
malformed section is reported and the walk continues with the next one.

Errors block activation; warnings are advisory strings. Field paths use the
wire (camelCase) names, e.g. ``skills[2].requiredTools`` or
``guardrails.maxBudgetPerRun``.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from ..catalog import ProviderCatalog
from ..schemas.cards import MAX_LANE, MIN_LANE
from ..schemas.onboarding import (
    AgentOnboardingConfig,
    ValidationErrorCode,
    ValidationIssue,
    ValidationResult,
)

NAME_PATTERN = re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)*$")
MAX_NAME_LENGTH = 64
MAX_DISPLAY_NAME_LENGTH = 128
DESCRIPTION_WARN_LENGTH = 500
SYSTEM_PROMPT_WARN_LENGTH = 50000
MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0
MAX_BUDGET_PER_RUN = 100.0

ROLE_CATEGORIES = (
    "coordinator",
    "engineering",
    "operations",
    "research",
    "marketing",
    "design",
    "analysis",
    "multimedia",
)
SENIORITY_LEVELS = ("junior", "mid", "senior", "lead")
MCP_TRANSPORTS = ("stdio", "sse", "streamable-http")
CHAIN_RELATIONSHIPS = ("reports_to", "supervises", "peers_with")
RISK_LEVELS = ("low", "medium", "high")
CHANNEL_TYPES = ("slack", "discord", "telegram", "teams", "webhook")
CHANNEL_PERMISSIONS = ("read", "write", "react")
GUARDRAIL_FLAGS = ("canExecuteCode", "canModifyFiles", "canAccessNetwork", "canManageGit", "requiresApproval")
VALID_LANES = tuple(range(MIN_LANE, MAX_LANE + 1))

TOOL_CATEGORY_TOOLS: Dict[str, tuple[str, ...]] = {
    "file": ("read_file", "write_file", "update_file", "list_files", "delete_file"),
    "git": (
        "git_status",
        "git_diff",
        "git_log",
        "git_commit",
        "git_push",
        "git_pull",
        "git_create_branch",
        "git_list_branches",
        "git_checkout",
        "create_pr",
    ),
    "code": ("run_tests", "run_linter", "run_typecheck", "run_build"),
    "search": ("grep", "find_files", "search_symbol"),
    "kanban": ("update_kanban_card", "append_card_todo", "complete_card_todo"),
    "docs": ("update_docs",),
    "builder": ("update_ui_builder_state", "update_db_builder_state", "update_workflow_builder_state"),
    "summary": ("log_run_summary",),
    "wordpress": (
        "wp_cli",
        "wp_scaffold_theme",
        "wp_scaffold_plugin",
        "wp_scaffold_block",
        "wp_check_standards",
        "wp_deploy",
    ),
}
TOOL_CATEGORIES = tuple(TOOL_CATEGORY_TOOLS)

ConfigInput = Union[AgentOnboardingConfig, Mapping[str, Any]]

_MISSING = object()


def _is_blank(value: Any) -> bool:
    if value is None or value is _MISSING:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_list(value: Any) -> Optional[List[Any]]:
    return value if isinstance(value, list) else None


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


class _Report:
    """Accumulator for one validation run."""

    def __init__(self) -> None:
        self.errors: List[ValidationIssue] = []
        self.warnings: List[str] = []

    def error(self, field: str, message: str, code: ValidationErrorCode) -> None:
        self.errors.append(ValidationIssue(field=field, message=message, code=code))

    def require(self, config: Mapping[str, Any], key: str, field: str, label: str) -> Any:
        value = config.get(key, _MISSING)
        if _is_blank(value):
            self.error(field, f"{label} is required", ValidationErrorCode.REQUIRED_FIELD)
            return None
        return value

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def result(self) -> ValidationResult:
        return ValidationResult(valid=not self.errors, errors=self.errors, warnings=self.warnings)


class OnboardingValidator:
    """
    Validates agent onboarding configs against the provider catalog.

    The same catalog instance should back the router, so a config that passes
    here names a provider/model pair the router can resolve.
    """

    def __init__(self, catalog: Optional[ProviderCatalog] = None) -> None:
        self._catalog = catalog or ProviderCatalog()

    def validate(self, config: ConfigInput) -> ValidationResult:
        """
        Run every check and return the accumulated result.

        Args:
            config: An ``AgentOnboardingConfig`` or the raw camelCase mapping
                produced by the config editor. Raw input is checked as-is, so
                wrongly typed values are reported rather than coerced.

        Returns:
            ``ValidationResult`` with ``valid`` true only when there are no errors.
        """
        if isinstance(config, AgentOnboardingConfig):
            raw: Mapping[str, Any] = config.model_dump(by_alias=True)
        else:
            raw = _as_mapping(config)

        report = _Report()
        self._identity(raw, report)
        self._role(raw, report)
        skills = self._skills(raw, report)
        categories = self._tool_categories(raw, report)
        custom_tools = self._custom_tools(raw, report)
        mcp_tools = self._mcp_servers(raw, report)
        self._skill_tool_compatibility(skills, categories, custom_tools, mcp_tools, report)
        self._llm(raw, report)
        self._guardrails(raw, report)
        self._chain_of_command(raw, report)
        self._lanes(raw, report)
        self._execution_mode(raw, report)
        self._channels(raw, report)
        self._sop_templates(raw, report)
        return report.result()

    # Identity

    def _identity(self, raw: Mapping[str, Any], report: _Report) -> None:
        name = report.require(raw, "name", "name", "Agent name")
        if name is not None:
            if not isinstance(name, str) or not NAME_PATTERN.match(name):
                report.error(
                    "name",
                    "Agent name must be snake_case (lowercase letters, digits and single underscores)",
                    ValidationErrorCode.INVALID_FORMAT,
                )
            elif len(name) > MAX_NAME_LENGTH:
                report.error(
                    "name",
                    f"Agent name must be at most {MAX_NAME_LENGTH} characters",
                    ValidationErrorCode.INVALID_FORMAT,
                )

        display_name = report.require(raw, "displayName", "displayName", "Display name")
        if isinstance(display_name, str) and len(display_name) > MAX_DISPLAY_NAME_LENGTH:
            report.error(
                "displayName",
                f"Display name must be at most {MAX_DISPLAY_NAME_LENGTH} characters",
                ValidationErrorCode.INVALID_FORMAT,
            )

        report.require(raw, "emoji", "emoji", "Emoji")

        description = report.require(raw, "description", "description", "Description")
        if isinstance(description, str) and len(description) > DESCRIPTION_WARN_LENGTH:
            report.warn(f"Description is longer than {DESCRIPTION_WARN_LENGTH} characters; consider shortening it")

    # Role

    def _role(self, raw: Mapping[str, Any], report: _Report) -> None:
        role = raw.get("role")
        if not isinstance(role, Mapping):
            report.error("role", "Role is required", ValidationErrorCode.REQUIRED_FIELD)
            return
        report.require(role, "title", "role.title", "Role title")
        if role.get("category") not in ROLE_CATEGORIES:
            report.error(
                "role.category",
                f"Role category must be one of: {', '.join(ROLE_CATEGORIES)}",
                ValidationErrorCode.INVALID_VALUE,
            )
        if role.get("seniority") not in SENIORITY_LEVELS:
            report.error(
                "role.seniority",
                f"Seniority must be one of: {', '.join(SENIORITY_LEVELS)}",
                ValidationErrorCode.INVALID_VALUE,
            )

    # Skills and tools

    def _skills(self, raw: Mapping[str, Any], report: _Report) -> List[Mapping[str, Any]]:
        skills = _as_list(raw.get("skills"))
        if skills is None:
            report.error("skills", "Skills must be a list", ValidationErrorCode.REQUIRED_FIELD)
            return []
        if not skills:
            report.warn("No skills defined; the agent will rely on its system prompt only")

        seen: Set[str] = set()
        valid: List[Mapping[str, Any]] = []
        for index, skill in enumerate(skills):
            skill = _as_mapping(skill)
            name = report.require(skill, "name", f"skills[{index}].name", "Skill name")
            if isinstance(name, str):
                if name in seen:
                    report.error(
                        f"skills[{index}].name",
                        f'Duplicate skill name "{name}"',
                        ValidationErrorCode.DUPLICATE_NAME,
                    )
                seen.add(name)
            report.require(skill, "description", f"skills[{index}].description", "Skill description")
            if "requiredTools" in skill and not isinstance(skill["requiredTools"], list):
                report.error(
                    f"skills[{index}].requiredTools",
                    "Required tools must be a list of tool names",
                    ValidationErrorCode.INVALID_FORMAT,
                )
            for tool_index, tool in enumerate(_as_list(skill.get("requiredTools")) or []):
                if not isinstance(tool, str):
                    report.error(
                        f"skills[{index}].requiredTools[{tool_index}]",
                        "Required tool names must be strings",
                        ValidationErrorCode.INVALID_FORMAT,
                    )
            valid.append(skill)
        return valid

    def _tool_categories(self, raw: Mapping[str, Any], report: _Report) -> List[str]:
        categories = _as_list(raw.get("toolCategories"))
        if categories is None:
            report.error("toolCategories", "Tool categories must be a list", ValidationErrorCode.REQUIRED_FIELD)
            return []
        known: List[str] = []
        for index, category in enumerate(categories):
            if not isinstance(category, str):
                report.error(
                    f"toolCategories[{index}]",
                    "Tool categories must be strings",
                    ValidationErrorCode.INVALID_FORMAT,
                )
            elif category in TOOL_CATEGORY_TOOLS:
                known.append(category)
            else:
                report.error(
                    "toolCategories",
                    f'Unknown tool category "{category}"; expected one of: {", ".join(TOOL_CATEGORIES)}',
                    ValidationErrorCode.TOOL_INCOMPATIBLE,
                )
        return known

    def _custom_tools(self, raw: Mapping[str, Any], report: _Report) -> Set[str]:
        names: Set[str] = set()
        for index, tool in enumerate(_as_list(raw.get("customTools")) or []):
            tool = _as_mapping(tool)
            name = report.require(tool, "name", f"customTools[{index}].name", "Custom tool name")
            if isinstance(name, str):
                if name in names:
                    report.error(
                        f"customTools[{index}].name",
                        f'Duplicate custom tool name "{name}"',
                        ValidationErrorCode.DUPLICATE_NAME,
                    )
                names.add(name)
            report.require(tool, "description", f"customTools[{index}].description", "Custom tool description")
        return names

    def _mcp_servers(self, raw: Mapping[str, Any], report: _Report) -> Set[str]:
        tools: Set[str] = set()
        for index, server in enumerate(_as_list(raw.get("mcpServers")) or []):
            server = _as_mapping(server)
            report.require(server, "name", f"mcpServers[{index}].name", "MCP server name")
            report.require(server, "url", f"mcpServers[{index}].url", "MCP server URL")
            if server.get("transport") not in MCP_TRANSPORTS:
                report.error(
                    f"mcpServers[{index}].transport",
                    f"Transport must be one of: {', '.join(MCP_TRANSPORTS)}",
                    ValidationErrorCode.INVALID_VALUE,
                )
            tools.update(tool for tool in _as_list(server.get("tools")) or [] if isinstance(tool, str))
        return tools

    def _skill_tool_compatibility(
        self,
        skills: Iterable[Mapping[str, Any]],
        categories: Iterable[str],
        custom_tools: Set[str],
        mcp_tools: Set[str],
        report: _Report,
    ) -> None:
        available: Set[str] = set(custom_tools) | set(mcp_tools)
        for category in categories:
            available.update(TOOL_CATEGORY_TOOLS[category])
        for skill in skills:
            for tool in _as_list(skill.get("requiredTools")) or []:
                if isinstance(tool, str) and tool not in available:
                    report.warn(
                        f'Skill "{skill.get("name")}" requires tool "{tool}" which is not provided by an '
                        "assigned tool category, custom tool or MCP server"
                    )

    # LLM

    def _llm(self, raw: Mapping[str, Any], report: _Report) -> None:
        provider = report.require(raw, "provider", "provider", "Provider")
        model = report.require(raw, "model", "model", "Model")
        if provider is not None:
            if not isinstance(provider, str) or not self._catalog.has_provider(provider):
                report.error("provider", f'Unknown provider "{provider}"', ValidationErrorCode.INVALID_VALUE)
            elif model is not None and model not in self._catalog.get_models_for(provider):
                report.error(
                    "model",
                    f'Model "{model}" is not available for provider "{provider}"',
                    ValidationErrorCode.MODEL_INVALID,
                )

        temperature = raw.get("temperature", _MISSING)
        if temperature is _MISSING or temperature is None:
            report.error("temperature", "Temperature is required", ValidationErrorCode.REQUIRED_FIELD)
        elif not _is_number(temperature) or not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
            report.error(
                "temperature",
                f"Temperature must be between {MIN_TEMPERATURE:g} and {MAX_TEMPERATURE:g}",
                ValidationErrorCode.INVALID_VALUE,
            )

        max_tokens = raw.get("maxTokens", _MISSING)
        if max_tokens is _MISSING or max_tokens is None:
            report.error("maxTokens", "Max tokens is required", ValidationErrorCode.REQUIRED_FIELD)
        elif not _is_number(max_tokens) or max_tokens < 0:
            report.error(
                "maxTokens",
                "Max tokens must be a non-negative number (0 uses the model default)",
                ValidationErrorCode.INVALID_VALUE,
            )

        system_prompt = report.require(raw, "systemPrompt", "systemPrompt", "System prompt")
        if isinstance(system_prompt, str) and len(system_prompt) > SYSTEM_PROMPT_WARN_LENGTH:
            report.warn(f"System prompt is longer than {SYSTEM_PROMPT_WARN_LENGTH} characters")

    # Guardrails

    def _guardrails(self, raw: Mapping[str, Any], report: _Report) -> None:
        guardrails = raw.get("guardrails")
        if not isinstance(guardrails, Mapping):
            report.error("guardrails", "Guardrails are required", ValidationErrorCode.REQUIRED_FIELD)
            return
        for flag in GUARDRAIL_FLAGS:
            if not isinstance(guardrails.get(flag), bool):
                report.error(f"guardrails.{flag}", f"{flag} must be a boolean", ValidationErrorCode.INVALID_VALUE)

        budget = guardrails.get("maxBudgetPerRun", _MISSING)
        if budget is _MISSING or budget is None:
            report.error(
                "guardrails.maxBudgetPerRun", "Max budget per run is required", ValidationErrorCode.REQUIRED_FIELD
            )
        elif not _is_number(budget) or budget < 0:
            report.error(
                "guardrails.maxBudgetPerRun",
                "Max budget per run must be a non-negative number",
                ValidationErrorCode.INVALID_VALUE,
            )
        elif budget > MAX_BUDGET_PER_RUN:
            report.error(
                "guardrails.maxBudgetPerRun",
                f"Max budget per run cannot exceed ${MAX_BUDGET_PER_RUN:g}",
                ValidationErrorCode.BUDGET_EXCEEDED,
            )

        if (
            guardrails.get("canExecuteCode") is True
            and guardrails.get("canManageGit") is True
            and guardrails.get("requiresApproval") is not True
        ):
            report.warn("Agent can execute code and manage git without requiring approval")

    # Organization

    def _chain_of_command(self, raw: Mapping[str, Any], report: _Report) -> None:
        entries = _as_list(raw.get("chainOfCommand"))
        if entries is None:
            report.error("chainOfCommand", "Chain of command must be a list", ValidationErrorCode.REQUIRED_FIELD)
            return

        own_name = raw.get("name")
        seen_pairs: Set[tuple[Any, Any]] = set()
        supervises: Set[str] = set()
        reports_to: Set[str] = set()
        for index, entry in enumerate(entries):
            entry = _as_mapping(entry)
            agent_name = report.require(
                entry, "agentName", f"chainOfCommand[{index}].agentName", "Chain of command agent name"
            )
            relationship = entry.get("relationship")
            if relationship not in CHAIN_RELATIONSHIPS:
                report.error(
                    f"chainOfCommand[{index}].relationship",
                    f"Relationship must be one of: {', '.join(CHAIN_RELATIONSHIPS)}",
                    ValidationErrorCode.INVALID_VALUE,
                )
            if agent_name is None:
                continue
            if not isinstance(agent_name, str):
                report.error(
                    f"chainOfCommand[{index}].agentName",
                    "Chain of command agent name must be a string",
                    ValidationErrorCode.INVALID_FORMAT,
                )
                continue
            if agent_name == own_name:
                report.error(
                    f"chainOfCommand[{index}].agentName",
                    "An agent cannot reference itself in its chain of command",
                    ValidationErrorCode.CHAIN_CYCLE,
                )
            pair = (agent_name, relationship)
            if pair in seen_pairs:
                report.warn(f'Duplicate chain of command entry: {relationship} "{agent_name}"')
            seen_pairs.add(pair)
            if relationship == "supervises":
                supervises.add(agent_name)
            elif relationship == "reports_to":
                reports_to.add(agent_name)

        for agent_name in sorted(supervises & reports_to):
            report.error(
                "chainOfCommand",
                f'Agent both supervises and reports to "{agent_name}"',
                ValidationErrorCode.CHAIN_CYCLE,
            )

    def _lanes(self, raw: Mapping[str, Any], report: _Report) -> None:
        lanes = _as_list(raw.get("allowedLanes"))
        if lanes is None:
            report.error("allowedLanes", "Allowed lanes must be a list", ValidationErrorCode.REQUIRED_FIELD)
            return
        if not lanes:
            report.error("allowedLanes", "At least one lane is required", ValidationErrorCode.REQUIRED_FIELD)
        for lane in lanes:
            if isinstance(lane, bool) or lane not in VALID_LANES:
                report.error(
                    "allowedLanes",
                    f"Invalid lane {lane!r}; lanes run from {MIN_LANE} to {MAX_LANE}",
                    ValidationErrorCode.LANE_INVALID,
                )

    def _execution_mode(self, raw: Mapping[str, Any], report: _Report) -> None:
        mode = raw.get("executionMode")
        if not isinstance(mode, Mapping):
            report.error("executionMode", "Execution mode is required", ValidationErrorCode.REQUIRED_FIELD)
            return
        if not isinstance(mode.get("autoRun"), bool):
            report.error("executionMode.autoRun", "autoRun must be a boolean", ValidationErrorCode.INVALID_VALUE)
        if mode.get("riskLevel") not in RISK_LEVELS:
            report.error(
                "executionMode.riskLevel",
                f"Risk level must be one of: {', '.join(RISK_LEVELS)}",
                ValidationErrorCode.INVALID_VALUE,
            )
        if mode.get("riskLevel") == "high" and mode.get("autoRun") is True:
            report.warn("High-risk agent is configured to run automatically")

    def _channels(self, raw: Mapping[str, Any], report: _Report) -> None:
        channels = _as_list(raw.get("communicationChannels"))
        if channels is None:
            report.error(
                "communicationChannels", "Communication channels must be a list", ValidationErrorCode.REQUIRED_FIELD
            )
            return
        for index, channel in enumerate(channels):
            channel = _as_mapping(channel)
            if channel.get("type") not in CHANNEL_TYPES:
                report.error(
                    f"communicationChannels[{index}].type",
                    f"Channel type must be one of: {', '.join(CHANNEL_TYPES)}",
                    ValidationErrorCode.INVALID_VALUE,
                )
            permissions = _as_list(channel.get("permissions"))
            if not permissions:
                report.error(
                    f"communicationChannels[{index}].permissions",
                    "At least one permission is required",
                    ValidationErrorCode.REQUIRED_FIELD,
                )
                continue
            for permission in permissions:
                if permission not in CHANNEL_PERMISSIONS:
                    report.error(
                        f"communicationChannels[{index}].permissions",
                        f'Invalid permission "{permission}"; expected one of: {", ".join(CHANNEL_PERMISSIONS)}',
                        ValidationErrorCode.INVALID_VALUE,
                    )

    def _sop_templates(self, raw: Mapping[str, Any], report: _Report) -> None:
        templates = raw.get("sopTemplates")
        if templates is None:
            return
        names: Set[str] = set()
        for index, template in enumerate(_as_list(templates) or []):
            template = _as_mapping(template)
            prefix = f"sopTemplates[{index}]"
            name = report.require(template, "name", f"{prefix}.name", "SOP name")
            if isinstance(name, str):
                if name in names:
                    report.error(f"{prefix}.name", f'Duplicate SOP name "{name}"', ValidationErrorCode.DUPLICATE_NAME)
                names.add(name)
            report.require(template, "description", f"{prefix}.description", "SOP description")

            steps = _as_list(template.get("steps"))
            if not steps:
                report.error(f"{prefix}.steps", "SOP must have at least one step", ValidationErrorCode.REQUIRED_FIELD)
                continue
            orders = sorted(
                step.get("order") for step in steps if isinstance(step, Mapping) and _is_number(step.get("order"))
            )
            if orders != list(range(1, len(orders) + 1)):
                report.warn(f'SOP "{name}" steps are not numbered sequentially from 1')
            for step_index, step in enumerate(steps):
                step = _as_mapping(step)
                step_field = f"{prefix}.steps[{step_index}]"
                report.require(step, "action", f"{step_field}.action", "Step action")
                report.require(
                    step, "acceptanceCriteria", f"{step_field}.acceptanceCriteria", "Step acceptance criteria"
                )


def validate(config: ConfigInput, catalog: Optional[ProviderCatalog] = None) -> ValidationResult:
    """Validate ``config`` against ``catalog`` (the built-in catalog when omitted)."""
    return OnboardingValidator(catalog).validate(config)
