from __future__ import annotations

from typing import Any, Mapping

from ..core.logging_config import get_logger
from ..repos.interfaces import ProjectStore
from ..schemas.onboarding import AgentOnboardingConfig, ValidationResult
from ..schemas.projects import AgentConfig
from .validator import ConfigInput, OnboardingValidator

logger = get_logger(__name__)


def routing_config(raw: Mapping[str, Any]) -> AgentConfig:
    """Derive the router-facing ``AgentConfig`` from a validated onboarding config."""
    return AgentConfig(
        provider=raw["provider"],
        model=raw["model"],
        temperature=float(raw["temperature"]),
        max_tokens=int(raw["maxTokens"]),
        lanes=sorted(set(raw["allowedLanes"])),
        active=True,
        system_prompt=raw.get("systemPrompt") or None,
    )


class OnboardingService:
    """Registers agents into a project, but only configs that validate cleanly."""

    def __init__(self, projects: ProjectStore, validator: OnboardingValidator) -> None:
        self._projects = projects
        self._validator = validator

    def validate(self, config: ConfigInput) -> ValidationResult:
        return self._validator.validate(config)

    async def register(self, project_id: str, config: ConfigInput) -> ValidationResult:
        """
        Validate ``config`` and, when valid, store its routing config on the project.

        Returns:
            The validation result; the project is untouched unless ``valid`` is true.

        Raises:
            ProjectNotFoundError: If the config is valid but the project does not exist.
        """
        result = self._validator.validate(config)
        raw = config.model_dump(by_alias=True) if isinstance(config, AgentOnboardingConfig) else dict(config)
        if not result.valid:
            logger.info(
                f"Onboarding of agent {raw.get('name')!r} rejected for project {project_id}: "
                f"{len(result.errors)} error(s)"
            )
            return result

        await self._projects.put_agent_config(project_id, raw["name"], routing_config(raw))
        logger.info(f"Registered agent {raw['name']} in project {project_id} ({raw['provider']}/{raw['model']})")
        return result
