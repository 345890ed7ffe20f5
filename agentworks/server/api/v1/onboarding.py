"""
Agent Onboarding Endpoints.

Validates agent onboarding configs and registers valid ones into a project.
Validation problems are reported in the response body, never as HTTP errors.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body

from agentworks.server.deps import ServicesDep

router = APIRouter()


@router.post(
    "/validate",
    summary="Validate Onboarding Config",
    description="Run every onboarding check and return all errors and warnings at once.",
    response_description="Validation result with errors (field, message, code) and warnings.",
)
async def validate_config(services: ServicesDep, config: Dict[str, Any] = Body(...)):
    return services.onboarding.validate(config).model_dump(mode="json")


@router.post(
    "/{project_id}/register",
    summary="Register Agent",
    description="Validate a config and, when valid, store its routing config on the project.",
    responses={404: {"description": "Project not found"}},
)
async def register_agent(project_id: str, services: ServicesDep, config: Dict[str, Any] = Body(...)):
    result = await services.onboarding.register(project_id, config)
    return result.model_dump(mode="json")
