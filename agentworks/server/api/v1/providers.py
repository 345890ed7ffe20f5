"""
Provider Catalog Endpoints.

Read-only listing of the LLM providers and models agents can be routed to.
"""

from fastapi import APIRouter

from agentworks.server.deps import ServicesDep

router = APIRouter()


@router.get(
    "",
    summary="List Providers",
    description="List every provider in the catalog, including disabled ones.",
    response_description="Provider records with models, rate limits and per-1K costs.",
)
async def list_providers(services: ServicesDep):
    return [provider.model_dump(mode="json", by_alias=True) for provider in services.catalog.list_providers()]


@router.get(
    "/{provider_id}/models",
    summary="List Provider Models",
    responses={404: {"description": "Unknown provider"}},
)
async def list_models(provider_id: str, services: ServicesDep):
    return {"provider": provider_id, "models": services.catalog.get_models_for(provider_id)}
