"""
Health Check Endpoints.

Basic status endpoint used for monitoring and deployment verification.
"""

from fastapi import APIRouter

from agentworks import __version__

router = APIRouter()


@router.get(
    "/health",
    summary="Health Check",
    description="Check the operational status of the API server.",
    response_description="Status object.",
)
async def health_check():
    return {"status": "ok", "version": __version__}
