"""
Application Entry Point.

Builds the FastAPI application over a ``Services`` bundle and includes the
v1 API routers. The bundle is created by the caller (or from settings when
omitted) so tests can hand in services wired to fakes.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentworks import __version__
from agentworks.core.logging_config import get_logger
from agentworks.factory import Services, build_services

from . import constant
from .api.v1 import health, onboarding, providers, runs, usage
from .exception_handlers import setup_exception_handlers

logger = get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Create the HTTP application.

    Args:
        services: Service bundle to serve; built from settings when omitted.
    """
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up AgentWorks server...")
        await services.startup()
        yield
        logger.info("Shutting down AgentWorks server...")
        await services.shutdown()

    app = FastAPI(
        title=constant.PROJECT_NAME,
        description="AgentWorks API: provider catalog, run session logs, usage billing and agent onboarding.",
        version=__version__,
        openapi_url=f"{constant.API_V1_STR}/openapi.json",
        docs_url=f"{constant.API_V1_STR}/docs",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(providers.router, prefix=f"{constant.API_V1_STR}/providers", tags=["providers"])
    app.include_router(runs.router, prefix=f"{constant.API_V1_STR}/runs", tags=["runs"])
    app.include_router(usage.router, prefix=f"{constant.API_V1_STR}/usage", tags=["usage"])
    app.include_router(onboarding.router, prefix=f"{constant.API_V1_STR}/onboarding", tags=["onboarding"])
    return app
