from __future__ import annotations

"""Service wiring.

``build_services`` is the one place the catalog, stores, meter, router,
recorder, automator and onboarding service are constructed from ``Settings``.
The CLI and the HTTP app both call it; tests call it with a fake LLM client.

When ``AGENTWORKS_DATABASE_URL`` is set, usage events and aggregates live in
the SQL store and ``Services.startup`` creates its tables; everything else
stays on the file stores under ``projects_root``.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from .catalog import ProviderCatalog
from .core.concurrency import KeyedLock
from .core.config import Settings, get_settings
from .core.logging_config import get_logger
from .lanes.automator import CardAutomator
from .llm.base import LLMClient
from .llm.pydantic_ai_client import PydanticAILLMClient
from .metering.meter import UsageMeter
from .onboarding import OnboardingService, OnboardingValidator
from .repos.file import FileRepoBundle, build_file_repos
from .repos.interfaces import UsageStore
from .repos.sql import SqlUsageStore, create_all, create_engine, create_sessionmaker
from .router.agent_router import AgentRouter
from .terminal.recorder import SessionLogRecorder

logger = get_logger(__name__)


@dataclass(frozen=True)
class Services:
    """Everything one process needs, built from one ``Settings``."""

    settings: Settings
    catalog: ProviderCatalog
    repos: FileRepoBundle
    usage_store: UsageStore
    meter: UsageMeter
    router: AgentRouter
    recorder: SessionLogRecorder
    automator: CardAutomator
    onboarding: OnboardingService
    engine: Optional[AsyncEngine] = None

    async def startup(self) -> None:
        """Prepare backing resources; creates the usage tables for the SQL store."""
        if self.engine is not None:
            await create_all(self.engine)
            logger.info("Usage tables ready")

    async def shutdown(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


def build_catalog(settings: Settings) -> ProviderCatalog:
    if settings.provider_catalog_path is not None:
        return ProviderCatalog.from_file(settings.provider_catalog_path)
    return ProviderCatalog()


def build_services(
    settings: Optional[Settings] = None,
    *,
    llm_client: Optional[LLMClient] = None,
    catalog: Optional[ProviderCatalog] = None,
) -> Services:
    """
    Wire the service graph.

    Args:
        settings: Defaults to ``get_settings()``.
        llm_client: Provider boundary; defaults to the pydantic-ai client.
        catalog: Defaults to the built-in catalog or the file named by settings.
    """
    settings = settings or get_settings()
    catalog = catalog or build_catalog(settings)
    repos = build_file_repos(settings.projects_root)

    engine: Optional[AsyncEngine] = None
    usage_store: UsageStore = repos.usage
    if settings.database_url:
        engine = create_engine(settings.database_url)
        usage_store = SqlUsageStore(session_factory=create_sessionmaker(engine))
        logger.debug("Using SQL usage store")

    meter = UsageMeter(usage_store, settings.pricing())
    router = AgentRouter(
        projects=repos.projects,
        catalog=catalog,
        llm_client=llm_client or PydanticAILLMClient(settings),
        meter=meter,
        default_timeout_seconds=settings.default_timeout_seconds,
        prefer_provider_usage=settings.prefer_provider_usage,
        prompt_preview_chars=settings.prompt_preview_chars,
    )
    card_locks = KeyedLock()
    recorder = SessionLogRecorder(repos.sessions, repos.cards, card_locks=card_locks)
    automator = CardAutomator(
        projects=repos.projects,
        cards=repos.cards,
        artifacts=repos.artifacts,
        router=router,
        recorder=recorder,
        card_locks=card_locks,
    )
    onboarding = OnboardingService(repos.projects, OnboardingValidator(catalog))

    return Services(
        settings=settings,
        catalog=catalog,
        repos=repos,
        usage_store=usage_store,
        meter=meter,
        router=router,
        recorder=recorder,
        automator=automator,
        onboarding=onboarding,
        engine=engine,
    )
