from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
import pytest
from dotenv import load_dotenv

from agentworks.core.concurrency import CancellationToken
from agentworks.core.config import Settings
from agentworks.factory import Services, build_services
from agentworks.llm.base import CompletionRequest, CompletionResponse

# Load dotenv files early so test fixtures can read secrets via os.getenv
TEST_ROOT = Path(__file__).resolve().parent
load_dotenv(TEST_ROOT / ".env", override=False)
load_dotenv(TEST_ROOT / ".env.example", override=False)


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://localhost",
        "http://127.0.0.1",
        "http://test",
        "/",  # Allow relative paths (used by ASGI transport)
    )

    orig_sync = httpx._client.Client.request
    orig_async = httpx._client.AsyncClient.request

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    def offline_sync(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return orig_sync(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard: {url_str}")

    async def offline_async(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return await orig_async(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard (async): {url_str}")

    monkeypatch.setattr(httpx._client.Client, "request", offline_sync, raising=True)
    monkeypatch.setattr(httpx._client.AsyncClient, "request", offline_async, raising=True)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep a developer's AgentWorks settings out of the tests."""
    for name in (
        "AGENTWORKS_PROJECTS_ROOT",
        "AGENTWORKS_DATABASE_URL",
        "AGENTWORKS_PROVIDER_CATALOG",
        "AGENTWORKS_PREFER_PROVIDER_USAGE",
    ):
        monkeypatch.delenv(name, raising=False)


class FakeLLMClient:
    """Deterministic LLM client that records every request it receives.

    Attributes:
        content: Text returned for every completion.
        delay: Seconds to sleep before answering.
        error: Raised instead of answering when set.
        input_tokens / output_tokens: Provider-reported counts, if any.
    """

    def __init__(
        self,
        content: str = "Generated output",
        *,
        delay: float = 0.0,
        error: Optional[BaseException] = None,
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
    ) -> None:
        self.content = content
        self.delay = delay
        self.error = error
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.requests: List[CompletionRequest] = []
        self.cancel_tokens: List[Optional[CancellationToken]] = []

    async def complete(
        self, request: CompletionRequest, *, cancel_token: Optional[CancellationToken] = None
    ) -> CompletionResponse:
        self.requests.append(request)
        self.cancel_tokens.append(cancel_token)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return CompletionResponse(
            content=self.content, input_tokens=self.input_tokens, output_tokens=self.output_tokens
        )


def agent_entry(
    provider: str = "openai",
    model: str = "gpt-4o",
    *,
    lanes: Optional[List[int]] = None,
    active: bool = True,
    **extra: Any,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"provider": provider, "model": model, "temperature": 0.7, "maxTokens": 0, "active": active}
    if lanes is not None:
        entry["lanes"] = lanes
    entry.update(extra)
    return entry


DEFAULT_AGENTS: Dict[str, Dict[str, Any]] = {
    name: agent_entry()
    for name in (
        "ceo_copilot",
        "strategy",
        "prd",
        "mvp",
        "research",
        "architect",
        "planner",
        "devops",
        "dev_backend",
        "dev_frontend",
        "qa",
        "docs",
        "refactor",
    )
}


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def projects_root(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    root.mkdir()
    return root


@pytest.fixture
def make_project(projects_root: Path) -> Callable[..., Path]:
    """Write ``<root>/<id>/project.json`` and return the project directory."""

    def _make(project_id: str = "demo", agents: Optional[Dict[str, Dict[str, Any]]] = None, **extra: Any) -> Path:
        project_dir = projects_root / project_id
        project_dir.mkdir(parents=True, exist_ok=True)
        document = {"id": project_id, "name": f"{project_id.title()} Project", "agents": DEFAULT_AGENTS if agents is None else agents}
        document.update(extra)
        (project_dir / "project.json").write_text(json.dumps(document, indent=2), encoding="utf-8")
        return project_dir

    return _make


@pytest.fixture
def make_card(projects_root: Path) -> Callable[..., Path]:
    """Write ``<root>/<project>/cards/<id>.json`` and return its path."""

    def _make(project_id: str = "demo", card_id: str = "card-1", **fields: Any) -> Path:
        cards_dir = projects_root / project_id / "cards"
        cards_dir.mkdir(parents=True, exist_ok=True)
        document = {"id": card_id, "title": "Login page", "description": "Users sign in with email", "lane": 0, "status": "draft"}
        document.update(fields)
        path = cards_dir / f"{card_id}.json"
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        return path

    return _make


@pytest.fixture
def settings(projects_root: Path) -> Settings:
    return Settings(projects_root=projects_root)


@pytest.fixture
def services(settings: Settings, fake_llm: FakeLLMClient) -> Services:
    return build_services(settings, llm_client=fake_llm)


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def load_json() -> Callable[[Path], Any]:
    return read_json


def valid_onboarding_config(**overrides: Any) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "name": "release_manager",
        "displayName": "Release Manager",
        "emoji": "🚀",
        "description": "Coordinates releases and deploys",
        "role": {"title": "Release Manager", "category": "operations", "seniority": "senior"},
        "responsibilities": ["Cut releases"],
        "specializations": ["CI/CD"],
        "skills": [
            {"name": "tagging", "description": "Tags releases", "requiredTools": ["git_commit"]},
        ],
        "toolCategories": ["git", "file"],
        "provider": "anthropic",
        "model": "claude-sonnet-4-20250514",
        "temperature": 0.3,
        "maxTokens": 4096,
        "systemPrompt": "You manage releases.",
        "guardrails": {
            "canExecuteCode": False,
            "canModifyFiles": True,
            "canAccessNetwork": False,
            "canManageGit": True,
            "requiresApproval": True,
            "maxBudgetPerRun": 5,
            "soulMd": "",
        },
        "chainOfCommand": [{"agentName": "ceo_copilot", "relationship": "reports_to"}],
        "allowedLanes": [8, 5],
        "executionMode": {"autoRun": False, "riskLevel": "medium"},
        "communicationChannels": [{"type": "slack", "channelId": "C123", "permissions": ["read", "write"]}],
    }
    config.update(overrides)
    return config


@pytest.fixture
def onboarding_config() -> Dict[str, Any]:
    return valid_onboarding_config()


@pytest.fixture
def llm_client_factory() -> Callable[..., FakeLLMClient]:
    """Build ``FakeLLMClient`` variants (slow, failing, provider-reported usage)."""
    return FakeLLMClient


@pytest.fixture
def make_services(projects_root: Path) -> Callable[..., Services]:
    def _make(llm_client: Optional[FakeLLMClient] = None, **settings_fields: Any) -> Services:
        settings_fields.setdefault("projects_root", projects_root)
        return build_services(Settings(**settings_fields), llm_client=llm_client or FakeLLMClient())

    return _make
