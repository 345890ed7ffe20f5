import asyncio
import logging
from pathlib import Path

import pytest

from agentworks.core.concurrency import CancellationToken, KeyedLock
from agentworks.core.config import Settings
from agentworks.core.errors import (
    AgentWorksError,
    ProjectNotFoundError,
    ProviderDisabledError,
    ProviderCallError,
    RequestTimeoutError,
)
from agentworks.core.logging_config import MODULE_LOG_LEVELS, get_logger, setup_logging
from agentworks.metering.pricing import PricingPolicy


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.projects_root == Path("projects")
        assert settings.database_url is None
        assert settings.pricing() == PricingPolicy(markup=5.0, increment=0.25)
        assert settings.prefer_provider_usage is False

    def test_environment_binding(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("AGENTWORKS_PROJECTS_ROOT", str(tmp_path))
        monkeypatch.setenv("AGENTWORKS_PRICING_MARKUP", "3")
        monkeypatch.setenv("AGENTWORKS_PREFER_PROVIDER_USAGE", "true")
        settings = Settings()
        assert settings.projects_root == tmp_path
        assert settings.pricing().markup == 3.0
        assert settings.prefer_provider_usage is True

    def test_field_names_accepted(self, tmp_path: Path):
        assert Settings(projects_root=tmp_path).projects_root == tmp_path

    @pytest.mark.parametrize("field, value", [("pricing_markup", 0.5), ("pricing_increment", 0)])
    def test_invalid_pricing(self, field: str, value: float):
        with pytest.raises(ValueError):
            Settings(**{field: value})

    def test_provider_api_keys(self):
        settings = Settings(OPENAI_API_KEY="sk-test")
        assert settings.openai.api_key == "sk-test"
        assert settings.anthropic.api_key is None


class TestErrors:
    def test_to_dict(self):
        error = ProjectNotFoundError("Project demo not found", details={"path": "/x"})
        assert error.to_dict() == {"error": "PROJECT_NOT_FOUND", "message": "Project demo not found", "details": {"path": "/x"}}
        assert error.status_code == 404

    def test_hierarchy(self):
        assert issubclass(ProviderDisabledError, ProviderCallError)
        assert issubclass(RequestTimeoutError, AgentWorksError)
        assert str(RequestTimeoutError("slow")) == "slow"


class TestConcurrency:
    async def test_keyed_lock_serializes_same_key(self):
        locks = KeyedLock()
        order = []

        async def worker(name: str, key: str):
            async with locks.hold(key):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a", "k"), worker("b", "k"))
        assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    async def test_different_keys_do_not_contend(self):
        locks = KeyedLock()
        async with locks.hold("one"):
            assert locks.locked("one")
            assert not locks.locked("two")
            async with locks.hold("two"):
                pass

    async def test_released_keys_are_dropped(self):
        locks = KeyedLock()
        for index in range(100):
            async with locks.hold(("session", f"run_{index}")):
                assert locks.key_count == 1
        assert locks.key_count == 0

    async def test_key_kept_while_waiters_remain(self):
        locks = KeyedLock()
        entered = []

        async def waiter():
            async with locks.hold("card"):
                entered.append(True)

        async with locks.hold("card"):
            task = asyncio.ensure_future(waiter())
            await asyncio.sleep(0.01)
            assert locks.key_count == 1
        await task
        assert entered == [True]
        assert locks.key_count == 0

    async def test_cancellation_token(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel("stop")
        token.cancel("ignored")
        await asyncio.wait_for(token.wait(), timeout=1)
        assert token.reason == "stop"


def test_setup_logging_applies_module_levels():
    setup_logging(log_level="WARNING", log_format="simple")
    assert logging.getLogger("agentworks.router").level == logging.getLevelName(MODULE_LOG_LEVELS["agentworks.router"])
    assert get_logger("agentworks.cli").name == "agentworks.cli"
