"""
Integration tests for the JSON-file stores.

These exercise the real on-disk layout under a temporary projects root:
legacy card migration, lane index coercion, day-partitioned usage logs with
the cached aggregate in ``project.json``, and aggregate reconciliation.
"""

import asyncio
import json
from datetime import date, datetime, timezone

import pytest

from agentworks.core.errors import CardNotFoundError, PersistenceError, ProjectNotFoundError
from agentworks.metering.meter import UsageMeter
from agentworks.repos.file import build_file_repos
from agentworks.schemas.cards import Card
from agentworks.schemas.usage import CostBreakdown, ProjectUsageAggregate, TokenUsage, UsageEvent

pytestmark = pytest.mark.asyncio


def usage_event(day: int, *, agent: str = "architect", price: float = 0.25, success: bool = True) -> UsageEvent:
    return UsageEvent(
        timestamp=datetime(2026, 3, day, 12, 0, tzinfo=timezone.utc),
        project_id="demo",
        agent_name=agent,
        provider="openai",
        model="gpt-4o",
        usage=TokenUsage.of(400, 200),
        cost=CostBreakdown(provider_cost=0.01, customer_price=price, margin=price - 0.01),
        duration_ms=50,
        success=success,
    )


@pytest.fixture
def repos(projects_root, make_project):
    make_project("demo")
    return build_file_repos(projects_root)


class TestProjectStore:
    async def test_missing_project(self, repos):
        with pytest.raises(ProjectNotFoundError):
            await repos.projects.get_project("ghost")

    async def test_unsafe_project_id(self, repos):
        with pytest.raises(ProjectNotFoundError):
            await repos.projects.get_project("../etc")

    async def test_lane_list_is_coerced_to_index(self, projects_root, make_project):
        make_project("listed", lanes=[{"cards": ["a", "b"]}, None, {"cards": [{"id": "c"}]}])
        project = await build_file_repos(projects_root).projects.get_project("listed")
        assert [ref.id for ref in project.lanes["0"].cards] == ["a", "b"]
        assert "1" not in project.lanes
        assert [ref.id for ref in project.lanes["2"].cards] == ["c"]

    async def test_unknown_keys_survive_a_rewrite(self, projects_root, make_project, load_json):
        project_dir = make_project("extra", settings={"theme": "dark"})
        repos = build_file_repos(projects_root)
        await repos.projects.update_lane_index("extra", "card-1", 0, 1)
        assert load_json(project_dir / "project.json")["settings"] == {"theme": "dark"}

    async def test_context_documents(self, repos, projects_root):
        docs = projects_root / "demo" / "docs"
        docs.mkdir()
        (docs / "PRD.md").write_text("the prd", encoding="utf-8")
        assert await repos.projects.load_context_documents("demo") == {"prd": "the prd"}


class TestCardStore:
    async def test_legacy_card_is_migrated_on_save(self, repos, projects_root):
        legacy_dir = projects_root / "demo" / "cards" / "features"
        legacy_dir.mkdir(parents=True)
        (legacy_dir / "feat-1.json").write_text(json.dumps({"id": "feat-1", "title": "Old"}), encoding="utf-8")

        card = await repos.cards.get_card("demo", "feat-1")
        card.title = "Migrated"
        await repos.cards.save_card("demo", card)

        assert not (legacy_dir / "feat-1.json").exists()
        assert (projects_root / "demo" / "cards" / "feat-1.json").exists()
        assert (await repos.cards.get_card("demo", "feat-1")).title == "Migrated"

    async def test_list_prefers_flat_copy(self, repos, make_card, projects_root):
        make_card("demo", "dup", title="Flat")
        legacy_dir = projects_root / "demo" / "cards" / "bugs"
        legacy_dir.mkdir(parents=True)
        (legacy_dir / "dup.json").write_text(json.dumps({"id": "dup", "title": "Legacy"}), encoding="utf-8")

        cards = await repos.cards.list_cards("demo")
        assert [(card.id, card.title) for card in cards] == [("dup", "Flat")]

    async def test_missing_and_corrupt_cards(self, repos, make_card):
        with pytest.raises(CardNotFoundError):
            await repos.cards.get_card("demo", "nope")
        make_card("demo", "broken").write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            await repos.cards.get_card("demo", "broken")

    async def test_artifact_paths_are_project_relative(self, repos):
        relative = await repos.artifacts.write_artifact("demo", "card-1", "architect", "# Design")
        assert relative == "artifacts/card-1/architect_output.md"
        assert await repos.artifacts.read_artifact("demo", "card-1", "architect") == "# Design"
        assert await repos.artifacts.read_artifact("demo", "card-1", "qa") is None


class TestUsageStore:
    async def test_events_are_partitioned_by_day(self, repos, projects_root, load_json):
        await repos.usage.record(usage_event(2))
        await repos.usage.record(usage_event(2, agent="qa"))
        await repos.usage.record(usage_event(3))

        usage_dir = projects_root / "demo" / "logs" / "usage"
        assert len(load_json(usage_dir / "usage_2026-03-02.json")) == 2
        assert len(load_json(usage_dir / "usage_2026-03-03.json")) == 1

        aggregate = await repos.usage.get_aggregate("demo")
        assert aggregate.total_calls == 3
        assert aggregate.total_price == 0.75
        assert load_json(projects_root / "demo" / "project.json")["usage"]["total_calls"] == 3

    async def test_date_range_filter(self, repos):
        for day in (1, 2, 3, 4):
            await repos.usage.record(usage_event(day))
        events = await repos.usage.list_events("demo", date(2026, 3, 2), date(2026, 3, 3))
        assert [event.day for event in events] == ["2026-03-02", "2026-03-03"]

    async def test_unknown_project_logs_event_only(self, projects_root):
        repos = build_file_repos(projects_root)
        aggregate = await repos.usage.record(usage_event(2))
        assert aggregate.total_calls == 1
        assert len(await repos.usage.list_events("demo")) == 1
        with pytest.raises(ProjectNotFoundError):
            await repos.usage.get_aggregate("demo")

    async def test_concurrent_records_keep_totals_consistent(self, repos):
        await asyncio.gather(*(repos.usage.record(usage_event(2)) for _ in range(20)))
        aggregate = await repos.usage.get_aggregate("demo")
        assert aggregate.total_calls == 20
        assert len(await repos.usage.list_events("demo")) == 20

    async def test_reconcile_repairs_drift(self, repos):
        meter = UsageMeter(repos.usage)
        await repos.usage.record(usage_event(2))
        await repos.usage.record(usage_event(3, success=False))
        await repos.usage.replace_aggregate("demo", ProjectUsageAggregate(total_calls=99))

        assert await meter.reconcile("demo") is True
        aggregate = await meter.get_aggregate("demo")
        assert (aggregate.total_calls, aggregate.failed_calls) == (1, 1)
        assert await meter.reconcile("demo") is False


class TestSessionStore:
    async def test_unknown_run(self, repos):
        assert await repos.sessions.load("run_nothing_000000") is None
        assert await repos.sessions.load("../escape") is None
        assert await repos.sessions.list_for_card("demo", "card-1") == []
