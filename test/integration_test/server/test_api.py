"""
Integration tests for the HTTP API.

The application is built over real file-backed services in a temporary
projects root with a fake LLM client, and driven through httpx's ASGI
transport.
"""

import json
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from agentworks.server.api.v1 import runs
from agentworks.server.app import create_app

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    await services.startup()
    app = create_app(services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await services.shutdown()


@pytest.fixture
async def finished_run(services, make_project) -> str:
    make_project("demo")
    run_id = await services.recorder.start_session("demo", "card-1", "architect")
    await services.recorder.log(run_id, "info", "Designing <api>")
    await services.recorder.log(run_id, "success", "Done", {"tokens": 10})
    await services.recorder.end_session(run_id, "completed", "ok")
    return run_id


class TestHealthAndProviders:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_list_providers(self, client):
        response = await client.get("/api/v1/providers")
        assert response.status_code == 200
        providers = {item["id"]: item for item in response.json()}
        assert set(providers) == {"openai", "anthropic", "google", "nanobanana"}
        assert providers["openai"]["costPer1K"] == {"input": 0.01, "output": 0.03}
        assert providers["nanobanana"]["enabled"] is False

    async def test_models(self, client):
        response = await client.get("/api/v1/providers/anthropic/models")
        assert response.status_code == 200
        assert "claude-3-opus" in response.json()["models"]

    async def test_unknown_provider(self, client):
        response = await client.get("/api/v1/providers/acme/models")
        assert response.status_code == 404
        assert response.json()["error"] == "UNKNOWN_PROVIDER"


class TestRuns:
    async def test_get_run(self, client, finished_run):
        response = await client.get(f"/api/v1/runs/{finished_run}")
        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "completed"
        assert body["log_count"] == 2
        assert body["live"] is False
        assert "entries" not in body

    async def test_unknown_run(self, client):
        response = await client.get("/api/v1/runs/run_missing_000000")
        assert response.status_code == 404
        assert response.json()["error"] == "SESSION_NOT_FOUND"

    async def test_logs(self, client, finished_run):
        response = await client.get(f"/api/v1/runs/{finished_run}/logs")
        entries = response.json()["entries"]
        assert [entry["message"] for entry in entries] == ["Designing <api>", "Done"]
        assert entries[1]["metadata"] == {"tokens": 10}

    async def test_export_json(self, client, finished_run):
        response = await client.get(f"/api/v1/runs/{finished_run}/export", params={"format": "json"})
        assert response.status_code == 200
        assert f'filename="{finished_run}.json"' in response.headers["content-disposition"]
        assert response.json()["run_id"] == finished_run

    async def test_export_text(self, client, finished_run):
        response = await client.get(f"/api/v1/runs/{finished_run}/export", params={"format": "txt"})
        assert response.status_code == 200
        assert "SUCCESS: Done" in response.text

    async def test_export_bad_format(self, client, finished_run):
        response = await client.get(f"/api/v1/runs/{finished_run}/export", params={"format": "pdf"})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_FORMAT"

    async def test_html(self, client, finished_run):
        response = await client.get(f"/api/v1/runs/{finished_run}/html", params={"theme": "light"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Designing &lt;api&gt;" in response.text

    async def test_stream_of_sealed_session(self, services, finished_run):
        request = AsyncMock()
        request.is_disconnected = AsyncMock(return_value=False)

        response = await runs.stream_run(finished_run, request, services)
        events = [event async for event in response.body_iterator]

        assert [event["event"] for event in events] == ["log", "log", "end"]
        assert json.loads(events[0]["data"])["message"] == "Designing <api>"
        assert json.loads(events[-1]["data"])["status"] == "completed"

    async def test_stream_stops_on_disconnect(self, services, make_project):
        make_project("demo")
        run_id = await services.recorder.start_session("demo", None, "qa")
        await services.recorder.log(run_id, "info", "one")
        await services.recorder.log(run_id, "info", "two")
        request = AsyncMock()
        request.is_disconnected = AsyncMock(side_effect=[False, True])

        response = await runs.stream_run(run_id, request, services)
        events = [event async for event in response.body_iterator]

        assert [event["event"] for event in events] == ["log"]


class TestUsage:
    @pytest.fixture
    async def routed(self, services, make_project):
        make_project("demo")
        await services.router.route_request("architect", "Design the login flow", "demo", "card-1")
        await services.router.route_request("qa", "Test the login flow", "demo", "card-1")

    async def test_report_json(self, client, routed):
        response = await client.get("/api/v1/usage/demo/report")
        body = response.json()
        assert response.status_code == 200
        assert body["summary"]["total_calls"] == 2
        assert set(body["by_agent"]) == {"architect", "qa"}

    async def test_report_csv(self, client, routed):
        response = await client.get("/api/v1/usage/demo/report", params={"format": "csv"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.text.splitlines()[0].startswith("Date,")

    async def test_analytics(self, client, routed):
        response = await client.get("/api/v1/usage/demo/analytics", params={"timeframe": "30d"})
        assert response.status_code == 200
        assert response.json()["timeframe_days"] == 30

    async def test_analytics_bad_timeframe(self, client, routed):
        response = await client.get("/api/v1/usage/demo/analytics", params={"timeframe": "lots"})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_TIMEFRAME"

    async def test_aggregate_matches_report(self, client, routed):
        aggregate = (await client.get("/api/v1/usage/demo/aggregate")).json()
        report = (await client.get("/api/v1/usage/demo/report")).json()
        assert aggregate["total_calls"] == report["summary"]["total_calls"]
        assert aggregate["total_price"] == report["summary"]["total_customer_price"]

    async def test_aggregate_unknown_project(self, client):
        response = await client.get("/api/v1/usage/ghost/aggregate")
        assert response.status_code == 404
        assert response.json()["error"] == "PROJECT_NOT_FOUND"


class TestOnboarding:
    async def test_validate(self, client, onboarding_config):
        response = await client.post("/api/v1/onboarding/validate", json=onboarding_config)
        assert response.status_code == 200
        assert response.json() == {"valid": True, "errors": [], "warnings": []}

    async def test_validate_reports_errors_in_body(self, client, onboarding_config):
        onboarding_config["name"] = "Bad Name"
        response = await client.post("/api/v1/onboarding/validate", json=onboarding_config)
        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert body["errors"][0]["field"] == "name"

    async def test_validate_badly_typed_values(self, client, onboarding_config):
        onboarding_config["toolCategories"] = [{"name": "git"}]
        onboarding_config["chainOfCommand"] = [{"agentName": ["qa"], "relationship": "peers_with"}]
        response = await client.post("/api/v1/onboarding/validate", json=onboarding_config)
        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert {error["field"] for error in body["errors"]} >= {"toolCategories[0]", "chainOfCommand[0].agentName"}

    async def test_register(self, client, services, make_project, onboarding_config):
        make_project("demo", agents={})
        response = await client.post("/api/v1/onboarding/demo/register", json=onboarding_config)
        assert response.json()["valid"] is True
        config = await services.repos.projects.get_agent_config("demo", "release_manager")
        assert config.lanes == [5, 8]

    async def test_register_unknown_project(self, client, onboarding_config):
        response = await client.post("/api/v1/onboarding/ghost/register", json=onboarding_config)
        assert response.status_code == 404
