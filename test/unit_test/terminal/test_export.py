import json
from datetime import datetime, timedelta, timezone

import pytest

from agentworks.schemas.sessions import LogEntry, LogLevel, RunSession, SessionStatus
from agentworks.terminal import export_json, export_session, export_text, render_html

START = datetime(2026, 3, 2, 14, 30, tzinfo=timezone.utc)


@pytest.fixture
def session() -> RunSession:
    return RunSession(
        id="run_abc_123456",
        project_id="demo",
        card_id="card-1",
        agent_name="architect",
        status=SessionStatus.completed,
        start_time=START,
        end_time=START + timedelta(seconds=42),
        entries=[
            LogEntry(timestamp=START, level=LogLevel.agent, message="Starting architect agent execution"),
            LogEntry(
                timestamp=START + timedelta(seconds=41),
                level=LogLevel.success,
                message="Done & dusted",
                metadata={"tokens": 150},
            ),
        ],
    )


def test_json_export(session: RunSession):
    data = export_json(session)
    assert data["run_id"] == "run_abc_123456"
    assert data["session"]["agent_name"] == "architect"
    assert "entries" not in data["session"]
    assert [entry["level"] for entry in data["entries"]] == ["agent", "success"]


def test_text_export(session: RunSession):
    lines = export_text(session).splitlines()
    assert lines == [
        "[2026-03-02T14:30:00+00:00] AGENT: Starting architect agent execution",
        "[2026-03-02T14:30:41+00:00] SUCCESS: Done & dusted",
    ]


def test_export_session_dispatch(session: RunSession):
    assert json.loads(export_session(session, "json"))["run_id"] == session.id
    assert export_session(session, "txt") == export_text(session)
    with pytest.raises(ValueError):
        export_session(session, "html")


@pytest.mark.parametrize("theme, background", [("dark", "#1e1e1e"), ("light", "#ffffff")])
def test_html_theme(session: RunSession, theme: str, background: str):
    page = render_html(session, theme)
    assert background in page
    assert "Done &amp; dusted" in page
    assert "42s" in page
    assert "[14:30:41]" in page


def test_html_for_running_session(session: RunSession):
    running = session.model_copy(update={"status": SessionStatus.running, "end_time": None})
    assert "N/A" in render_html(running)
