"""Replay/export renderings of a run session: JSON, plain text and HTML."""

from __future__ import annotations

import html
import json
from typing import Any, Dict, Literal

from ..schemas.base import utc_now
from ..schemas.sessions import LogEntry, RunSession

EXPORT_FORMATS = ("json", "txt")

_THEMES: Dict[str, Dict[str, str]] = {
    "dark": {
        "body_bg": "#1e1e1e",
        "body_fg": "#d4d4d4",
        "terminal_bg": "#0d1117",
        "border": "#30363d",
        "muted": "#7d8590",
        "metadata": "#8b949e",
    },
    "light": {
        "body_bg": "#ffffff",
        "body_fg": "#333333",
        "terminal_bg": "#f6f8fa",
        "border": "#d1d9e0",
        "muted": "#656d76",
        "metadata": "#656d76",
    },
}

_LEVEL_COLORS = {
    "system": "#58a6ff",
    "info": "#79c0ff",
    "success": "#56d364",
    "warning": "#e3b341",
    "error": "#ff6b6b",
    "agent": "#a5a5ff",
    "tool": "#d2a8ff",
    "user": "#ffa657",
    "debug": "#8b949e",
}


def export_json(session: RunSession) -> Dict[str, Any]:
    return {
        "run_id": session.id,
        "exported_at": utc_now().isoformat(),
        "session": session.model_dump(mode="json", exclude={"entries"}),
        "entries": [entry.model_dump(mode="json") for entry in session.entries],
    }


def text_line(entry: LogEntry) -> str:
    return f"[{entry.timestamp.isoformat()}] {entry.level.value.upper()}: {entry.message}"


def export_text(session: RunSession) -> str:
    return "\n".join(text_line(entry) for entry in session.entries)


def export_session(session: RunSession, format: str) -> str:
    """
    Render ``session`` for download.

    Raises:
        ValueError: If ``format`` is not ``json`` or ``txt``.
    """
    if format == "json":
        return json.dumps(export_json(session), indent=2)
    if format == "txt":
        return export_text(session)
    raise ValueError(f"Invalid format {format!r}; expected one of {', '.join(EXPORT_FORMATS)}")


def render_html(session: RunSession, theme: Literal["dark", "light"] = "dark") -> str:
    """Standalone terminal-style HTML page for a session. All session text is escaped."""
    colors = _THEMES.get(theme, _THEMES["dark"])
    level_css = "\n".join(f"    .level-{level} {{ color: {color}; }}" for level, color in _LEVEL_COLORS.items())
    duration = f"{round(session.duration_ms / 1000)}s" if session.end_time else "N/A"

    rows = []
    for entry in session.entries:
        metadata = ""
        if entry.metadata:
            metadata = f'<div class="metadata">{html.escape(json.dumps(entry.metadata, indent=2, default=str))}</div>'
        rows.append(
            '<div class="log-entry">'
            f'<span class="timestamp">[{entry.timestamp.strftime("%H:%M:%S")}]</span> '
            f'<span class="level-{entry.level.value}">{html.escape(entry.message)}</span>'
            f"{metadata}</div>"
        )

    agent = html.escape(session.agent_name)
    card = html.escape(session.card_id or "-")
    body = "".join(rows)
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>AgentWorks Terminal - {agent} - {html.escape(session.id)}</title>
  <style>
    body {{
      background: {colors['body_bg']};
      color: {colors['body_fg']};
      font-family: 'Consolas', 'Monaco', monospace;
      font-size: 14px;
      line-height: 1.4;
      margin: 0;
      padding: 20px;
    }}
    .terminal {{
      background: {colors['terminal_bg']};
      border: 1px solid {colors['border']};
      border-radius: 6px;
      padding: 16px;
      max-width: 1200px;
      margin: 0 auto;
    }}
    .header {{
      border-bottom: 1px solid {colors['border']};
      padding-bottom: 12px;
      margin-bottom: 16px;
    }}
    .log-entry {{ margin: 4px 0; word-wrap: break-word; }}
    .timestamp {{ color: {colors['muted']}; font-size: 12px; }}
    .metadata {{ color: {colors['metadata']}; font-size: 12px; margin-left: 20px; white-space: pre-wrap; }}
{level_css}
  </style>
</head>
<body>
  <div class="terminal">
    <div class="header">
      <h2>{agent} Agent Terminal</h2>
      <div>
        <strong>Run ID:</strong> {html.escape(session.id)}<br>
        <strong>Project:</strong> {html.escape(session.project_id)}<br>
        <strong>Card:</strong> {card}<br>
        <strong>Status:</strong> {session.status.value}<br>
        <strong>Duration:</strong> {duration}
      </div>
    </div>
    <div class="logs">
      {body}
    </div>
  </div>
</body>
</html>
"""
