from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseSchema, utc_now


class LogLevel(str, Enum):
    system = "system"
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"
    debug = "debug"
    agent = "agent"
    tool = "tool"
    user = "user"


class RunType(str, Enum):
    manual = "manual"
    auto = "auto"


class SessionStatus(str, Enum):
    running = "running"
    completed = "completed"
    failed = "failed"


class LogEntry(BaseSchema):
    timestamp: datetime = Field(default_factory=utc_now)
    level: LogLevel = LogLevel.info
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RunSession(BaseSchema):
    """Log-capture lifecycle of one agent execution.

    ``entries`` only grows while ``status`` is ``running``; ``end_session``
    seals the record by setting ``end_time`` and a terminal status.
    """

    id: str
    project_id: str
    card_id: Optional[str] = None
    agent_name: str
    run_type: RunType = RunType.manual
    status: SessionStatus = SessionStatus.running
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    summary: Dict[str, Any] = Field(default_factory=dict)
    entries: List[LogEntry] = Field(default_factory=list)

    @property
    def sealed(self) -> bool:
        return self.status is not SessionStatus.running

    @property
    def duration_ms(self) -> int:
        if self.end_time is None:
            return 0
        return int((self.end_time - self.start_time).total_seconds() * 1000)


def format_log_line(entry: LogEntry) -> str:
    """``[timestamp] LEVEL: message {metadata}`` as written to ``terminal.log``."""
    line = f"[{entry.timestamp.isoformat()}] {entry.level.value.upper()}: {entry.message}"
    if entry.metadata:
        line += " " + json.dumps(entry.metadata, default=str, sort_keys=True)
    return line
