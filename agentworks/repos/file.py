from __future__ import annotations

"""JSON-file repository implementations.

On-disk layout under ``projects_root``::

    <project>/project.json                      project config, agents, lane index, usage aggregate
    <project>/docs/*.md                         context documents
    <project>/cards/<card>.json                 cards (legacy: cards/{features,tasks,bugs,docs}/*.json)
    <project>/artifacts/<card>/<agent>_output.md
    <project>/logs/usage/usage_<YYYY-MM-DD>.json
    <project>/logs/terminal/<run>/session.json, entries.jsonl, terminal.log, logs.json

Every write goes to a temporary file that is then moved into place with
``os.replace``. All stores built from one ``ProjectFiles`` share its lock
registry, so ``project.json`` updates from the project store and the usage
store are serialized per project.
"""

import json
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..core.concurrency import KeyedLock
from ..core.errors import (
    AgentConfigNotFoundError,
    CardNotFoundError,
    PersistenceError,
    ProjectNotFoundError,
)
from ..core.logging_config import get_logger
from ..metering.aggregate import apply_event
from ..schemas.cards import Card
from ..schemas.projects import AgentConfig, Project
from ..schemas.sessions import LogEntry, RunSession, format_log_line
from ..schemas.usage import ProjectUsageAggregate, UsageEvent

logger = get_logger(__name__)

LEGACY_CARD_DIRS = ("features", "tasks", "bugs", "docs")
CONTEXT_DOCUMENTS = {
    "blueprint": "BLUEPRINT.md",
    "prd": "PRD.md",
    "mvp": "MVP.md",
    "strategy": "STRATEGY_ANALYSIS.md",
    "architecture": "ARCHITECTURE.md",
}

_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def is_safe_id(value: str) -> bool:
    return bool(value) and _SAFE_ID.match(value) is not None and ".." not in value


def read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"Corrupt JSON document: {path}", details={"error": str(exc)}) from exc
    except OSError as exc:
        raise PersistenceError(f"Cannot read {path}", details={"error": str(exc)}) from exc


def write_json_atomic(path: Path, data: Any) -> None:
    write_text_atomic(path, json.dumps(data, indent=2, default=str))


def write_text_atomic(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as exc:
        raise PersistenceError(f"Cannot write {path}", details={"error": str(exc)}) from exc


def append_text(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(text)
    except OSError as exc:
        raise PersistenceError(f"Cannot append to {path}", details={"error": str(exc)}) from exc


@dataclass
class ProjectFiles:
    """Path resolution and shared locks for one projects root."""

    root: Path
    locks: KeyedLock = field(default_factory=KeyedLock)

    def project_dir(self, project_id: str) -> Path:
        if not is_safe_id(project_id):
            raise PersistenceError(f"Invalid project id: {project_id!r}")
        return self.root / project_id

    def project_file(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "project.json"

    def cards_dir(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "cards"

    def card_file(self, project_id: str, card_id: str) -> Path:
        if not is_safe_id(card_id):
            raise PersistenceError(f"Invalid card id: {card_id!r}")
        return self.cards_dir(project_id) / f"{card_id}.json"

    def usage_dir(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "logs" / "usage"

    def terminal_dir(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "logs" / "terminal"

    def session_dir(self, project_id: str, run_id: str) -> Path:
        if not is_safe_id(run_id):
            raise PersistenceError(f"Invalid run id: {run_id!r}")
        return self.terminal_dir(project_id) / run_id


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class FileProjectStore:
    """``ProjectStore`` over ``<project>/project.json`` and ``<project>/docs``."""

    files: ProjectFiles

    def _read_raw(self, project_id: str) -> Dict[str, Any]:
        if not is_safe_id(project_id):
            raise ProjectNotFoundError(f"Project {project_id} not found")
        path = self.files.project_file(project_id)
        if not path.exists():
            raise ProjectNotFoundError(f"Project {project_id} not found", details={"path": str(path)})
        raw = read_json(path)
        raw.setdefault("id", project_id)
        return raw

    def _parse(self, raw: Dict[str, Any]) -> Project:
        try:
            return Project.model_validate(raw)
        except ValidationError as exc:
            raise PersistenceError(f"Invalid project document for {raw.get('id')}", details=exc.errors()) from exc

    async def get_project(self, project_id: str) -> Project:
        return self._parse(self._read_raw(project_id))

    async def save_project(self, project: Project) -> None:
        async with self.files.locks.hold(("project", project.id)):
            write_json_atomic(self.files.project_file(project.id), _dump(project))

    async def _mutate(self, project_id: str, change: Callable[[Project], None]) -> Project:
        async with self.files.locks.hold(("project", project_id)):
            project = self._parse(self._read_raw(project_id))
            change(project)
            write_json_atomic(self.files.project_file(project_id), _dump(project))
            return project

    async def get_agent_config(self, project_id: str, agent_name: str) -> AgentConfig:
        project = await self.get_project(project_id)
        config = project.agents.get(agent_name)
        if config is None:
            raise AgentConfigNotFoundError(
                f"Agent {agent_name} not configured for project {project_id}",
                details={"project_id": project_id, "agent": agent_name},
            )
        return config

    async def put_agent_config(self, project_id: str, agent_name: str, config: AgentConfig) -> None:
        await self._mutate(project_id, lambda project: project.agents.__setitem__(agent_name, config))

    async def update_lane_index(self, project_id: str, card_id: str, from_lane: int, to_lane: int) -> None:
        await self._mutate(project_id, lambda project: project.move_card_index(card_id, from_lane, to_lane))

    async def load_context_documents(self, project_id: str) -> Dict[str, str]:
        docs_dir = self.files.project_dir(project_id) / "docs"
        context: Dict[str, str] = {}
        for key, filename in CONTEXT_DOCUMENTS.items():
            path = docs_dir / filename
            if path.exists():
                context[key] = path.read_text(encoding="utf-8")
        return context


@dataclass(frozen=True)
class FileCardStore:
    """``CardStore`` over ``<project>/cards``.

    Cards found only in a legacy typed sub-directory are moved to the flat
    ``cards/<id>.json`` location the next time they are saved.
    """

    files: ProjectFiles

    def _legacy_path(self, project_id: str, card_id: str) -> Optional[Path]:
        cards_dir = self.files.cards_dir(project_id)
        for kind in LEGACY_CARD_DIRS:
            kind_dir = cards_dir / kind
            if not kind_dir.is_dir():
                continue
            for path in sorted(kind_dir.glob("*.json")):
                if path.stem == card_id or read_json(path).get("id") == card_id:
                    return path
        return None

    def _load(self, path: Path) -> Card:
        try:
            return Card.model_validate(read_json(path))
        except ValidationError as exc:
            raise PersistenceError(f"Invalid card document: {path}", details=exc.errors()) from exc

    async def get_card(self, project_id: str, card_id: str) -> Card:
        if not is_safe_id(card_id):
            raise CardNotFoundError(f"Card {card_id} not found in project {project_id}")
        path = self.files.card_file(project_id, card_id)
        if path.exists():
            return self._load(path)
        legacy = self._legacy_path(project_id, card_id)
        if legacy is None:
            raise CardNotFoundError(
                f"Card {card_id} not found in project {project_id}",
                details={"project_id": project_id, "card_id": card_id},
            )
        return self._load(legacy)

    async def save_card(self, project_id: str, card: Card) -> None:
        async with self.files.locks.hold(("card", project_id, card.id)):
            write_json_atomic(self.files.card_file(project_id, card.id), _dump(card))
            legacy = self._legacy_path(project_id, card.id)
            if legacy is not None:
                logger.info(f"Migrated legacy card {card.id} from {legacy}")
                legacy.unlink()

    async def list_cards(self, project_id: str) -> List[Card]:
        cards_dir = self.files.cards_dir(project_id)
        paths = sorted(cards_dir.glob("*.json"))
        for kind in LEGACY_CARD_DIRS:
            paths.extend(sorted((cards_dir / kind).glob("*.json")))
        seen: Dict[str, Card] = {}
        for path in paths:
            card = self._load(path)
            seen.setdefault(card.id, card)
        return list(seen.values())


@dataclass(frozen=True)
class FileArtifactStore:
    """``ArtifactStore`` writing ``<project>/artifacts/<card>/<agent>_output.md``."""

    files: ProjectFiles

    def _path(self, project_id: str, card_id: str, agent_name: str) -> Path:
        if not is_safe_id(card_id) or not is_safe_id(agent_name):
            raise PersistenceError(f"Invalid artifact key: {card_id!r}/{agent_name!r}")
        return self.files.project_dir(project_id) / "artifacts" / card_id / f"{agent_name}_output.md"

    async def write_artifact(self, project_id: str, card_id: str, agent_name: str, content: str) -> str:
        path = self._path(project_id, card_id, agent_name)
        write_text_atomic(path, content)
        return path.relative_to(self.files.project_dir(project_id)).as_posix()

    async def read_artifact(self, project_id: str, card_id: str, agent_name: str) -> Optional[str]:
        path = self._path(project_id, card_id, agent_name)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")


@dataclass(frozen=True)
class FileUsageStore:
    """``UsageStore`` over day-partitioned JSON arrays plus ``project.json``'s ``usage``.

    The event is appended first and the aggregate updated second, both under
    the project lock. If the aggregate write fails the event is still in the
    log and ``UsageMeter.reconcile`` restores the cache.
    """

    files: ProjectFiles

    def _day_file(self, project_id: str, day: str) -> Path:
        return self.files.usage_dir(project_id) / f"usage_{day}.json"

    async def record(self, event: UsageEvent) -> ProjectUsageAggregate:
        project_id = event.project_id
        async with self.files.locks.hold(("project", project_id)):
            day_file = self._day_file(project_id, event.day)
            events = read_json(day_file) if day_file.exists() else []
            events.append(_dump(event))
            write_json_atomic(day_file, events)

            project_file = self.files.project_file(project_id)
            if not project_file.exists():
                logger.debug(f"Usage event {event.id} logged for unknown project {project_id}; no aggregate to update")
                return apply_event(ProjectUsageAggregate(), event)
            raw = read_json(project_file)
            aggregate = apply_event(ProjectUsageAggregate.model_validate(raw.get("usage") or {}), event)
            raw["usage"] = _dump(aggregate)
            write_json_atomic(project_file, raw)
            return aggregate

    async def list_events(
        self, project_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[UsageEvent]:
        usage_dir = self.files.usage_dir(project_id)
        if not usage_dir.is_dir():
            return []
        first = start.isoformat() if start else None
        last = end.isoformat() if end else None
        events: List[UsageEvent] = []
        for path in sorted(usage_dir.glob("usage_*.json")):
            day = path.stem[len("usage_") :]
            if (first and day < first) or (last and day > last):
                continue
            events.extend(UsageEvent.model_validate(item) for item in read_json(path))
        return events

    async def get_aggregate(self, project_id: str) -> ProjectUsageAggregate:
        project_file = self.files.project_file(project_id)
        if not project_file.exists():
            raise ProjectNotFoundError(f"Project {project_id} not found")
        return ProjectUsageAggregate.model_validate(read_json(project_file).get("usage") or {})

    async def replace_aggregate(self, project_id: str, aggregate: ProjectUsageAggregate) -> None:
        async with self.files.locks.hold(("project", project_id)):
            project_file = self.files.project_file(project_id)
            if not project_file.exists():
                raise ProjectNotFoundError(f"Project {project_id} not found")
            raw = read_json(project_file)
            raw["usage"] = _dump(aggregate)
            write_json_atomic(project_file, raw)


@dataclass(frozen=True)
class FileSessionStore:
    """``SessionStore`` over ``<project>/logs/terminal/<run>/``.

    ``entries.jsonl`` and ``terminal.log`` grow one line per entry while the
    session runs; sealing writes the final ``session.json`` and the
    replay-ready ``logs.json`` array.
    """

    files: ProjectFiles

    def _write_meta(self, session: RunSession) -> None:
        meta = session.model_dump(mode="json", exclude={"entries"})
        meta["log_count"] = len(session.entries)
        write_json_atomic(self.files.session_dir(session.project_id, session.id) / "session.json", meta)

    async def create(self, session: RunSession) -> None:
        async with self.files.locks.hold(("session", session.id)):
            directory = self.files.session_dir(session.project_id, session.id)
            directory.mkdir(parents=True, exist_ok=True)
            self._write_meta(session)
            append_text(directory / "entries.jsonl", "")
            append_text(directory / "terminal.log", "")

    async def append(self, session: RunSession, entry: LogEntry) -> None:
        async with self.files.locks.hold(("session", session.id)):
            directory = self.files.session_dir(session.project_id, session.id)
            append_text(directory / "entries.jsonl", entry.model_dump_json() + "\n")
            append_text(directory / "terminal.log", format_log_line(entry) + "\n")

    async def seal(self, session: RunSession) -> None:
        async with self.files.locks.hold(("session", session.id)):
            directory = self.files.session_dir(session.project_id, session.id)
            self._write_meta(session)
            write_json_atomic(directory / "logs.json", [entry.model_dump(mode="json") for entry in session.entries])

    def _find_dir(self, run_id: str, project_id: Optional[str]) -> Optional[Path]:
        if not is_safe_id(run_id):
            return None
        if project_id is not None:
            directory = self.files.session_dir(project_id, run_id)
            return directory if (directory / "session.json").exists() else None
        if not self.files.root.is_dir():
            return None
        for project_dir in sorted(self.files.root.iterdir()):
            directory = project_dir / "logs" / "terminal" / run_id
            if (directory / "session.json").exists():
                return directory
        return None

    def _read(self, directory: Path) -> RunSession:
        meta = read_json(directory / "session.json")
        meta.pop("log_count", None)
        replay = directory / "logs.json"
        if replay.exists():
            entries = read_json(replay)
        else:
            lines = (directory / "entries.jsonl").read_text(encoding="utf-8").splitlines()
            entries = [json.loads(line) for line in lines if line.strip()]
        meta["entries"] = entries
        return RunSession.model_validate(meta)

    async def load(self, run_id: str, project_id: Optional[str] = None) -> Optional[RunSession]:
        directory = self._find_dir(run_id, project_id)
        if directory is None:
            return None
        return self._read(directory)

    async def list_for_card(self, project_id: str, card_id: str) -> List[RunSession]:
        terminal_dir = self.files.terminal_dir(project_id)
        if not terminal_dir.is_dir():
            return []
        sessions = [
            self._read(directory)
            for directory in terminal_dir.iterdir()
            if (directory / "session.json").exists()
        ]
        matching = [session for session in sessions if session.card_id == card_id]
        return sorted(matching, key=lambda session: session.start_time, reverse=True)


@dataclass(frozen=True)
class FileRepoBundle:
    """All file-backed stores sharing one ``ProjectFiles``."""

    files: ProjectFiles
    projects: FileProjectStore
    cards: FileCardStore
    artifacts: FileArtifactStore
    usage: FileUsageStore
    sessions: FileSessionStore


def build_file_repos(projects_root: Path) -> FileRepoBundle:
    """Build a ``FileRepoBundle`` rooted at ``projects_root``."""
    files = ProjectFiles(root=Path(projects_root))
    return FileRepoBundle(
        files=files,
        projects=FileProjectStore(files),
        cards=FileCardStore(files),
        artifacts=FileArtifactStore(files),
        usage=FileUsageStore(files),
        sessions=FileSessionStore(files),
    )
