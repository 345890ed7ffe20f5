from __future__ import annotations

"""Repository interface contracts.

The services depend on these Protocols instead of concrete persistence
implementations, so the same router, meter, automator and recorder run against
JSON files, a relational database, or in-memory fakes in tests.

Contract guidelines
-------------------

- All methods are async.
- Read-modify-write operations are serialized per key (per project for
  ``project.json`` and the usage aggregate, per card for card documents).
- The usage event log and session entry lists are append-only.
- ``UsageStore.record`` appends the event and folds it into the aggregate as
  one unit: either both happen, or the aggregate can be rebuilt from the log.
"""

from datetime import date
from typing import Dict, List, Optional, Protocol

from ..schemas.cards import Card
from ..schemas.projects import AgentConfig, Project
from ..schemas.sessions import LogEntry, RunSession
from ..schemas.usage import ProjectUsageAggregate, UsageEvent


class ProjectStore(Protocol):
    """Project configuration, agent configs, lane index and context documents."""

    async def get_project(self, project_id: str) -> Project:
        """
        Load a project.

        Raises:
            ProjectNotFoundError: If the project does not exist.
        """
        ...

    async def save_project(self, project: Project) -> None: ...

    async def get_agent_config(self, project_id: str, agent_name: str) -> AgentConfig:
        """
        Load one agent's routing config.

        Raises:
            ProjectNotFoundError: If the project does not exist.
            AgentConfigNotFoundError: If the project has no such agent.
        """
        ...

    async def put_agent_config(self, project_id: str, agent_name: str, config: AgentConfig) -> None: ...

    async def update_lane_index(self, project_id: str, card_id: str, from_lane: int, to_lane: int) -> None:
        """Move a card between lane buckets of the project's lane index."""
        ...

    async def load_context_documents(self, project_id: str) -> Dict[str, str]:
        """
        Return available context documents keyed by kind.

        Keys are ``blueprint``, ``prd``, ``mvp``, ``strategy`` and ``architecture``;
        missing documents are simply absent.
        """
        ...


class CardStore(Protocol):
    """Card documents, addressed by ``(project_id, card_id)``."""

    async def get_card(self, project_id: str, card_id: str) -> Card:
        """
        Raises:
            CardNotFoundError: If the card does not exist.
        """
        ...

    async def save_card(self, project_id: str, card: Card) -> None: ...

    async def list_cards(self, project_id: str) -> List[Card]: ...


class ArtifactStore(Protocol):
    """Agent output blobs keyed by ``(project_id, card_id, agent_name)``."""

    async def write_artifact(self, project_id: str, card_id: str, agent_name: str, content: str) -> str:
        """
        Persist an artifact.

        Returns:
            A reference (relative path or URI) stored on the card.
        """
        ...

    async def read_artifact(self, project_id: str, card_id: str, agent_name: str) -> Optional[str]: ...


class UsageStore(Protocol):
    """Append-only usage event log plus the cached per-project aggregate."""

    async def record(self, event: UsageEvent) -> ProjectUsageAggregate:
        """
        Append ``event`` and fold it into the project's aggregate atomically.

        Returns:
            The aggregate after the event was applied.

        Raises:
            PersistenceError: If the write could not be completed.
        """
        ...

    async def list_events(
        self, project_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[UsageEvent]:
        """Return events for the inclusive UTC day range in recorded order."""
        ...

    async def get_aggregate(self, project_id: str) -> ProjectUsageAggregate: ...

    async def replace_aggregate(self, project_id: str, aggregate: ProjectUsageAggregate) -> None: ...


class SessionStore(Protocol):
    """Durable storage of run sessions and their log entries."""

    async def create(self, session: RunSession) -> None: ...

    async def append(self, session: RunSession, entry: LogEntry) -> None:
        """Durably append one entry to a running session."""
        ...

    async def seal(self, session: RunSession) -> None:
        """Write final session metadata and the replay-ready entry array."""
        ...

    async def load(self, run_id: str, project_id: Optional[str] = None) -> Optional[RunSession]:
        """Load a session with its entries, or ``None`` if unknown."""
        ...

    async def list_for_card(self, project_id: str, card_id: str) -> List[RunSession]: ...
