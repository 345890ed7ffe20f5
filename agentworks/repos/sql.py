from __future__ import annotations

"""SQLAlchemy async usage store.

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev; production typically uses
  migrations).
- Create a session factory with ``create_sessionmaker``.
- Build the store with ``SqlUsageStore(session_factory=...)``.

Transaction model
-----------------

``record`` inserts the event row and updates the project's aggregate row in a
single transaction. The aggregate update is conditional on the ``version`` it
was read at; when another writer got there first the transaction is rolled
back and retried, up to ``max_attempts`` times.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..core.concurrency import KeyedLock
from ..core.errors import PersistenceError
from ..core.logging_config import get_logger
from ..metering.aggregate import apply_event
from ..schemas.usage import ProjectUsageAggregate, UsageEvent
from .models import Base, UsageAggregateRow, UsageEventRow

logger = get_logger(__name__)


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The helper normalizes Postgres URLs to ensure the async driver is used.
    For example, it rewrites ``postgresql://`` and other variants to
    ``postgresql+asyncpg://``.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    if url.startswith("postgresql+asyncpg://"):
        return create_async_engine(url, pool_pre_ping=True)
    return create_async_engine(url)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata.

    This is mainly intended for tests and local development.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _StaleAggregate(Exception):
    """The aggregate row changed between read and conditional update."""


@dataclass(frozen=True)
class SqlUsageStore:
    """SQL implementation of ``UsageStore``."""

    session_factory: async_sessionmaker[AsyncSession]
    max_attempts: int = 5
    locks: KeyedLock = field(default_factory=KeyedLock, compare=False)

    async def _event_exists(self, event_id: str) -> bool:
        async with self.session_factory() as s:
            result = await s.execute(select(UsageEventRow.seq).where(UsageEventRow.event_id == event_id))
            return result.first() is not None

    async def _record_once(self, event: UsageEvent) -> ProjectUsageAggregate:
        async with self.session_factory() as s:
            async with s.begin():
                s.add(
                    UsageEventRow(
                        event_id=event.id,
                        project_id=event.project_id,
                        day=event.day,
                        created_at=event.timestamp,
                        agent_name=event.agent_name,
                        provider=event.provider,
                        model=event.model,
                        success=event.success,
                        customer_price=event.cost.customer_price,
                        payload=event.model_dump(mode="json"),
                    )
                )
                row = await s.get(UsageAggregateRow, event.project_id)
                if row is None:
                    aggregate = apply_event(ProjectUsageAggregate(), event)
                    s.add(
                        UsageAggregateRow(
                            project_id=event.project_id,
                            version=1,
                            payload=aggregate.model_dump(mode="json"),
                            updated_at=_utc_now(),
                        )
                    )
                    return aggregate

                aggregate = apply_event(ProjectUsageAggregate.model_validate(row.payload), event)
                result = await s.execute(
                    update(UsageAggregateRow)
                    .where(UsageAggregateRow.project_id == event.project_id)
                    .where(UsageAggregateRow.version == row.version)
                    .values(
                        version=row.version + 1,
                        payload=aggregate.model_dump(mode="json"),
                        updated_at=_utc_now(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise _StaleAggregate()
                return aggregate

    async def record(self, event: UsageEvent) -> ProjectUsageAggregate:
        """
        Append the event and update the aggregate in one transaction.

        Raises:
            PersistenceError: On a duplicate event id, on any database error, or
                when the aggregate stays contended for ``max_attempts`` tries.
        """
        async with self.locks.hold(event.project_id):
            for attempt in range(1, self.max_attempts + 1):
                try:
                    return await self._record_once(event)
                except (_StaleAggregate, IntegrityError) as exc:
                    if isinstance(exc, IntegrityError) and await self._event_exists(event.id):
                        raise PersistenceError(f"Usage event {event.id} already recorded") from exc
                    logger.debug(f"Aggregate for {event.project_id} contended (attempt {attempt}); retrying")
                except SQLAlchemyError as exc:
                    raise PersistenceError(f"Failed to record usage event {event.id}", details={"error": str(exc)}) from exc
        raise PersistenceError(
            f"Usage aggregate for project {event.project_id} stayed contended after {self.max_attempts} attempts"
        )

    async def list_events(
        self, project_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[UsageEvent]:
        stmt = select(UsageEventRow).where(UsageEventRow.project_id == project_id)
        if start is not None:
            stmt = stmt.where(UsageEventRow.day >= start.isoformat())
        if end is not None:
            stmt = stmt.where(UsageEventRow.day <= end.isoformat())
        async with self.session_factory() as s:
            rows = (await s.execute(stmt.order_by(UsageEventRow.seq))).scalars().all()
        return [UsageEvent.model_validate(row.payload) for row in rows]

    async def get_aggregate(self, project_id: str) -> ProjectUsageAggregate:
        async with self.session_factory() as s:
            row = await s.get(UsageAggregateRow, project_id)
        if row is None:
            return ProjectUsageAggregate()
        return ProjectUsageAggregate.model_validate(row.payload)

    async def replace_aggregate(self, project_id: str, aggregate: ProjectUsageAggregate) -> None:
        async with self.locks.hold(project_id):
            async with self.session_factory() as s:
                async with s.begin():
                    row = await s.get(UsageAggregateRow, project_id)
                    payload = aggregate.model_dump(mode="json")
                    if row is None:
                        s.add(UsageAggregateRow(project_id=project_id, version=1, payload=payload, updated_at=_utc_now()))
                    else:
                        row.version += 1
                        row.payload = payload
                        row.updated_at = _utc_now()
