from __future__ import annotations

"""SQLAlchemy ORM models for usage persistence.

These ORM models define the SQL schema used by ``agentworks.repos.sql``.

Design
------

- ``aw_usage_events`` is the append-only event log. ``seq`` preserves insertion
  order; ``event_id`` is the event's UUID. The full event is kept in
  ``payload`` and the columns used for filtering are denormalized.
- ``aw_usage_aggregates`` holds one cached aggregate per project with a
  ``version`` column for optimistic concurrency.

Table names are prefixed with ``aw_`` to avoid collisions in shared databases.
JSON columns use JSONB on Postgres and plain JSON elsewhere.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class UsageEventRow(Base):
    """Row model for ``aw_usage_events``."""

    __tablename__ = "aw_usage_events"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(64), unique=True)
    project_id: Mapped[str] = mapped_column(String(128), index=True)
    day: Mapped[str] = mapped_column(String(10), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    agent_name: Mapped[str] = mapped_column(String(128))
    provider: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean)
    customer_price: Mapped[float] = mapped_column(Float, default=0.0)

    payload: Mapped[Dict[str, Any]] = mapped_column(JsonDocument)


class UsageAggregateRow(Base):
    """Row model for ``aw_usage_aggregates``."""

    __tablename__ = "aw_usage_aggregates"

    project_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, default=0)
    payload: Mapped[Dict[str, Any]] = mapped_column(JsonDocument)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
