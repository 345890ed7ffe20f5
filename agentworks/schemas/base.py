"""Pydantic base schema utilities for AgentWorks records."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseSchema(BaseModel):
    """
    Base Pydantic model for all domain schemas.

    Configures common Pydantic behaviors:
    - ``populate_by_name=True``: Allow initialization by alias or field name.
    - ``extra="forbid"``: Prevent unknown fields from slipping into the model, ensuring strict validation.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
    )


class OpenSchema(BaseSchema):
    """Schema for records shared with other writers (UI, legacy scripts).

    Unknown keys are kept so a read-modify-write cycle never drops data this
    package does not model.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
    )


def as_utc(value: datetime) -> datetime:
    """Return ``value`` in UTC, treating naive datetimes as already UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
