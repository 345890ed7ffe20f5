"""Error types raised by AgentWorks services.

Purpose:
- Provide one typed exception per failure the router, automator, recorder and
  stores can surface.
- Carry a stable upper-snake ``code`` plus an HTTP-oriented ``status_code`` so
  the CLI, the HTTP API and router failure results all report the same thing.

Usage:
- Catch ``AgentWorksError`` for any domain failure and inspect ``code``,
  ``status_code`` or ``details``.
- Onboarding validation problems are never raised; they are returned as a
  ``ValidationResult``.
"""

from __future__ import annotations

from typing import Any, Optional


class AgentWorksError(Exception):
    """Base error for AgentWorks failures.

    Args:
        message: Human-readable error description.
        details: Optional structured context for diagnosis.
    """

    code: str = "AGENTWORKS_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ConfigNotFoundError(AgentWorksError):
    """A project or agent configuration could not be loaded."""

    code = "CONFIG_NOT_FOUND"
    status_code = 404


class ProjectNotFoundError(ConfigNotFoundError):
    code = "PROJECT_NOT_FOUND"


class AgentConfigNotFoundError(ConfigNotFoundError):
    code = "AGENT_CONFIG_NOT_FOUND"


class AgentInactiveError(AgentWorksError):
    code = "AGENT_INACTIVE"
    status_code = 409


class LaneNotAllowedError(AgentWorksError):
    """The agent is not configured to run in the requested lane."""

    code = "LANE_NOT_ALLOWED"
    status_code = 409


class CardNotFoundError(AgentWorksError):
    code = "CARD_NOT_FOUND"
    status_code = 404


class InvalidLaneError(AgentWorksError):
    code = "INVALID_LANE"
    status_code = 400


class InvalidStatusError(AgentWorksError):
    code = "INVALID_STATUS"
    status_code = 400


class CatalogError(AgentWorksError):
    """Provider catalog lookup failure."""

    code = "CATALOG_ERROR"
    status_code = 404


class UnknownProviderError(CatalogError):
    code = "UNKNOWN_PROVIDER"


class UnknownModelError(CatalogError):
    code = "UNKNOWN_MODEL"


class ProviderCallError(AgentWorksError):
    """The LLM call itself failed (network, auth, rate limit, disabled provider)."""

    code = "PROVIDER_ERROR"
    status_code = 502


class ProviderDisabledError(ProviderCallError):
    code = "PROVIDER_DISABLED"


class RequestCancelledError(ProviderCallError):
    code = "REQUEST_CANCELLED"
    status_code = 499


class RequestTimeoutError(AgentWorksError):
    """The provider call exceeded its deadline.

    Kept outside the ``ProviderCallError`` branch so callers can tell a slow
    provider apart from a failing one.
    """

    code = "TIMEOUT"
    status_code = 504


class PersistenceError(AgentWorksError):
    """A store read or write failed."""

    code = "PERSISTENCE_ERROR"
    status_code = 500


class SessionNotFoundError(AgentWorksError):
    code = "SESSION_NOT_FOUND"
    status_code = 404


class SessionClosedError(AgentWorksError):
    """A log entry was written to a session that has already been sealed."""

    code = "SESSION_CLOSED"
    status_code = 409
