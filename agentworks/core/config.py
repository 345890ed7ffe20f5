"""
Configuration Settings.

Application configuration using Pydantic's BaseSettings. Values are bound from
environment variables and an optional ``.env`` file. Provider credentials are
grouped into per-provider models exposed as properties.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentworks.metering.pricing import PricingPolicy

# =====================================================================
# LLM Provider Configuration Models
# =====================================================================


class OpenAIConfig(BaseModel):
    """OpenAI API configuration."""

    api_key: Optional[str] = Field(
        default=None, alias="OPENAI_API_KEY", description="OpenAI API key for authentication"
    )

    model_config = {"populate_by_name": True}


class AnthropicConfig(BaseModel):
    """Anthropic API configuration."""

    api_key: Optional[str] = Field(
        default=None, alias="ANTHROPIC_API_KEY", description="Anthropic API key for authentication"
    )

    model_config = {"populate_by_name": True}


class GoogleConfig(BaseModel):
    """Google API configuration."""

    api_key: Optional[str] = Field(
        default=None, alias="GOOGLE_API_KEY", description="Google API key for authentication"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are bound from environment variables and the ``.env`` file.
    Field names may also be passed directly, which is how tests and the CLI's
    ``--projects-root`` option build settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Storage
    # =====================================================================
    projects_root: Path = Field(
        default=Path("projects"),
        description="Root directory holding one sub-directory per project",
        alias="AGENTWORKS_PROJECTS_ROOT",
    )
    database_url: Optional[str] = Field(
        default=None,
        description="Async SQL URL for the usage store; the file store is used when unset",
        alias="AGENTWORKS_DATABASE_URL",
    )
    provider_catalog_path: Optional[Path] = Field(
        default=None,
        description="JSON file overriding the built-in provider catalog",
        alias="AGENTWORKS_PROVIDER_CATALOG",
    )

    # =====================================================================
    # Logging
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="AGENTWORKS_LOG_LEVEL",
    )
    log_format: str = Field(
        default="simple",
        description="Log line format (simple, detailed, json)",
        alias="AGENTWORKS_LOG_FORMAT",
    )

    # =====================================================================
    # Pricing and routing
    # =====================================================================
    pricing_markup: float = Field(
        default=5.0,
        description="Multiplier applied to provider cost to obtain the customer price",
        alias="AGENTWORKS_PRICING_MARKUP",
    )
    pricing_increment: float = Field(
        default=0.25,
        description="Billing increment the customer price is rounded up to",
        alias="AGENTWORKS_PRICING_INCREMENT",
    )
    default_timeout_seconds: float = Field(
        default=60.0,
        description="Provider call timeout used when a provider does not define one",
        alias="AGENTWORKS_DEFAULT_TIMEOUT_SECONDS",
    )
    prefer_provider_usage: bool = Field(
        default=False,
        description="Bill provider-reported token counts instead of the 4 chars/token estimate",
        alias="AGENTWORKS_PREFER_PROVIDER_USAGE",
    )
    prompt_preview_chars: int = Field(
        default=100,
        description="Number of prompt characters kept in each usage event",
        alias="AGENTWORKS_PROMPT_PREVIEW_CHARS",
    )

    # =====================================================================
    # Provider credentials
    # =====================================================================
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    google_api_key: Optional[str] = Field(default=None, alias="GOOGLE_API_KEY")

    @field_validator("pricing_markup")
    @classmethod
    def _markup_at_least_one(cls, value: float) -> float:
        if value < 1:
            raise ValueError("pricing markup must be >= 1")
        return value

    @field_validator("pricing_increment")
    @classmethod
    def _increment_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("pricing increment must be > 0")
        return value

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def openai(self) -> OpenAIConfig:
        """Get OpenAI configuration from environment variables."""
        return OpenAIConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def anthropic(self) -> AnthropicConfig:
        """Get Anthropic configuration from environment variables."""
        return AnthropicConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def google(self) -> GoogleConfig:
        """Get Google configuration from environment variables."""
        return GoogleConfig.model_validate(self.model_dump(by_alias=True))

    def pricing(self) -> PricingPolicy:
        return PricingPolicy(markup=self.pricing_markup, increment=self.pricing_increment)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return settings loaded from the environment, created on first use."""
    return Settings()
