"""
Pydantic AI backed ``LLMClient``.

Maps catalog provider ids to Pydantic AI model strings and exports configured
API keys to the official provider environment variables Pydantic AI reads.
Token counts reported by the provider are returned alongside the text.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic_ai import Agent
from pydantic_ai.settings import ModelSettings

from ..core.concurrency import CancellationToken
from ..core.config import Settings
from ..core.errors import ProviderCallError, RequestCancelledError
from ..core.logging_config import get_logger
from .base import CompletionRequest, CompletionResponse

logger = get_logger(__name__)

# Catalog provider id -> Pydantic AI model-string prefix
PYDANTIC_AI_PREFIXES: Dict[str, str] = {
    "openai": "openai",
    "anthropic": "anthropic",
    "google": "google-gla",
}

# Catalog provider id -> official API key environment variable
PROVIDER_ENV_VARS: Dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
}


def export_provider_env_vars(settings: Settings) -> Dict[str, bool]:
    """
    Export API keys from settings to the official environment variables.

    Existing environment values are never overwritten.

    Returns:
        Mapping of environment variable name to whether it was exported.
    """
    keys = {
        "OPENAI_API_KEY": settings.openai.api_key,
        "ANTHROPIC_API_KEY": settings.anthropic.api_key,
        "GOOGLE_API_KEY": settings.google.api_key,
    }
    exported: Dict[str, bool] = {}
    for env_var, value in keys.items():
        exported[env_var] = bool(value) and env_var not in os.environ
        if exported[env_var]:
            os.environ[env_var] = value
            logger.debug(f"Exported {env_var} from settings")
    return exported


def model_string(provider: str, model: str) -> str:
    try:
        return f"{PYDANTIC_AI_PREFIXES[provider]}:{model}"
    except KeyError:
        raise ProviderCallError(f"No Pydantic AI backend for provider {provider}") from None


def _usage_counts(result: Any) -> tuple[Optional[int], Optional[int]]:
    usage = result.usage() if callable(getattr(result, "usage", None)) else getattr(result, "usage", None)
    if usage is None:
        return None, None
    input_tokens = getattr(usage, "input_tokens", None)
    if input_tokens is None:
        input_tokens = getattr(usage, "request_tokens", None)
    output_tokens = getattr(usage, "output_tokens", None)
    if output_tokens is None:
        output_tokens = getattr(usage, "response_tokens", None)
    return input_tokens, output_tokens


class PydanticAILLMClient:
    """``LLMClient`` that runs each completion through a Pydantic AI ``Agent``."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        if settings is not None:
            export_provider_env_vars(settings)

    def build_agent(self, request: CompletionRequest) -> Agent:
        model_settings: Dict[str, Any] = {}
        if request.temperature is not None:
            model_settings["temperature"] = request.temperature
        if request.max_tokens:
            model_settings["max_tokens"] = request.max_tokens

        kwargs: Dict[str, Any] = {}
        if request.system_prompt:
            kwargs["system_prompt"] = request.system_prompt
        if model_settings:
            kwargs["model_settings"] = ModelSettings(**model_settings)
        return Agent(model_string(request.provider, request.model), **kwargs)

    async def complete(
        self, request: CompletionRequest, *, cancel_token: Optional[CancellationToken] = None
    ) -> CompletionResponse:
        if cancel_token is not None and cancel_token.cancelled:
            raise RequestCancelledError(f"Request cancelled: {cancel_token.reason}")

        agent = self.build_agent(request)
        logger.debug(f"Invoking {request.provider}:{request.model} with prompt length {len(request.prompt)}")
        result = await agent.run(request.prompt)
        input_tokens, output_tokens = _usage_counts(result)
        return CompletionResponse(
            content=str(result.output),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
