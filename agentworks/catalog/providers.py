from __future__ import annotations

"""Provider catalog.

The catalog maps a provider id to its immutable ``Provider`` record: supported
model ids, rate limits, per-1K-token costs and the enabled flag. Both the
router and the onboarding validator resolve provider/model pairs through the
same catalog instance, so an agent that validates is an agent the router can
resolve.
"""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Union

from ..core.errors import UnknownModelError, UnknownProviderError
from ..core.logging_config import get_logger
from ..schemas.providers import CostPer1K, Provider, RateLimits

logger = get_logger(__name__)


DEFAULT_PROVIDERS: tuple[Provider, ...] = (
    Provider(
        id="openai",
        name="OpenAI",
        models=[
            "gpt-5",
            "gpt-4o",
            "gpt-4o-mini",
            "gpt-4-turbo",
            "gpt-4",
            "gpt-3.5-turbo",
            "o3",
            "o3-mini",
            "o1",
            "o1-mini",
            "o1-preview",
        ],
        rate_limits=RateLimits(requests_per_minute=500, tokens_per_minute=90000),
        cost_per_1k=CostPer1K(input=0.01, output=0.03),
    ),
    Provider(
        id="anthropic",
        name="Anthropic",
        models=[
            "claude-opus-4-5-20251101",
            "claude-opus-4-20250514",
            "claude-sonnet-4-20250514",
            "claude-3-7-sonnet-20250219",
            "claude-3-5-sonnet-20241022",
            "claude-3-5-haiku-20241022",
            "claude-3-opus-20240229",
            "claude-3-sonnet-20240229",
            "claude-3-haiku-20240307",
            "claude-3-opus",
            "claude-3-haiku",
        ],
        rate_limits=RateLimits(requests_per_minute=1000, tokens_per_minute=100000),
        cost_per_1k=CostPer1K(input=0.003, output=0.015),
    ),
    Provider(
        id="google",
        name="Google",
        models=[
            "gemini-2.5-pro",
            "gemini-2.5-flash",
            "gemini-2.0-flash",
            "gemini-2.0-flash-lite",
            "gemini-1.5-pro",
            "gemini-1.5-flash",
            "gemini-1.5-flash-8b",
        ],
        rate_limits=RateLimits(requests_per_minute=300, tokens_per_minute=32000),
        cost_per_1k=CostPer1K(input=0.0007, output=0.0021),
    ),
    Provider(
        id="nanobanana",
        name="NanoBanana",
        models=["nb-video-1", "nb-image-1"],
        rate_limits=RateLimits(requests_per_minute=60, tokens_per_minute=10000),
        cost_per_1k=CostPer1K(input=0.01, output=0.05),
        enabled=False,
    ),
)


class ProviderCatalog:
    """
    Read-only lookup of LLM providers.

    Notes:
        - The catalog is built once and never mutated afterwards.
        - Lookups raise ``UnknownProviderError`` / ``UnknownModelError`` instead
          of ``KeyError`` so callers can surface a catalog mismatch directly.
        - Disabled providers stay listed; routing decides what to do with them.
    """

    def __init__(self, providers: Iterable[Provider] = DEFAULT_PROVIDERS) -> None:
        self._providers: Dict[str, Provider] = {}
        for provider in providers:
            if provider.id in self._providers:
                raise ValueError(f"Duplicate provider id in catalog: {provider.id}")
            self._providers[provider.id] = provider

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ProviderCatalog":
        """
        Build a catalog from a JSON file holding a list of provider objects.

        Args:
            path: JSON file path. Keys may be camelCase (``costPer1K``) or snake_case.

        Returns:
            A catalog holding exactly the providers in the file.
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            raw = raw.get("providers", [])
        catalog = cls(Provider.model_validate(item) for item in raw)
        logger.info(f"Loaded {len(catalog.list_providers())} providers from {path}")
        return catalog

    def get_provider(self, provider_id: str) -> Provider:
        """
        Return the provider registered under ``provider_id``.

        Raises:
            UnknownProviderError: If no provider has that id.
        """
        try:
            return self._providers[provider_id]
        except KeyError:
            raise UnknownProviderError(
                f"Unknown provider: {provider_id}",
                details={"provider": provider_id, "known": sorted(self._providers)},
            ) from None

    def has_provider(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def list_providers(self) -> List[Provider]:
        return list(self._providers.values())

    def get_models_for(self, provider_id: str) -> List[str]:
        return list(self.get_provider(provider_id).models)

    def validate_model(self, provider_id: str, model: str) -> Provider:
        """
        Check that ``model`` belongs to ``provider_id`` and return the provider.

        Raises:
            UnknownProviderError: If the provider is absent.
            UnknownModelError: If the model is not in the provider's model list.
        """
        provider = self.get_provider(provider_id)
        if model not in provider.models:
            raise UnknownModelError(
                f'Model "{model}" is not available for provider "{provider_id}"',
                details={"provider": provider_id, "model": model, "models": list(provider.models)},
            )
        return provider
