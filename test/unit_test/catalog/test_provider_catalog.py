import json
from pathlib import Path

import pytest

from agentworks.catalog import ProviderCatalog
from agentworks.core.errors import CatalogError, UnknownModelError, UnknownProviderError
from agentworks.schemas.providers import Provider


@pytest.fixture
def catalog() -> ProviderCatalog:
    return ProviderCatalog()


def test_builtin_providers(catalog: ProviderCatalog):
    ids = [provider.id for provider in catalog.list_providers()]
    assert ids == ["openai", "anthropic", "google", "nanobanana"]


def test_get_provider(catalog: ProviderCatalog):
    provider = catalog.get_provider("anthropic")
    assert provider.name == "Anthropic"
    assert provider.cost_per_1k.input == 0.003
    assert provider.enabled


def test_unknown_provider_raises(catalog: ProviderCatalog):
    with pytest.raises(UnknownProviderError) as exc_info:
        catalog.get_provider("mistral")
    assert exc_info.value.code == "UNKNOWN_PROVIDER"
    assert isinstance(exc_info.value, CatalogError)


def test_has_provider(catalog: ProviderCatalog):
    assert catalog.has_provider("google")
    assert not catalog.has_provider("Google")


def test_models_are_copies(catalog: ProviderCatalog):
    models = catalog.get_models_for("openai")
    models.clear()
    assert "gpt-4o" in catalog.get_models_for("openai")


def test_validate_model(catalog: ProviderCatalog):
    assert catalog.validate_model("google", "gemini-2.5-pro").id == "google"
    with pytest.raises(UnknownModelError):
        catalog.validate_model("google", "gpt-4o")
    with pytest.raises(UnknownProviderError):
        catalog.validate_model("nope", "gpt-4o")


def test_disabled_provider_is_listed(catalog: ProviderCatalog):
    assert catalog.get_provider("nanobanana").enabled is False


def test_duplicate_ids_rejected(catalog: ProviderCatalog):
    provider = catalog.get_provider("openai")
    with pytest.raises(ValueError):
        ProviderCatalog([provider, provider])


def test_provider_records_are_immutable(catalog: ProviderCatalog):
    with pytest.raises(Exception):
        catalog.get_provider("openai").enabled = False  # type: ignore[misc]


def test_from_file_accepts_camel_case(tmp_path: Path):
    path = tmp_path / "providers.json"
    path.write_text(
        json.dumps(
            {
                "providers": [
                    {
                        "id": "local",
                        "name": "Local",
                        "models": ["llama-3"],
                        "rateLimits": {"requestsPerMinute": 10, "tokensPerMinute": 1000},
                        "costPer1K": {"input": 0.0, "output": 0.0},
                        "timeoutSeconds": 5,
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    catalog = ProviderCatalog.from_file(path)
    provider = catalog.get_provider("local")
    assert isinstance(provider, Provider)
    assert provider.timeout_seconds == 5
    assert catalog.get_models_for("local") == ["llama-3"]
