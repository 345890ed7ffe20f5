from .providers import DEFAULT_PROVIDERS, ProviderCatalog

__all__ = ["DEFAULT_PROVIDERS", "ProviderCatalog"]
