from typing import Any, Type

from .base import BaseEmbedder

_EMBEDDER_REGISTRY: dict[str, Type[BaseEmbedder]] = {}


def register_embedder(provider: str, cls: Type[BaseEmbedder]) -> None:
    """Register an embedder provider.

    Args:
        provider: Provider name (e.g., "azure", "ollama")
        cls: Embedder class to register
    """
    _EMBEDDER_REGISTRY[provider] = cls


def create_embedder(provider: str, **kwargs: Any) -> BaseEmbedder:
    """Create an embedder instance based on provider.

    Args:
        provider: Provider name
        **kwargs: Additional provider-specific parameters

    Returns:
        BaseEmbedder instance

    Raises:
        ValueError: If provider is not registered
    """
    if provider not in _EMBEDDER_REGISTRY:
        available = list(_EMBEDDER_REGISTRY.keys())
        raise ValueError(
            f"Unknown embedder provider: {provider}. Available: {available}"
        )
    return _EMBEDDER_REGISTRY[provider](**kwargs)


def create_embedder_from_config(config: dict[str, Any]) -> BaseEmbedder:
    """Create the embedder described by the ``[embedding]`` config section."""
    section = dict(config.get("embedding", {}))
    provider = section.pop("provider", "azure")
    return create_embedder(provider, **section)


def describe_embedder_from_config(config: dict[str, Any]) -> tuple[str, int]:
    """Model id and dimension of the configured embedder, without creating it."""
    section = dict(config.get("embedding", {}))
    provider = section.pop("provider", "azure")
    if provider not in _EMBEDDER_REGISTRY:
        available = list(_EMBEDDER_REGISTRY.keys())
        raise ValueError(
            f"Unknown embedder provider: {provider}. Available: {available}"
        )
    return _EMBEDDER_REGISTRY[provider].describe(**section)


def list_embedder_providers() -> list[str]:
    """List all registered embedder providers."""
    return list(_EMBEDDER_REGISTRY.keys())


from .embedding import AzureOpenAIEmbedder, OllamaEmbedder, OpenAIEmbedder

register_embedder("azure", AzureOpenAIEmbedder)
register_embedder("openai", OpenAIEmbedder)
register_embedder("ollama", OllamaEmbedder)

__all__ = [
    "BaseEmbedder",
    "AzureOpenAIEmbedder",
    "OpenAIEmbedder",
    "OllamaEmbedder",
    "register_embedder",
    "create_embedder",
    "create_embedder_from_config",
    "describe_embedder_from_config",
    "list_embedder_providers",
]
