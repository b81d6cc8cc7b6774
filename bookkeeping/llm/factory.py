"""Selects the generative client named by ``Settings.llm_provider``."""

import logging

from bookkeeping.llm.base import GenerativeClient
from bookkeeping.llm.ollama_client import OllamaGenerativeClient
from bookkeeping.llm.openai_client import OpenAIGenerativeClient
from bookkeeping.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Provider name to client class; tests register fakes here."""

    _providers: dict[str, type[GenerativeClient]] = {
        "openai": OpenAIGenerativeClient,
        "ollama": OllamaGenerativeClient,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[GenerativeClient]) -> None:
        cls._providers[name] = provider_class
        logger.info(f"Registered generative provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[GenerativeClient]:
        """Look up a client class.

        Raises:
            ValueError: For a name nobody registered
        """
        try:
            return cls._providers[name]
        except KeyError:
            available = ", ".join(cls._providers)
            raise ValueError(
                f"Unknown generative provider: '{name}'. Available providers: {available}"
            ) from None

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers)


def create_generative_client(settings: Settings, model: str | None = None) -> GenerativeClient:
    """Build the configured client, warning when it cannot be reached yet.

    Args:
        settings: Settings naming the provider
        model: Overrides the provider's default model (booking uses this)
    """
    client = ProviderRegistry.get_provider_class(settings.llm_provider)(settings, model)
    if not client.is_available():
        logger.warning(
            f"Generative provider '{settings.llm_provider}' is not fully available; "
            f"requests will fail until its API key or server is configured"
        )
    logger.info(f"Created generative client: {client.provider_name} ({client.model})")
    return client
