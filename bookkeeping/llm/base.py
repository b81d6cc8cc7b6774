"""Abstract base class for generative text providers.

Completion, transaction matching and booking all depend on this interface,
never on a vendor SDK, so providers can be swapped by configuration and
replaced by fakes in tests.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

import threading
from abc import ABC, abstractmethod

from tenacity import RetryCallState

from bookkeeping.shared.config import Settings


def stop_when_cancelled(retry_state: RetryCallState) -> bool:
    """Tenacity stop condition reading the ``cancel_event`` keyword of the retried call."""
    cancel_event = retry_state.kwargs.get("cancel_event")
    return cancel_event is not None and cancel_event.is_set()


class GenerativeClient(ABC):
    """Abstract base class for chat-style text generation.

    Example implementations:
    - OpenAIGenerativeClient: Uses OpenAI API (cloud-based)
    - OllamaGenerativeClient: Uses a self-hosted Ollama server
    """

    def __init__(self, settings: Settings, model: str | None = None) -> None:
        """Initialize client with settings.

        Args:
            settings: Application settings
            model: Model override; provider default from settings when None
        """
        self.settings = settings
        self._model_override = model

    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Generate a response for a system/user prompt pair.

        Args:
            system_prompt: Instructions for the model; may be empty
            user_prompt: Request content
            temperature: Sampling temperature
            max_tokens: Response token limit
            cancel_event: Once set, failed requests are not retried

        Returns:
            Raw response text (untrusted, usually JSON)

        Raises:
            GenerativeError: On transport failure or an empty response
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured and reachable.

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'openai', 'ollama')
        """
        pass

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier used for requests."""
        pass
