"""Ollama-based generative client for self-hosted LLM inference.

Keeps invoice data on-premises. Requires an Ollama server, by default on
localhost:11434. See: https://ollama.ai/
"""

import logging
import threading

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
    wait_exponential_jitter,
)

from bookkeeping.llm.base import GenerativeClient, stop_when_cancelled
from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import GenerativeError

logger = logging.getLogger(__name__)


class OllamaGenerativeClient(GenerativeClient):
    """Ollama chat client.

    Supports models like Qwen2.5, Llama3, Mistral.
    """

    def __init__(
        self,
        settings: Settings,
        model: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize Ollama client.

        Args:
            settings: Application settings
            model: Model override
            http_client: Preconfigured HTTP client (tests)
        """
        super().__init__(settings, model)
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = http_client or httpx.Client(timeout=120.0)  # LLMs can be slow

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'ollama'
        """
        return "ollama"

    @property
    def model(self) -> str:
        return self._model_override or self.settings.ollama_model

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self.model.split(":")[0] in model_names
        except httpx.HTTPError:
            return False

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Generate a chat response from the Ollama server.

        Raises:
            GenerativeError: On HTTP failure or an empty message
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        try:
            payload = self._call_ollama_with_retry(
                messages, temperature, max_tokens, cancel_event=cancel_event
            )
        except (httpx.HTTPError, ValueError) as e:
            raise GenerativeError("ollama.complete", f"request failed: {e}") from e

        content = (payload.get("message") or {}).get("content", "")
        if not content:
            raise GenerativeError("ollama.complete", "empty response message")
        return str(content)

    @retry(
        retry=retry_if_exception_type((httpx.HTTPError, httpx.TimeoutException)),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_any(stop_after_attempt(3), stop_when_cancelled),
        reraise=True,
    )
    def _call_ollama_with_retry(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        cancel_event: threading.Event | None = None,
    ) -> dict:
        """Call Ollama chat API with retry logic for transient errors.

        Returns:
            Decoded JSON body

        Raises:
            httpx.HTTPError: After all retry attempts exhausted
        """
        response = self._client.post(
            f"{self._base_url}/api/chat",
            json={
                "model": self.model,
                "messages": messages,
                "stream": False,
                "format": "json",
                "options": {
                    "temperature": temperature,
                    "num_predict": max_tokens,
                },
            },
        )
        response.raise_for_status()
        body: dict = response.json()
        return body
