"""OpenAI-based generative client.

Uses the chat completions API. Transient API errors are retried with
exponential backoff; the caller still sees a GenerativeError once retries
are exhausted.

Requires OPENAI_API_KEY environment variable.
"""

import logging
import os
import threading
from typing import Any

from openai import APIConnectionError, APITimeoutError, InternalServerError, OpenAI, RateLimitError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
    wait_exponential_jitter,
)

from bookkeeping.llm.base import GenerativeClient, stop_when_cancelled
from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import ConfigurationError, GenerativeError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)


class OpenAIGenerativeClient(GenerativeClient):
    """OpenAI chat completion client."""

    def __init__(self, settings: Settings, model: str | None = None) -> None:
        """Initialize OpenAI client.

        Args:
            settings: Application settings
            model: Model override (e.g. the booking model)
        """
        super().__init__(settings, model)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    @property
    def model(self) -> str:
        return self._model_override or self.settings.openai_model

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return bool(os.getenv("OPENAI_API_KEY"))

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Generate a chat completion.

        Args:
            system_prompt: System message; omitted when empty
            user_prompt: User message
            temperature: Sampling temperature
            max_tokens: Response token limit
            cancel_event: Once set, transient errors are not retried

        Returns:
            Content of the first choice

        Raises:
            ConfigurationError: If OPENAI_API_KEY is not set
            GenerativeError: On API failure or when no choices are returned
        """
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "openai.complete", "OPENAI_API_KEY environment variable not set"
            )

        if self._client is None or self._client.api_key != api_key:
            self._client = OpenAI(api_key=api_key)

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        try:
            response = self._call_openai_with_retry(
                messages, temperature, max_tokens, cancel_event=cancel_event
            )
        except Exception as e:
            raise GenerativeError("openai.complete", f"request failed: {e}") from e

        if not response.choices:
            raise GenerativeError("openai.complete", "no response choices")

        content = response.choices[0].message.content or ""
        logger.debug(f"OpenAI response ({self.model}): {len(content)} chars")
        return content

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        wait=wait_exponential_jitter(initial=1, max=60),
        stop=stop_any(stop_after_attempt(3), stop_when_cancelled),
        reraise=True,
    )
    def _call_openai_with_retry(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        cancel_event: threading.Event | None = None,
    ) -> Any:
        """Call OpenAI API with retry logic for transient errors.

        Retries up to 3 times with increasing delays (1s, 2-4s, 4-8s, up to 60s max).
        Stops retrying as soon as ``cancel_event`` is set.

        Args:
            messages: Chat messages
            temperature: Sampling temperature
            max_tokens: Response token limit
            cancel_event: Read by the retry stop condition

        Returns:
            OpenAI API response
        """
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        return self._client.chat.completions.create(  # type: ignore[call-overload]
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
