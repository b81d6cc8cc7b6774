"""Fakes for the external collaborators."""

import json
import threading

from bookkeeping.llm.base import GenerativeClient
from bookkeeping.ocr.service import OCRResult
from bookkeeping.shared.config import Settings


class FakeTextExtractor:
    """Returns a fixed OCR result and counts calls."""

    def __init__(self, result: OCRResult | None = None) -> None:
        self.result = result or OCRResult(text="Rechnung INV-12345", success=True, confidence=0.9)
        self.calls = 0

    def extract_text(self, document: bytes) -> OCRResult:
        self.calls += 1
        return self.result


class FakeGenerativeClient(GenerativeClient):
    """Replays scripted responses; exceptions in the script are raised."""

    def __init__(self, settings: Settings, responses: list[object] | None = None) -> None:
        super().__init__(settings)
        self.responses = list(responses or [])
        self.calls: list[tuple[str, str]] = []
        self.cancel_events: list[threading.Event | None] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def model(self) -> str:
        return "fake-model"

    def is_available(self) -> bool:
        return True

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 1000,
        cancel_event: threading.Event | None = None,
    ) -> str:
        self.calls.append((system_prompt, user_prompt))
        self.cancel_events.append(cancel_event)
        if not self.responses:
            raise AssertionError("unexpected generative call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return str(response)
