"""Unit tests for structured document extraction.

Tests cover:
- Document checks before any external call
- Entity mapping with per-entity confidence
- Invoice number recovery from text
- Error categorization
"""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from bookkeeping.extraction.service import (
    DocumentExtractionService,
    categorize_error,
    extract_invoice_number_from_text,
    generate_invoice_id,
)
from bookkeeping.invoice.schema import Invoice
from bookkeeping.ocr.service import OCRResult
from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import ConfigurationError, DocumentErrorKind, GenerativeError
from tests.fakes import FakeGenerativeClient, FakeTextExtractor

PDF = b"%PDF-1.7\n..."

ENTITIES = {
    "invoice_id": {"value": "2024-0815", "confidence": 0.95},
    "supplier_name": {"value": "Bürobedarf Schmidt GmbH", "confidence": 0.9},
    "receiver_name": None,
    "invoice_date": {"value": "15.03.2024", "confidence": "0.9"},
    "net_amount": {"value": "100,00", "confidence": 0.8},
    "total_tax_amount": {"value": "19,00", "confidence": 0.6},
    "total_amount": "119,00",
    "currency": {"value": "€", "confidence": 0.99},
}


def _service(
    settings: Settings, responses: list[object], extractor: FakeTextExtractor | None = None
) -> tuple[DocumentExtractionService, FakeTextExtractor, FakeGenerativeClient]:
    extractor = extractor or FakeTextExtractor()
    client = FakeGenerativeClient(settings, responses)
    return DocumentExtractionService(settings, extractor, client), extractor, client


def test_process_invoice_maps_entities(settings: Settings) -> None:
    """Test entities are mapped onto invoice fields with confidence."""
    service, _, _ = _service(settings, [ENTITIES])

    result = service.process_invoice(PDF)

    assert result.success is True
    assert result.provider == "fake"
    invoice = result.invoice
    assert invoice is not None
    assert invoice.invoice_number == "2024-0815"
    assert invoice.id == "2024-0815"
    assert invoice.vendor == "Bürobedarf Schmidt GmbH"
    assert invoice.customer == ""
    assert invoice.issue_date == date(2024, 3, 15)
    assert (invoice.net_amount, invoice.vat_amount, invoice.gross_amount) == (10000, 1900, 11900)
    assert invoice.currency == "EUR"
    assert result.confidence["invoice_number"] == 0.95
    assert result.confidence["issue_date"] == 0.9
    assert result.confidence["gross_amount"] == 0.5  # plain value, default confidence
    assert "customer" not in result.confidence


def test_amount_source_confidence_is_mean(settings: Settings) -> None:
    """Test the document amount source averages the amount confidences."""
    service, _, _ = _service(settings, [ENTITIES])

    result = service.process_invoice(PDF)

    source = result.amount_source
    assert source is not None
    assert source.source == "document"
    assert source.gross_amount == 11900
    assert source.confidence == pytest.approx((0.8 + 0.6 + 0.5) / 3)


def test_unparseable_entities_are_skipped(settings: Settings) -> None:
    """Test bad amounts and dates are dropped instead of failing."""
    service, _, _ = _service(
        settings,
        [{"total_amount": {"value": "n/a", "confidence": 0.9}, "invoice_date": "morgen"}],
    )

    result = service.process_invoice(PDF)

    assert result.success is True
    assert result.invoice.gross_amount == 0
    assert result.invoice.issue_date is None
    assert result.invoice.currency == "EUR"
    assert result.confidence == {}


def test_invoice_number_recovered_from_text(settings: Settings) -> None:
    """Test a missing invoice number is recovered from the OCR text."""
    extractor = FakeTextExtractor(
        OCRResult(text="Muster AG\nRechnungsnr: 20240815\nGesamt 119,00", success=True)
    )
    service, _, _ = _service(settings, [{"supplier_name": "Acme GmbH"}], extractor)

    result = service.process_invoice(PDF)

    assert result.invoice.invoice_number == "20240815"
    assert result.confidence["invoice_number"] == 0.5


@pytest.mark.parametrize(
    ("document", "kind"),
    [
        (b"", DocumentErrorKind.INVALID_DOCUMENT),
        (b"PK\x03\x04 not a pdf", DocumentErrorKind.INVALID_DOCUMENT),
    ],
)
def test_invalid_documents_rejected(
    settings: Settings, document: bytes, kind: DocumentErrorKind
) -> None:
    """Test invalid documents fail without external calls."""
    service, extractor, client = _service(settings, [])

    result = service.process_invoice(document)

    assert result.success is False
    assert result.error_kind == kind
    assert result.error_kind.retriable is False
    assert extractor.calls == 0
    assert client.calls == []


def test_oversized_document_rejected(settings: Settings) -> None:
    """Test documents above the size limit are rejected."""
    small = settings.model_copy(update={"max_document_bytes": 10})
    service, _, _ = _service(small, [])

    result = service.process_invoice(PDF)

    assert result.error_kind == DocumentErrorKind.TOO_LARGE


def test_ocr_failure(settings: Settings) -> None:
    """Test an OCR failure is a processing error."""
    extractor = FakeTextExtractor(OCRResult(text="", success=False, error="bad scan"))
    service, _, client = _service(settings, [], extractor)

    result = service.process_invoice(PDF)

    assert result.success is False
    assert result.error_kind == DocumentErrorKind.PROCESSING_FAILED
    assert "bad scan" in result.error
    assert client.calls == []


def test_provider_error_is_categorized(settings: Settings) -> None:
    """Test provider failures are returned with a category."""
    request = httpx.Request("POST", "http://localhost:11434/api/chat")
    cause = httpx.ReadTimeout("timed out", request=request)
    error = GenerativeError("ollama.complete", "timed out")
    error.__cause__ = cause
    service, _, _ = _service(settings, [error])

    result = service.process_invoice(PDF)

    assert result.success is False
    assert result.error_kind == DocumentErrorKind.TIMEOUT
    assert result.error_kind.retriable is True
    assert result.ocr_text == "Rechnung INV-12345"


def test_bad_json_is_processing_failure(settings: Settings) -> None:
    """Test an unparseable response fails extraction."""
    service, _, _ = _service(settings, ["Ich kann das nicht lesen."])

    result = service.process_invoice(PDF)

    assert result.success is False
    assert result.error_kind == DocumentErrorKind.PROCESSING_FAILED


def test_categorize_error() -> None:
    """Test provider exceptions map to error kinds."""
    response = httpx.Response(429, request=httpx.Request("GET", "https://api.openai.com"))
    rate_limit = openai.RateLimitError("slow down", response=response, body=None)
    wrapped = GenerativeError("openai.complete", "rate limited")
    wrapped.__cause__ = rate_limit

    assert categorize_error(wrapped) == DocumentErrorKind.QUOTA_EXCEEDED
    assert categorize_error(ConfigurationError("openai", "no key")) == (
        DocumentErrorKind.INVALID_CREDENTIALS
    )

    not_found = httpx.HTTPStatusError(
        "missing",
        request=httpx.Request("POST", "http://ollama"),
        response=httpx.Response(404, request=httpx.Request("POST", "http://ollama")),
    )
    assert categorize_error(not_found) == DocumentErrorKind.NOT_FOUND
    assert categorize_error(RuntimeError("boom")) == DocumentErrorKind.PROCESSING_FAILED


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Rechnung: 12345678", "12345678"),
        ("Invoice No: 2024-000123", "2024-000123"),
        ("Dokument Nr. 987654", "987654"),
        ("Betrag 12,00 EUR", ""),
    ],
)
def test_extract_invoice_number_from_text(text: str, expected: str) -> None:
    """Test invoice numbers are found by label patterns."""
    assert extract_invoice_number_from_text(text) == expected


def test_generate_invoice_id() -> None:
    """Test identifiers fall back to vendor prefix and then a generic prefix."""
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    stamp = int(now.timestamp())

    assert generate_invoice_id(Invoice(invoice_number="R-1"), now) == "R-1"
    assert generate_invoice_id(Invoice(vendor="Acme Büro GmbH & Co"), now) == f"ACMEBROG-{stamp}"
    assert generate_invoice_id(Invoice(), now) == f"INV-{stamp}"


def test_extraction_prompt_contains_text(settings: Settings) -> None:
    """Test the OCR text is sent to the provider."""
    client = MagicMock()
    client.provider_name = "mock"
    client.complete.return_value = "{}"
    service = DocumentExtractionService(settings, FakeTextExtractor(), client)

    service.process_invoice(PDF)

    user_prompt = client.complete.call_args.args[1]
    assert "Rechnung INV-12345" in user_prompt
    assert "supplier_name" in user_prompt
