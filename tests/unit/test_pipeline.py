"""Unit tests for the end-to-end booking pipeline.

Extraction, completion and booking share one scripted generative client, so
each test lists the provider responses in call order.
"""

import threading

import pytest

from bookkeeping.booking.pipeline import InvoiceBookingPipeline
from bookkeeping.booking.skr03 import SKR03BookingService
from bookkeeping.extraction.service import DocumentExtractionService
from bookkeeping.invoice.amounts import AmountReconciler
from bookkeeping.invoice.completion import InvoiceCompletionService
from bookkeeping.invoice.schema import InvoiceType
from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import (
    BookingError,
    DocumentError,
    DocumentErrorKind,
    GenerativeError,
    OperationCancelledError,
)
from tests.fakes import FakeGenerativeClient, FakeTextExtractor

PDF = b"%PDF-1.7\n..."

# Everything but the invoice type
ENTITIES = {
    "invoice_id": {"value": "2024-0815", "confidence": 0.95},
    "supplier_name": {"value": "Bürobedarf Schmidt GmbH", "confidence": 0.9},
    "invoice_date": {"value": "15.03.2024", "confidence": 0.9},
    "net_amount": {"value": "100,00", "confidence": 0.9},
    "total_tax_amount": {"value": "19,00", "confidence": 0.9},
    "total_amount": {"value": "119,00", "confidence": 0.9},
    "currency": {"value": "EUR", "confidence": 0.99},
}

COMPLETION = {
    "type": "PAYABLE",
    "type_confidence": 0.95,
    "gross_amount": "119,00",
    "accounting_summary": "Druckerpapier, Kontierung: Bürobedarf",
}

BOOKING = {
    "sollkonto": "4930",
    "habenkonto": "1600",
    "steuerschluessel": "9",
    "buchungstext": "Bürobedarf Schmidt Papier",
}


def _pipeline(
    settings: Settings, responses: list[object], with_booking: bool = True
) -> tuple[InvoiceBookingPipeline, FakeGenerativeClient]:
    client = FakeGenerativeClient(settings, responses)
    pipeline = InvoiceBookingPipeline(
        extractor=DocumentExtractionService(settings, FakeTextExtractor(), client),
        completion=InvoiceCompletionService(settings, FakeTextExtractor(), client),
        reconciler=AmountReconciler(
            settings.amount_discrepancy_pct, settings.amount_tolerance_cents
        ),
        booking=SKR03BookingService(settings, client) if with_booking else None,
    )
    return pipeline, client


def test_process_document(settings: Settings) -> None:
    """Test a document is extracted, completed and booked."""
    pipeline, client = _pipeline(settings, [ENTITIES, COMPLETION, BOOKING])

    outcome = pipeline.process_document(PDF)

    assert len(client.calls) == 3
    assert outcome.invoice.type == InvoiceType.PAYABLE
    assert outcome.invoice.gross_amount == 11900
    assert outcome.invoice.accounting_summary == "Druckerpapier, Kontierung: Bürobedarf"
    assert outcome.booking is not None
    assert outcome.booking.debit_account == "4930"
    assert outcome.confidence["invoice_number"] == 0.95
    assert outcome.confidence["type"] == 0.95
    assert outcome.has_discrepancy is False
    assert outcome.warnings == []


def test_amount_discrepancy_is_flagged(settings: Settings) -> None:
    """Test disagreeing amount sources are reported, the more confident one winning."""
    completion = {**COMPLETION, "gross_amount": "130,00"}
    pipeline, _ = _pipeline(settings, [ENTITIES, completion], with_booking=False)

    outcome = pipeline.extract_invoice(PDF)

    assert outcome.has_discrepancy is True
    assert outcome.invoice.gross_amount == 11900
    assert any(w.startswith("Gross amount discrepancy") for w in outcome.warnings)
    assert outcome.booking is None


def test_completion_failure_degrades(settings: Settings) -> None:
    """Test a failed completion keeps the extracted invoice with a warning."""
    failure = GenerativeError("complete", "connection reset")
    pipeline, _ = _pipeline(settings, [ENTITIES, failure, failure, failure], with_booking=False)

    outcome = pipeline.extract_invoice(PDF)

    assert outcome.invoice.invoice_number == "2024-0815"
    assert outcome.invoice.type is None
    assert len(outcome.warnings) == 1
    assert outcome.warnings[0].startswith("Completion failed: all 3 attempts failed")
    assert outcome.has_discrepancy is False


def test_extraction_failure_raises(settings: Settings) -> None:
    """Test an unreadable document fails with its category."""
    pipeline, client = _pipeline(settings, [])

    with pytest.raises(DocumentError) as exc_info:
        pipeline.process_document(b"not a pdf")

    assert exc_info.value.kind == DocumentErrorKind.INVALID_DOCUMENT
    assert client.calls == []


def test_type_override(settings: Settings) -> None:
    """Test a user-supplied type replaces the completed one before booking."""
    completion = {**COMPLETION, "type": "RECEIVABLE"}
    pipeline, client = _pipeline(settings, [ENTITIES, completion, BOOKING])

    outcome = pipeline.process_document(PDF, InvoiceType.PAYABLE)

    assert outcome.invoice.type == InvoiceType.PAYABLE
    assert "EINGANGSRECHNUNG" in client.calls[2][1]


def test_booking_failure_propagates(settings: Settings) -> None:
    """Test an invalid booking proposal fails the document."""
    pipeline, _ = _pipeline(settings, [ENTITIES, COMPLETION, {**BOOKING, "sollkonto": "49"}])

    with pytest.raises(BookingError, match="invalid account format"):
        pipeline.process_document(PDF)


def test_process_document_requires_booking_service(settings: Settings) -> None:
    """Test booking is refused when the pipeline was built for extraction only."""
    pipeline, _ = _pipeline(settings, [], with_booking=False)

    with pytest.raises(RuntimeError):
        pipeline.process_document(PDF)


def test_cancelled_pipeline(settings: Settings) -> None:
    """Test a set cancel event stops before extraction."""
    pipeline, client = _pipeline(settings, [])
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelledError):
        pipeline.process_document(PDF, cancel_event=cancel)

    assert client.calls == []
