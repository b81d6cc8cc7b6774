"""Structured invoice extraction from documents.

OCR text is sent to the generative provider, which returns typed entities
(amounts, dates, parties) each with its own confidence. The result is a partial
Invoice plus the document-side AmountSource used in amount reconciliation.

Failures are returned as categorized ExtractionResult errors rather than
raised, so batch callers can record them and continue.
"""

import logging
import re
import threading
import time
from datetime import datetime, timezone
from typing import Any

import httpx
import openai
from pydantic import BaseModel

from bookkeeping.invoice.schema import AmountSource, Invoice
from bookkeeping.llm.base import GenerativeClient
from bookkeeping.llm.json_response import coerce_float, coerce_str, parse_json_object
from bookkeeping.ocr.service import TextExtractor, is_pdf
from bookkeeping.parsing.locale import ParseError, normalize_currency, parse_amount, parse_date
from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import (
    ConfigurationError,
    DocumentErrorKind,
    GenerativeError,
    ResponseParseError,
)

logger = logging.getLogger(__name__)

DOCUMENT_SOURCE = "document"
DEFAULT_ENTITY_CONFIDENCE = 0.5

# Response entity → Invoice field
ENTITY_FIELDS = {
    "invoice_id": "invoice_number",
    "supplier_name": "vendor",
    "receiver_name": "customer",
    "invoice_date": "issue_date",
    "due_date": "due_date",
    "net_amount": "net_amount",
    "total_tax_amount": "vat_amount",
    "total_amount": "gross_amount",
    "currency": "currency",
    "purchase_order": "reference",
    "description": "description",
}
AMOUNT_ENTITIES = ("net_amount", "total_tax_amount", "total_amount")
DATE_ENTITIES = ("invoice_date", "due_date")

# German and English invoice number labels, most specific first
INVOICE_NUMBER_PATTERNS = [
    re.compile(p, re.IGNORECASE | re.MULTILINE)
    for p in (
        r"(?:rechnung|belegnr|beleg)[\s\-:.]*(\d{8,}|\d{4,}-\d+|\d+\.\d+)",
        r"(?:rechnungsnr|rg\.?nr|rg\.?)[\s\-:.]*(\d{8,}|\d{4,}-\d+|\d+\.\d+)",
        r"(?:invoice|inv)[\s\-:.]*(?:no|nr|number)[\s\-:.]*(\d{8,}|\d{4,}-\d+|\d+\.\d+)",
        r"(?:^|\s)(?:nr|no|number)[\s\-:.]*(\d{6,})",
        r"(?:dokument|document)[\s\-:.]*(?:nr|no)[\s\-:.]*(\d{6,})",
        r"(?:^|\s)(\d{8,})(?:\s|$)",
        r"(\d{4,}-\d{4,}-\d+)",
        r"(\d{6,}\.\d+)",
    )
]


class ExtractionResult(BaseModel):
    """Result of extraction operation.

    Attributes:
        invoice: Partial invoice or None if extraction failed
        success: Whether operation succeeded
        error: Error message if operation failed
        error_kind: Failure category (drives retry decisions of callers)
        provider: Name of provider that performed extraction
        confidence: Confidence per populated invoice field
        amount_source: Amounts as read from the document
        ocr_text: Text the extraction was based on
    """

    invoice: Invoice | None = None
    success: bool
    error: str | None = None
    error_kind: DocumentErrorKind | None = None
    provider: str
    confidence: dict[str, float] = {}
    amount_source: AmountSource | None = None
    ocr_text: str = ""


def extract_invoice_number_from_text(text: str) -> str:
    """Recover an invoice number from raw text.

    Args:
        text: OCR text

    Returns:
        First plausible candidate (6-20 characters) or empty string
    """
    for pattern in INVOICE_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            candidate = match.group(1).strip()
            if 6 <= len(candidate) <= 20:
                return candidate
    return ""


def generate_invoice_id(invoice: Invoice, now: datetime | None = None) -> str:
    """Identifier from invoice number, else vendor prefix, else a generic prefix.

    Args:
        invoice: Invoice to identify
        now: Timestamp source (tests)

    Returns:
        Identifier string
    """
    if invoice.invoice_number:
        return invoice.invoice_number
    stamp = int((now or datetime.now(timezone.utc)).timestamp())
    prefix = re.sub(r"[^A-Z0-9]", "", invoice.vendor.upper())[:8]
    return f"{prefix}-{stamp}" if prefix else f"INV-{stamp}"


def categorize_error(error: Exception) -> DocumentErrorKind:
    """Map a provider failure to a document error category."""
    if isinstance(error, ConfigurationError):
        return DocumentErrorKind.INVALID_CREDENTIALS
    cause = error.__cause__ or error
    if isinstance(cause, openai.AuthenticationError | openai.PermissionDeniedError):
        return DocumentErrorKind.INVALID_CREDENTIALS
    if isinstance(cause, openai.RateLimitError):
        return DocumentErrorKind.QUOTA_EXCEEDED
    if isinstance(cause, openai.NotFoundError):
        return DocumentErrorKind.NOT_FOUND
    if isinstance(cause, openai.APITimeoutError | httpx.TimeoutException):
        return DocumentErrorKind.TIMEOUT
    if isinstance(cause, httpx.HTTPStatusError):
        status = cause.response.status_code
        if status == 429:
            return DocumentErrorKind.QUOTA_EXCEEDED
        if status == 404:
            return DocumentErrorKind.NOT_FOUND
    return DocumentErrorKind.PROCESSING_FAILED


class DocumentExtractionService:
    """Extracts a partial invoice with per-entity confidence from a document."""

    def __init__(
        self,
        settings: Settings,
        text_extractor: TextExtractor,
        client: GenerativeClient,
    ) -> None:
        """Initialize extraction service.

        Args:
            settings: Application settings
            text_extractor: OCR collaborator
            client: Generative provider
        """
        self.settings = settings
        self.text_extractor = text_extractor
        self.client = client

    def check_document(self, document: bytes) -> tuple[DocumentErrorKind, str] | None:
        """Check size and format before any external call.

        Returns:
            (kind, message) for an unacceptable document, None otherwise
        """
        if not document:
            return DocumentErrorKind.INVALID_DOCUMENT, "document is empty"
        if len(document) > self.settings.max_document_bytes:
            limit_mb = self.settings.max_document_bytes / (1024 * 1024)
            return DocumentErrorKind.TOO_LARGE, f"document exceeds {limit_mb:.0f} MB"
        if not is_pdf(document):
            return DocumentErrorKind.INVALID_DOCUMENT, "document is not a PDF (missing %PDF header)"
        return None

    def process_invoice(
        self, document: bytes, cancel_event: threading.Event | None = None
    ) -> ExtractionResult:
        """Extract invoice entities from a PDF.

        Args:
            document: PDF bytes
            cancel_event: Passed to the generative client to stop its retries

        Returns:
            ExtractionResult with a partial invoice or a categorized error
        """
        provider = self.client.provider_name

        rejected = self.check_document(document)
        if rejected is not None:
            kind, message = rejected
            return ExtractionResult(
                success=False, error=message, error_kind=kind, provider=provider
            )

        start = time.time()
        ocr = self.text_extractor.extract_text(document)
        if not ocr.success or not ocr.text.strip():
            return ExtractionResult(
                success=False,
                error=f"OCR failed: {ocr.error or 'no text recognized'}",
                error_kind=DocumentErrorKind.PROCESSING_FAILED,
                provider=provider,
            )

        try:
            raw = self.client.complete(
                "You are an invoice data extraction assistant for German bookkeeping.",
                self._build_extraction_prompt(ocr.text),
                0.0,
                self.settings.llm_max_tokens,
                cancel_event=cancel_event,
            )
            payload = parse_json_object(raw)
        except (GenerativeError, ConfigurationError, ResponseParseError) as e:
            kind = categorize_error(e)
            logger.error(f"Document extraction failed ({kind.value}): {e}")
            return ExtractionResult(
                success=False,
                error=f"Extraction failed: {e}",
                error_kind=kind,
                provider=provider,
                ocr_text=ocr.text,
            )

        invoice, confidence = self._map_entities(payload)
        if not invoice.invoice_number:
            fallback = extract_invoice_number_from_text(ocr.text)
            if fallback:
                invoice.invoice_number = fallback
                confidence["invoice_number"] = DEFAULT_ENTITY_CONFIDENCE
                logger.info(f"Invoice number recovered from text: {fallback}")
        invoice.id = generate_invoice_id(invoice)
        invoice.created_at = invoice.updated_at = datetime.now(timezone.utc)

        logger.info(
            f"Extracted invoice {invoice.invoice_number or '?'} "
            f"({len(confidence)} fields) in {time.time() - start:.1f}s"
        )
        return ExtractionResult(
            invoice=invoice,
            success=True,
            provider=provider,
            confidence=confidence,
            amount_source=self._amount_source(invoice, confidence),
            ocr_text=ocr.text,
        )

    def _map_entities(self, payload: dict[str, Any]) -> tuple[Invoice, dict[str, float]]:
        invoice = Invoice()
        confidence: dict[str, float] = {}

        for entity, field in ENTITY_FIELDS.items():
            raw = payload.get(entity)
            if isinstance(raw, dict):
                value = coerce_str(raw.get("value"))
                entity_confidence = coerce_float(raw.get("confidence"), DEFAULT_ENTITY_CONFIDENCE)
            else:
                value = coerce_str(raw)
                entity_confidence = DEFAULT_ENTITY_CONFIDENCE
            if not value or value.lower() == "null":
                continue

            try:
                if entity in AMOUNT_ENTITIES:
                    setattr(invoice, field, parse_amount(value))
                elif entity in DATE_ENTITIES:
                    setattr(invoice, field, parse_date(value))
                elif entity == "currency":
                    invoice.currency = normalize_currency(value, self.settings.home_currency)
                else:
                    setattr(invoice, field, value)
            except ParseError as e:
                logger.warning(f"Skipping entity {entity}: {e}")
                continue
            confidence[field] = max(0.0, min(1.0, entity_confidence))

        if not invoice.currency:
            invoice.currency = self.settings.home_currency
        return invoice, confidence

    def _amount_source(self, invoice: Invoice, confidence: dict[str, float]) -> AmountSource:
        scores = [
            confidence[f] for f in ("net_amount", "vat_amount", "gross_amount") if f in confidence
        ]
        return AmountSource(
            net_amount=invoice.net_amount,
            vat_amount=invoice.vat_amount,
            gross_amount=invoice.gross_amount,
            source=DOCUMENT_SOURCE,
            confidence=sum(scores) / len(scores) if scores else 0.0,
        )

    def _build_extraction_prompt(self, ocr_text: str) -> str:
        """Build prompt for entity extraction with one worked example.

        Args:
            ocr_text: Raw OCR text

        Returns:
            Formatted prompt string
        """
        entities = ", ".join(ENTITY_FIELDS)
        return f"""Extract invoice entities from the OCR text below and return ONLY valid JSON.

Every entity is an object {{"value": string, "confidence": number 0-1}} or null when absent.
Entities: {entities}

Example:
OCR Text: "Bürobedarf Schmidt GmbH Rechnung Nr. 2024-0815 Datum: 15.03.2024
Rechnung an: Muster AG Netto 100,00 EUR MwSt 19% 19,00 EUR Gesamt 119,00 EUR"

Output: {{"invoice_id": {{"value": "2024-0815", "confidence": 0.95}}, \
"supplier_name": {{"value": "Bürobedarf Schmidt GmbH", "confidence": 0.9}}, \
"receiver_name": {{"value": "Muster AG", "confidence": 0.85}}, \
"invoice_date": {{"value": "15.03.2024", "confidence": 0.95}}, "due_date": null, \
"net_amount": {{"value": "100,00", "confidence": 0.9}}, \
"total_tax_amount": {{"value": "19,00", "confidence": 0.9}}, \
"total_amount": {{"value": "119,00", "confidence": 0.95}}, \
"currency": {{"value": "EUR", "confidence": 0.99}}, "purchase_order": null, "description": null}}

Instructions:
- Copy amounts and dates exactly as printed (German formats are fine)
- "Netto" = net_amount, "MwSt"/"USt" = total_tax_amount, "Brutto"/"Gesamt" = total_amount
- Lower the confidence when the OCR text is garbled around a value

OCR Text:
{ocr_text}"""
