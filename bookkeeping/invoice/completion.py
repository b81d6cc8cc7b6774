"""Invoice completion: fills missing fields from a generative provider.

Flow per invoice:
1. Completeness check; complete invoices return untouched, no external calls
2. Text extraction from the document (fatal on error or empty text)
3. Generative request with bounded retry (transport error, malformed JSON
   and an invalid invoice type all consume an attempt)
4. Field-by-field merge of missing fields only
5. Post-validation and derivation of a single missing amount

Malformed provider data never raises out of the merge: a bad value leaves the
field unset and logs a warning.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from bookkeeping.invoice.amounts import synthesize_missing_amounts
from bookkeeping.invoice.prompts import build_system_prompt, build_user_prompt
from bookkeeping.invoice.schema import AmountSource, Invoice, InvoiceType
from bookkeeping.invoice.validation import (
    check_completeness,
    is_credit_note,
    validate_completed_invoice,
)
from bookkeeping.llm.base import GenerativeClient
from bookkeeping.llm.json_response import coerce_float, coerce_str, parse_json_object
from bookkeeping.ocr.service import TextExtractor
from bookkeeping.parsing.locale import ParseError, normalize_currency, parse_amount, parse_iso_date
from bookkeeping.shared import metrics
from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import (
    CompletionError,
    GenerativeError,
    ResponseParseError,
    raise_if_cancelled,
)

logger = logging.getLogger(__name__)

DEFAULT_TYPE_CONFIDENCE = 0.5

# Source-type confidences for values taken from the generative response
TEXT_FIELD_CONFIDENCE = {
    "vendor": 0.8,
    "customer": 0.8,
    "invoice_number": 0.9,
    "reference": 0.8,
    "description": 0.8,
}
DATE_CONFIDENCE = 0.8
AMOUNT_CONFIDENCE = 0.7
CURRENCY_CONFIDENCE = 0.9
SUMMARY_CONFIDENCE = 0.8

GENERATIVE_SOURCE = "completion"


class CompletionResponse(BaseModel):
    """Generative response decoded field by field from a loose JSON object.

    All values are kept as strings; conversion happens during merge.
    """

    raw_type: str = ""
    type_confidence: str = ""
    type_reasoning: str = ""
    vendor: str = ""
    customer: str = ""
    invoice_number: str = ""
    issue_date: str = ""
    due_date: str = ""
    net_amount: str = ""
    vat_amount: str = ""
    gross_amount: str = ""
    currency: str = ""
    reference: str = ""
    description: str = ""
    accounting_summary: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CompletionResponse":
        """Decode a JSON object, tolerating missing keys and wrong types."""
        values = {name: coerce_str(payload.get(name)) for name in cls.model_fields}
        values["raw_type"] = coerce_str(payload.get("type"))
        if not values["vat_amount"]:
            values["vat_amount"] = coerce_str(payload.get("tax_amount"))
        return cls(**values)

    @property
    def invoice_type(self) -> InvoiceType | None:
        return InvoiceType.parse(self.raw_type)

    @property
    def type_confidence_value(self) -> float:
        return coerce_float(self.type_confidence, DEFAULT_TYPE_CONFIDENCE)


class CompletionResult(BaseModel):
    """Outcome of a completion run.

    Attributes:
        invoice: Completed invoice (the input object when nothing was missing)
        confidence: Confidence per field populated by completion
        missing_fields: Fields the completeness check reported
        warnings: Data-quality notes (e.g. derived amounts)
        amount_source: Amounts stated by the generative response
        type_reasoning: Provider's explanation of the invoice type
    """

    invoice: Invoice
    confidence: dict[str, float] = {}
    missing_fields: list[str] = []
    warnings: list[str] = []
    amount_source: AmountSource | None = None
    type_reasoning: str = ""


class InvoiceCompletionService:
    """Completes partially extracted invoices.

    Depends only on the TextExtractor and GenerativeClient interfaces.
    """

    def __init__(
        self,
        settings: Settings,
        text_extractor: TextExtractor,
        client: GenerativeClient,
    ) -> None:
        """Initialize completion service.

        Args:
            settings: Application settings (policy, retries, organization context)
            text_extractor: OCR collaborator
            client: Generative provider
        """
        self.settings = settings
        self.text_extractor = text_extractor
        self.client = client

    def validate_invoice(self, invoice: Invoice) -> tuple[bool, list[str]]:
        """Check completeness under the configured policy.

        Returns:
            Tuple of (is_complete, missing field names)
        """
        return check_completeness(invoice, self.settings.require_all_fields)

    def complete_invoice(
        self,
        invoice: Invoice,
        document: bytes,
        cancel_event: threading.Event | None = None,
    ) -> Invoice:
        """Complete an invoice and return only the resulting record."""
        return self.complete_invoice_with_confidence(invoice, document, cancel_event).invoice

    def complete_invoice_with_confidence(
        self,
        invoice: Invoice,
        document: bytes,
        cancel_event: threading.Event | None = None,
    ) -> CompletionResult:
        """Fill missing invoice fields from the document.

        Args:
            invoice: Partially populated invoice (not mutated)
            document: Original document bytes
            cancel_event: Set by the caller to abort before the next external call

        Returns:
            CompletionResult with the completed invoice and per-field confidence

        Raises:
            CompletionError: Text extraction failed, retries exhausted or the
                merged invoice failed post-validation
            OperationCancelledError: The cancel event was set
        """
        op = "complete_invoice"

        is_complete, missing = self.validate_invoice(invoice)
        if is_complete:
            logger.info(f"Invoice {invoice.invoice_number or '?'} already complete")
            metrics.completion_requests_total.labels(status="complete").inc()
            return CompletionResult(invoice=invoice)

        logger.info(f"Completing invoice {invoice.invoice_number or '?'}, missing: {missing}")

        try:
            ocr_text = self._extract_text(op, document, cancel_event)
            response = self._request_completion(op, ocr_text, missing, invoice, cancel_event)
        except CompletionError:
            metrics.completion_requests_total.labels(status="failed").inc()
            raise

        completed = invoice.model_copy(deep=True)
        confidence = self._merge(completed, response, missing)

        problems = validate_completed_invoice(completed)
        if problems:
            metrics.completion_requests_total.labels(status="failed").inc()
            raise CompletionError(op, "; ".join(problems))

        if is_credit_note(completed):
            logger.info(
                f"Negative amounts on invoice {completed.invoice_number or '?'}, "
                f"treating as credit note"
            )

        warnings = synthesize_missing_amounts(completed)
        for warning in warnings:
            logger.info(warning)

        metrics.completion_requests_total.labels(status="completed").inc()
        return CompletionResult(
            invoice=completed,
            confidence=confidence,
            missing_fields=missing,
            warnings=warnings,
            amount_source=self._amount_source(response),
            type_reasoning=response.type_reasoning,
        )

    def _extract_text(
        self, op: str, document: bytes, cancel_event: threading.Event | None
    ) -> str:
        raise_if_cancelled(op, cancel_event)
        result = self.text_extractor.extract_text(document)
        if not result.success:
            raise CompletionError(op, f"text extraction failed: {result.error}")
        if not result.text.strip():
            raise CompletionError(op, "text extraction returned no text")

        if result.confidence < self.settings.ocr_confidence_min:
            logger.warning(
                f"OCR confidence {result.confidence:.2f} below minimum "
                f"{self.settings.ocr_confidence_min:.2f}"
            )
        return result.text

    def _request_completion(
        self,
        op: str,
        ocr_text: str,
        missing: list[str],
        invoice: Invoice,
        cancel_event: threading.Event | None,
    ) -> CompletionResponse:
        """Call the provider until it returns a response with a valid type.

        Each attempt is independent; nothing carries over between attempts.
        """
        aliases = self.settings.company_alias_list
        system_prompt = build_system_prompt(self.settings.company_name, aliases)
        user_prompt = build_user_prompt(
            ocr_text, missing, invoice, self.settings.company_name, aliases
        )

        max_retries = self.settings.completion_max_retries
        last_error: Exception | None = None
        for attempt in range(1, max_retries + 1):
            raise_if_cancelled(op, cancel_event)
            try:
                raw = self.client.complete(
                    system_prompt,
                    user_prompt,
                    self.settings.llm_temperature,
                    self.settings.llm_max_tokens,
                    cancel_event=cancel_event,
                )
            except GenerativeError as e:
                last_error = e
                metrics.completion_attempts_total.labels(outcome="transport_error").inc()
                logger.warning(f"Completion attempt {attempt}/{max_retries} failed: {e}")
                continue

            try:
                payload = parse_json_object(raw)
            except ResponseParseError as e:
                last_error = e
                metrics.completion_attempts_total.labels(outcome="parse_error").inc()
                logger.warning(f"Completion attempt {attempt}/{max_retries} returned bad JSON")
                continue

            response = CompletionResponse.from_payload(payload)
            if response.invoice_type is None:
                last_error = ValueError(f"invalid invoice type {response.raw_type!r}")
                metrics.completion_attempts_total.labels(outcome="invalid_type").inc()
                logger.warning(
                    f"Completion attempt {attempt}/{max_retries} returned "
                    f"invalid type {response.raw_type!r}"
                )
                continue

            metrics.completion_attempts_total.labels(outcome="success").inc()
            logger.info(
                f"Invoice type {response.invoice_type.value} "
                f"(confidence {response.type_confidence_value:.2f}) on attempt {attempt}"
            )
            return response

        raise CompletionError(op, f"all {max_retries} attempts failed, last error: {last_error}")

    def _merge(
        self, invoice: Invoice, response: CompletionResponse, missing: list[str]
    ) -> dict[str, float]:
        """Copy missing fields from the response into the invoice.

        Returns:
            Confidence per populated field
        """
        confidence: dict[str, float] = {}

        if "type" in missing and response.invoice_type is not None:
            invoice.type = response.invoice_type
            confidence["type"] = response.type_confidence_value

        for field, field_confidence in TEXT_FIELD_CONFIDENCE.items():
            value = getattr(response, field)
            if field not in missing or not value:
                continue
            setattr(invoice, field, value)
            confidence[field] = field_confidence

        for field in ("issue_date", "due_date"):
            value = getattr(response, field)
            if field not in missing or not value:
                continue
            try:
                setattr(invoice, field, parse_iso_date(value))
                confidence[field] = DATE_CONFIDENCE
            except ParseError as e:
                logger.warning(f"Ignoring {field} from completion: {e}")

        for field in ("net_amount", "vat_amount", "gross_amount"):
            value = getattr(response, field)
            if field not in missing or not value:
                continue
            try:
                setattr(invoice, field, parse_amount(value))
                confidence[field] = AMOUNT_CONFIDENCE
            except ParseError as e:
                logger.warning(f"Ignoring {field} from completion: {e}")

        if "currency" in missing and response.currency:
            invoice.currency = normalize_currency(response.currency, self.settings.home_currency)
            confidence["currency"] = CURRENCY_CONFIDENCE

        if response.accounting_summary:
            if not invoice.accounting_summary:
                confidence["accounting_summary"] = SUMMARY_CONFIDENCE
            invoice.accounting_summary = response.accounting_summary

        invoice.updated_at = datetime.now(timezone.utc)
        return confidence

    def _amount_source(self, response: CompletionResponse) -> AmountSource:
        """Amounts stated anywhere in the response, for reconciliation."""
        amounts: dict[str, int] = {}
        for field in ("net_amount", "vat_amount", "gross_amount"):
            value = getattr(response, field)
            if not value:
                continue
            try:
                amounts[field] = parse_amount(value)
            except ParseError:
                continue
        return AmountSource(source=GENERATIVE_SOURCE, confidence=AMOUNT_CONFIDENCE, **amounts)
