"""End-to-end processing of one invoice document into a booking proposal.

Document extraction → completion → amount reconciliation → optional type
override → SKR03 booking. Completion failures degrade to the extracted
invoice with a warning; every data-quality finding is attached to the outcome
instead of failing the document.
"""

import logging
import threading

from pydantic import BaseModel

from bookkeeping.booking.schema import DATEVBooking
from bookkeeping.booking.skr03 import SKR03BookingService
from bookkeeping.extraction.service import DocumentExtractionService
from bookkeeping.invoice.amounts import AmountReconciler
from bookkeeping.invoice.completion import CompletionResult, InvoiceCompletionService
from bookkeeping.invoice.schema import AmountSource, Invoice, InvoiceType
from bookkeeping.shared import metrics
from bookkeeping.shared.errors import (
    CompletionError,
    DocumentError,
    DocumentErrorKind,
    raise_if_cancelled,
)

logger = logging.getLogger(__name__)


class BookingOutcome(BaseModel):
    """Result of processing one document.

    Attributes:
        invoice: Final invoice
        booking: Booking proposal, None when only extraction was requested
        confidence: Per-field confidence (extraction, overridden by completion)
        warnings: Data-quality findings for human review
        has_discrepancy: Amount sources disagreed or the amount identity failed
    """

    invoice: Invoice
    booking: DATEVBooking | None = None
    confidence: dict[str, float] = {}
    warnings: list[str] = []
    has_discrepancy: bool = False


class InvoiceBookingPipeline:
    """Drives a document through extraction, completion and booking."""

    def __init__(
        self,
        extractor: DocumentExtractionService,
        completion: InvoiceCompletionService,
        reconciler: AmountReconciler,
        booking: SKR03BookingService | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            extractor: Structured document extraction
            completion: Completion orchestrator
            reconciler: Amount arbitration between extraction and completion
            booking: Booking service; required for process_document
        """
        self.extractor = extractor
        self.completion = completion
        self.reconciler = reconciler
        self.booking = booking

    def extract_invoice(
        self, document: bytes, cancel_event: threading.Event | None = None
    ) -> BookingOutcome:
        """Extract and complete an invoice without booking it.

        Args:
            document: PDF bytes
            cancel_event: Set by the caller to abort before the next external call

        Returns:
            BookingOutcome without a booking

        Raises:
            DocumentError: If the document cannot be extracted at all
            OperationCancelledError: The cancel event was set
        """
        op = "extract_invoice"
        raise_if_cancelled(op, cancel_event)

        extraction = self.extractor.process_invoice(document, cancel_event)
        if not extraction.success or extraction.invoice is None:
            raise DocumentError(
                op,
                extraction.error or "extraction failed",
                extraction.error_kind or DocumentErrorKind.PROCESSING_FAILED,
            )

        invoice = extraction.invoice
        confidence = dict(extraction.confidence)
        warnings: list[str] = []

        completion: CompletionResult | None = None
        try:
            completion = self.completion.complete_invoice_with_confidence(
                invoice, document, cancel_event
            )
        except CompletionError as e:
            logger.warning(f"Invoice completion failed, using extraction result only: {e}")
            warnings.append(f"Completion failed: {e.message}")

        if completion is not None:
            invoice = completion.invoice
            confidence.update(completion.confidence)
            warnings.extend(completion.warnings)

        outcome = BookingOutcome(invoice=invoice, confidence=confidence, warnings=warnings)
        if completion is not None and completion.amount_source is not None:
            self._reconcile_amounts(outcome, extraction.amount_source, completion.amount_source)
        return outcome

    def process_document(
        self,
        document: bytes,
        type_override: InvoiceType | None = None,
        cancel_event: threading.Event | None = None,
    ) -> BookingOutcome:
        """Extract, complete and book an invoice document.

        Args:
            document: PDF bytes
            type_override: Invoice direction forced by the user
            cancel_event: Set by the caller to abort before the next external call

        Returns:
            BookingOutcome with a booking proposal

        Raises:
            DocumentError: If the document cannot be extracted at all
            BookingError: If no valid booking proposal could be generated
        """
        if self.booking is None:
            raise RuntimeError("InvoiceBookingPipeline has no booking service")

        outcome = self.extract_invoice(document, cancel_event)

        if type_override is not None and outcome.invoice.type != type_override:
            original = outcome.invoice.type.value if outcome.invoice.type else "unset"
            logger.info(f"Invoice type overridden by user: {original} -> {type_override.value}")
            outcome.invoice.type = type_override

        outcome.booking = self.booking.generate_booking(outcome.invoice, cancel_event)
        return outcome

    def _reconcile_amounts(
        self,
        outcome: BookingOutcome,
        document_amounts: AmountSource | None,
        completion_amounts: AmountSource,
    ) -> None:
        if document_amounts is None:
            return
        # Amounts the document lacked but the invoice already holds (filled or
        # derived during completion) count as document-side values
        known = {
            field: getattr(outcome.invoice, field)
            for field in ("net_amount", "vat_amount", "gross_amount")
            if getattr(document_amounts, field) == 0
        }
        source_a = document_amounts.model_copy(update=known)
        result = self.reconciler.reconcile(source_a, completion_amounts, outcome.invoice)

        outcome.invoice = result.invoice
        outcome.warnings.extend(result.warnings)
        outcome.has_discrepancy = result.has_discrepancy
        for warning in result.warnings:
            if "discrepancy" in warning:
                metrics.amount_discrepancies_total.labels(field=warning.split()[0].lower()).inc()
            logger.warning(f"Invoice {outcome.invoice.invoice_number or '?'}: {warning}")
