"""Wiring of services from settings for the CLI and API entry points."""

import logging

from bookkeeping.booking.pipeline import InvoiceBookingPipeline
from bookkeeping.booking.skr03 import SKR03BookingService, ensure_supported_chart
from bookkeeping.extraction.service import DocumentExtractionService
from bookkeeping.invoice.amounts import AmountReconciler
from bookkeeping.invoice.completion import InvoiceCompletionService
from bookkeeping.llm.factory import create_generative_client
from bookkeeping.ocr.service import TesseractOCRService
from bookkeeping.shared.config import Settings

logger = logging.getLogger(__name__)


def create_booking_pipeline(
    settings: Settings, with_booking: bool = True
) -> InvoiceBookingPipeline:
    """Build the extraction/completion/booking pipeline.

    Args:
        settings: Application settings
        with_booking: Also create the SKR03 booking service

    Returns:
        Configured pipeline

    Raises:
        ConfigurationError: If the chart of accounts is unsupported
    """
    ensure_supported_chart(settings.chart_of_accounts)

    ocr = TesseractOCRService(settings)
    client = create_generative_client(settings)
    booking = None
    if with_booking:
        booking_model = settings.booking_model if settings.llm_provider == "openai" else None
        booking = SKR03BookingService(settings, create_generative_client(settings, booking_model))

    pipeline = InvoiceBookingPipeline(
        extractor=DocumentExtractionService(settings, ocr, client),
        completion=InvoiceCompletionService(settings, ocr, client),
        reconciler=AmountReconciler(
            settings.amount_discrepancy_pct, settings.amount_tolerance_cents
        ),
        booking=booking,
    )
    logger.info(f"Booking pipeline ready (provider {client.provider_name})")
    return pipeline
