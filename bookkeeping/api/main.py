"""FastAPI application for invoice extraction and booking proposals.

Endpoints:
- Health and readiness checks
- Invoice extraction with completion (PDF upload)
- DATEV booking proposals (PDF upload)
- Prometheus metrics

FastAPI documentation:
https://fastapi.tiangolo.com/
"""

import logging
import time

from fastapi import FastAPI, File, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from bookkeeping.booking.factory import create_booking_pipeline
from bookkeeping.booking.pipeline import BookingOutcome
from bookkeeping.invoice.schema import InvoiceType
from bookkeeping.shared import metrics
from bookkeeping.shared.config import get_settings
from bookkeeping.shared.errors import (
    BookingError,
    ConfigurationError,
    DocumentError,
    DocumentErrorKind,
)

logger = logging.getLogger(__name__)

settings = get_settings()
app = FastAPI(
    title="Bookkeeping Automation",
    description="Invoice extraction, DATEV booking proposals and bank reconciliation",
    version=settings.service_version,
)

pipeline = create_booking_pipeline(settings)

# HTTP status per document failure category
DOCUMENT_ERROR_STATUS = {
    DocumentErrorKind.INVALID_DOCUMENT: status.HTTP_400_BAD_REQUEST,
    DocumentErrorKind.TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    DocumentErrorKind.INVALID_CREDENTIALS: status.HTTP_500_INTERNAL_SERVER_ERROR,
    DocumentErrorKind.QUOTA_EXCEEDED: status.HTTP_503_SERVICE_UNAVAILABLE,
    DocumentErrorKind.TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
    DocumentErrorKind.NOT_FOUND: status.HTTP_502_BAD_GATEWAY,
    DocumentErrorKind.PROCESSING_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    provider: str


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check: the generative provider is configured.

    Returns:
        Readiness status
    """
    client = pipeline.completion.client
    return ReadinessResponse(ready=client.is_available(), provider=client.provider_name)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


async def _read_pdf(file: UploadFile) -> bytes:
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided")

    if file.content_type != "application/pdf" and not file.filename.lower().endswith(".pdf"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file type: {file.content_type}. Only PDF documents are supported.",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

    metrics.document_upload_size_bytes.observe(len(content))
    return content


def _http_error(error: Exception) -> HTTPException:
    if isinstance(error, DocumentError):
        code = DOCUMENT_ERROR_STATUS.get(error.kind, status.HTTP_422_UNPROCESSABLE_ENTITY)
        return HTTPException(
            status_code=code, detail={"error": error.message, "kind": error.kind.value}
        )
    if isinstance(error, BookingError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


@app.post("/api/v1/invoices/extract", response_model=BookingOutcome, tags=["Invoices"])
async def extract_invoice(
    file: UploadFile = File(..., description="Invoice PDF"),  # noqa: B008
) -> BookingOutcome:
    """Extract invoice fields and complete missing ones.

    ```bash
    curl -X POST "http://localhost:8000/api/v1/invoices/extract" \\
      -F "file=@rechnung.pdf"
    ```

    Returns 200 with warnings when completion fails but extraction succeeded.

    Raises:
        HTTPException: 400 for invalid uploads, 413 for oversized documents,
            503 for retriable provider failures
    """
    content = await _read_pdf(file)
    try:
        return await run_in_threadpool(pipeline.extract_invoice, content)
    except (DocumentError, ConfigurationError) as e:
        logger.warning(f"Extraction failed for {file.filename}: {e}")
        raise _http_error(e) from e


@app.post("/api/v1/invoices/book", response_model=BookingOutcome, tags=["Invoices"])
async def book_invoice(
    file: UploadFile = File(..., description="Invoice PDF"),  # noqa: B008
    invoice_type: InvoiceType | None = Query(
        None, alias="type", description="Force PAYABLE or RECEIVABLE"
    ),
) -> BookingOutcome:
    """Extract an invoice and propose a DATEV booking (SKR03).

    ```bash
    curl -X POST "http://localhost:8000/api/v1/invoices/book?type=PAYABLE" \\
      -F "file=@rechnung.pdf"
    ```

    Raises:
        HTTPException: 400/413/503 as for extraction, 502 when no valid
            booking could be generated
    """
    content = await _read_pdf(file)
    try:
        return await run_in_threadpool(pipeline.process_document, content, invoice_type)
    except (DocumentError, BookingError, ConfigurationError) as e:
        logger.warning(f"Booking failed for {file.filename}: {e}")
        raise _http_error(e) from e
