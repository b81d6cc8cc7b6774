"""Prometheus metrics for the bookkeeping services.

Exposes key metrics for monitoring:
- Request counts and durations for the HTTP API
- Generative completion attempts and outcomes
- Amount discrepancies found during reconciliation
- Bank transaction matching results

Metric names follow the Prometheus naming guide:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

document_upload_size_bytes = Histogram(
    "document_upload_size_bytes",
    "Document upload size in bytes",
    buckets=(1024, 10240, 102400, 1048576, 10485760, 20971520),  # 1KB to 20MB
)

# Invoice completion metrics
completion_attempts_total = Counter(
    "invoice_completion_attempts_total",
    "Generative completion attempts",
    ["outcome"],  # success, transport_error, parse_error, invalid_type
)

completion_requests_total = Counter(
    "invoice_completion_requests_total",
    "Invoice completion requests",
    ["status"],  # complete, completed, failed
)

amount_discrepancies_total = Counter(
    "invoice_amount_discrepancies_total",
    "Amount fields where the two extraction sources disagreed",
    ["field"],
)

# Transaction matching metrics
reconciliation_invoices_total = Counter(
    "reconciliation_invoices_total",
    "Invoices processed by the matching engine",
    ["result"],  # matched, unmatched, no_candidates, classifier_error
)

reconciliation_duration_seconds = Histogram(
    "reconciliation_duration_seconds",
    "Duration of a full reconciliation run in seconds",
    buckets=(1.0, 5.0, 15.0, 60.0, 300.0, 900.0),
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
