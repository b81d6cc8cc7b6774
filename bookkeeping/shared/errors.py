"""Error taxonomy shared across the bookkeeping components.

Every error raised by an orchestration layer carries the operation that failed,
so a message reads like ``complete_invoice: OCR returned no text``.
"""

import threading
from enum import Enum


class BookkeepingError(Exception):
    """Base error with an operation tag."""

    def __init__(self, op: str, message: str) -> None:
        self.op = op
        self.message = message
        super().__init__(f"{op}: {message}")


class ConfigurationError(BookkeepingError):
    """Missing credentials, keys or an unsupported configuration value."""


class DocumentErrorKind(str, Enum):
    """Categories of document extraction failures."""

    INVALID_DOCUMENT = "invalid_document"
    TOO_LARGE = "too_large"
    INVALID_CREDENTIALS = "invalid_credentials"
    QUOTA_EXCEEDED = "quota_exceeded"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    PROCESSING_FAILED = "processing_failed"

    @property
    def retriable(self) -> bool:
        """Whether a caller may retry the same document later."""
        return self in (DocumentErrorKind.QUOTA_EXCEEDED, DocumentErrorKind.TIMEOUT)


class DocumentError(BookkeepingError):
    """Document could not be turned into invoice data."""

    def __init__(self, op: str, message: str, kind: DocumentErrorKind) -> None:
        self.kind = kind
        super().__init__(op, message)


class GenerativeError(BookkeepingError):
    """Transport or API failure of a generative provider."""


class ResponseParseError(BookkeepingError):
    """Provider response did not contain usable JSON."""


class CompletionError(BookkeepingError):
    """Invoice completion failed."""


class OperationCancelledError(BookkeepingError):
    """Caller cancelled the operation before the next external call."""


class BookingError(BookkeepingError):
    """Booking proposal could not be generated or validated."""


class SheetError(BookkeepingError):
    """Spreadsheet access failed."""


def raise_if_cancelled(op: str, cancel_event: threading.Event | None) -> None:
    """Abort before the next external call when the caller cancelled.

    Raises:
        OperationCancelledError: If the event is set
    """
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(op, "operation cancelled")
