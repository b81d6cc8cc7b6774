"""Concurrent processing of a folder of invoice PDFs.

A fixed pool of workers pulls file paths and writes each result into a
pre-sized list at the file's submission index, so output order matches input
order regardless of completion order. Only the progress counter and console
output are shared between workers and guarded by a lock.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pydantic import BaseModel

from bookkeeping.booking.pipeline import BookingOutcome, InvoiceBookingPipeline
from bookkeeping.invoice.schema import InvoiceType
from bookkeeping.parsing.locale import format_amount
from bookkeeping.shared.errors import BookkeepingError

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_WARNING = "warning"
STATUS_ERROR = "error"


class BatchResult(BaseModel):
    """Outcome for one file of a batch."""

    file_path: str
    file_name: str
    status: str
    outcome: BookingOutcome | None = None
    error: str | None = None


def find_pdf_files(folder: Path) -> list[Path]:
    """Find PDF files below a folder, sorted by path.

    Raises:
        NotADirectoryError: If ``folder`` is not a directory
    """
    if not folder.is_dir():
        raise NotADirectoryError(f"Not a directory: {folder}")
    return sorted(p for p in folder.rglob("*") if p.is_file() and p.suffix.lower() == ".pdf")


class BatchProcessor:
    """Runs the booking pipeline over many files with a worker pool."""

    def __init__(
        self,
        pipeline: InvoiceBookingPipeline,
        invoice_type: InvoiceType,
        workers: int = 12,
        show_progress: bool = True,
    ) -> None:
        """Initialize processor.

        Args:
            pipeline: Booking pipeline (must be safe to call from several threads)
            invoice_type: Direction forced on every invoice of the batch
            workers: Pool size
            show_progress: Print a progress line per finished file
        """
        self.pipeline = pipeline
        self.invoice_type = invoice_type
        self.workers = max(1, workers)
        self.show_progress = show_progress
        self._lock = threading.Lock()
        self._processed = 0
        self.cancel_event = threading.Event()

    def process(self, paths: list[Path]) -> list[BatchResult]:
        """Process all files; per-file failures are recorded, never raised.

        Args:
            paths: Files in the order results should be reported

        Returns:
            One BatchResult per input path, same order

        Raises:
            KeyboardInterrupt: After setting ``cancel_event`` when interrupted
        """
        results: list[BatchResult | None] = [None] * len(paths)
        self._processed = 0
        total = len(paths)

        def work(index: int) -> None:
            result = self._process_file(paths[index])
            results[index] = result
            self._report(result, total)

        logger.info(f"Processing {total} file(s) with {self.workers} worker(s)")
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            try:
                list(pool.map(work, range(total)))
            except KeyboardInterrupt:
                # Queued files are dropped; running ones stop at their next external call
                logger.warning("Batch interrupted, cancelling remaining files")
                self.cancel_event.set()
                pool.shutdown(wait=False, cancel_futures=True)
                raise

        return [r for r in results if r is not None]

    def _process_file(self, path: Path) -> BatchResult:
        try:
            outcome = self.pipeline.process_document(
                path.read_bytes(), self.invoice_type, self.cancel_event
            )
        except (BookkeepingError, OSError) as e:
            logger.error(f"{path.name}: {e}")
            return BatchResult(
                file_path=str(path), file_name=path.name, status=STATUS_ERROR, error=str(e)
            )
        except Exception as e:
            # One broken file must not stop the batch
            logger.exception(f"{path.name}: unexpected failure")
            return BatchResult(
                file_path=str(path),
                file_name=path.name,
                status=STATUS_ERROR,
                error=f"Unexpected error: {e}",
            )

        invoice = outcome.invoice
        no_breakdown = invoice.net_amount == 0 and invoice.vat_amount == 0
        status = STATUS_WARNING if no_breakdown or outcome.has_discrepancy else STATUS_SUCCESS
        return BatchResult(
            file_path=str(path), file_name=path.name, status=status, outcome=outcome
        )

    def _report(self, result: BatchResult, total: int) -> None:
        with self._lock:
            self._processed += 1
            if not self.show_progress:
                return
            if result.outcome is not None:
                invoice = result.outcome.invoice
                detail = f"€{format_amount(invoice.gross_amount)}"
            else:
                detail = result.error or "unknown error"
            print(f"[{self._processed}/{total}] {result.file_name} - {result.status} ({detail})")

    def summary(self, results: list[BatchResult]) -> dict[str, int]:
        """Count results per status."""
        counts = {STATUS_SUCCESS: 0, STATUS_WARNING: 0, STATUS_ERROR: 0}
        for result in results:
            counts[result.status] = counts.get(result.status, 0) + 1
        return counts
