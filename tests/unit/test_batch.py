"""Unit tests for concurrent folder processing."""

import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from bookkeeping.batch.processor import BatchProcessor, find_pdf_files
from bookkeeping.booking.pipeline import BookingOutcome
from bookkeeping.invoice.schema import Invoice, InvoiceType
from bookkeeping.shared.errors import BookingError, DocumentError, DocumentErrorKind


def _outcome(
    number: str, net: int = 10000, vat: int = 1900, discrepancy: bool = False
) -> BookingOutcome:
    invoice = Invoice(
        invoice_number=number,
        type=InvoiceType.PAYABLE,
        net_amount=net,
        vat_amount=vat,
        gross_amount=11900,
    )
    return BookingOutcome(invoice=invoice, has_discrepancy=discrepancy)


@pytest.fixture
def folder(tmp_path: Path) -> Path:
    """Folder with PDFs at two levels and some other files."""
    (tmp_path / "b.pdf").write_bytes(b"%PDF-b")
    (tmp_path / "a.PDF").write_bytes(b"%PDF-a")
    (tmp_path / "notes.txt").write_text("ignore me")
    sub = tmp_path / "2024"
    sub.mkdir()
    (sub / "c.pdf").write_bytes(b"%PDF-c")
    return tmp_path


def test_find_pdf_files(folder: Path) -> None:
    """Test PDFs are found recursively, case-insensitively and sorted."""
    files = find_pdf_files(folder)

    assert [f.relative_to(folder).as_posix() for f in files] == ["2024/c.pdf", "a.PDF", "b.pdf"]


def test_find_pdf_files_not_a_directory(tmp_path: Path) -> None:
    """Test a missing folder is rejected."""
    with pytest.raises(NotADirectoryError):
        find_pdf_files(tmp_path / "missing")


def test_process_preserves_order(folder: Path) -> None:
    """Test results follow input order even when later files finish first."""
    delays = {b"%PDF-c": 0.05, b"%PDF-a": 0.02, b"%PDF-b": 0.0}

    def process_document(document, invoice_type, cancel_event):
        time.sleep(delays[document])
        return _outcome(document.decode()[-1])

    pipeline = MagicMock()
    pipeline.process_document.side_effect = process_document
    processor = BatchProcessor(pipeline, InvoiceType.PAYABLE, workers=3, show_progress=False)

    results = processor.process(find_pdf_files(folder))

    assert [r.file_name for r in results] == ["c.pdf", "a.PDF", "b.pdf"]
    assert [r.outcome.invoice.invoice_number for r in results] == ["c", "a", "b"]
    assert all(r.status == "success" for r in results)


def test_process_forces_invoice_type(folder: Path) -> None:
    """Test every file is booked with the batch's invoice type."""
    pipeline = MagicMock()
    pipeline.process_document.return_value = _outcome("R-1")
    processor = BatchProcessor(pipeline, InvoiceType.RECEIVABLE, workers=2, show_progress=False)

    processor.process(find_pdf_files(folder))

    for call in pipeline.process_document.call_args_list:
        assert call.args[1] == InvoiceType.RECEIVABLE
        assert call.args[2] is processor.cancel_event


def test_process_statuses(tmp_path: Path) -> None:
    """Test failures and data-quality findings map to error and warning."""
    paths = []
    for name in ("ok", "nobreakdown", "mismatch", "unreadable", "bug"):
        path = tmp_path / f"{name}.pdf"
        path.write_bytes(name.encode())
        paths.append(path)

    responses = {
        b"ok": _outcome("1"),
        b"nobreakdown": _outcome("2", net=0, vat=0),
        b"mismatch": _outcome("3", discrepancy=True),
        b"unreadable": DocumentError(
            "extract_invoice", "document is not a PDF", DocumentErrorKind.INVALID_DOCUMENT
        ),
        b"bug": ZeroDivisionError("division by zero"),
    }

    def process_document(document, invoice_type, cancel_event):
        response = responses[document]
        if isinstance(response, Exception):
            raise response
        return response

    pipeline = MagicMock()
    pipeline.process_document.side_effect = process_document
    processor = BatchProcessor(pipeline, InvoiceType.PAYABLE, workers=4, show_progress=False)

    results = processor.process(paths)

    assert [r.status for r in results] == ["success", "warning", "warning", "error", "error"]
    assert results[3].error == "extract_invoice: document is not a PDF"
    assert results[3].outcome is None
    assert results[4].error == "Unexpected error: division by zero"
    assert processor.summary(results) == {"success": 1, "warning": 2, "error": 2}


def test_missing_file_is_error(tmp_path: Path) -> None:
    """Test unreadable files are recorded rather than raised."""
    pipeline = MagicMock()
    processor = BatchProcessor(pipeline, InvoiceType.PAYABLE, workers=1, show_progress=False)

    results = processor.process([tmp_path / "gone.pdf"])

    assert results[0].status == "error"
    pipeline.process_document.assert_not_called()


def test_progress_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test each finished file prints a progress line."""
    path = tmp_path / "r1.pdf"
    path.write_bytes(b"%PDF")
    pipeline = MagicMock()
    pipeline.process_document.side_effect = BookingError("generate_booking", "no choices")
    processor = BatchProcessor(pipeline, InvoiceType.PAYABLE, workers=1)

    processor.process([path])

    assert capsys.readouterr().out.strip() == (
        "[1/1] r1.pdf - error (generate_booking: no choices)"
    )


def test_workers_at_least_one() -> None:
    """Test the pool never has zero workers."""
    assert BatchProcessor(MagicMock(), InvoiceType.PAYABLE, workers=0).workers == 1


def test_interrupt_cancels_batch(tmp_path: Path) -> None:
    """Test Ctrl-C sets the cancel event seen by files still being processed."""
    paths = []
    for name in ("r1.pdf", "r2.pdf", "r3.pdf"):
        path = tmp_path / name
        path.write_bytes(f"%PDF-{name}".encode())
        paths.append(path)
    cancelled_when_called: list[bool] = []

    def process_document(document, invoice_type, cancel_event):
        if document == b"%PDF-r1.pdf":
            raise KeyboardInterrupt
        cancel_event.wait(timeout=5)
        cancelled_when_called.append(cancel_event.is_set())
        return _outcome("R")

    pipeline = MagicMock()
    pipeline.process_document.side_effect = process_document
    processor = BatchProcessor(pipeline, InvoiceType.PAYABLE, workers=1, show_progress=False)

    with pytest.raises(KeyboardInterrupt):
        processor.process(paths)

    assert processor.cancel_event.is_set()
    assert all(cancelled_when_called)
