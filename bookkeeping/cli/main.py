"""Command line interface for invoice extraction, booking and reconciliation.

Usage:
    bookkeeping ocr invoice.pdf
    bookkeeping invoice invoice.pdf --format json
    bookkeeping datev invoice.pdf --type PAYABLE
    bookkeeping datev-batch ./eingang --type PAYABLE --workers 8
    bookkeeping reconcile --cutoff-date 2025-01-31 --dry-run

Settings come from APP_* environment variables or a .env file (see
bookkeeping/shared/config.py). OPENAI_API_KEY and
GOOGLE_APPLICATION_CREDENTIALS are read by the respective clients.
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

from bookkeeping.batch.processor import BatchProcessor, find_pdf_files
from bookkeeping.booking.factory import create_booking_pipeline
from bookkeeping.booking.pipeline import BookingOutcome
from bookkeeping.invoice.schema import InvoiceType
from bookkeeping.llm.factory import create_generative_client
from bookkeeping.ocr.service import TesseractOCRService
from bookkeeping.parsing.locale import ParseError, format_amount, parse_iso_date
from bookkeeping.reconciliation.classifier import LLMMatchClassifier
from bookkeeping.reconciliation.matching import TransactionMatcher
from bookkeeping.reconciliation.reader import DataReader
from bookkeeping.reconciliation.schema import ReconciliationResult
from bookkeeping.shared.config import Settings, get_settings
from bookkeeping.shared.errors import (
    BookkeepingError,
    ConfigurationError,
    OperationCancelledError,
    SheetError,
)
from bookkeeping.shared.logging_config import configure_logging
from bookkeeping.sheets.export import write_batch_results, write_reconciliation
from bookkeeping.sheets.service import GoogleSheetsService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def _invoice_type(value: str) -> InvoiceType:
    invoice_type = InvoiceType.parse(value)
    if invoice_type is None:
        raise argparse.ArgumentTypeError(f"invalid invoice type: {value} (PAYABLE or RECEIVABLE)")
    return invoice_type


def _cutoff_date(value: str) -> date:
    try:
        return parse_iso_date(value)
    except ParseError as e:
        raise argparse.ArgumentTypeError(f"invalid cutoff date: {value} (YYYY-MM-DD)") from e


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per workflow."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--format",
        choices=["console", "json"],
        default="console",
        help="Output format (default: console)",
    )
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    parser = argparse.ArgumentParser(
        prog="bookkeeping",
        description="Invoice extraction, DATEV booking proposals and bank reconciliation",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    ocr = commands.add_parser("ocr", parents=[common], help="Print the OCR text of a document")
    ocr.add_argument("file", type=Path, help="PDF or image file")

    invoice = commands.add_parser(
        "invoice", parents=[common], help="Extract and complete invoice data"
    )
    invoice.add_argument("file", type=Path, help="Invoice PDF")

    datev = commands.add_parser(
        "datev", parents=[common], help="Generate a DATEV booking proposal for one invoice"
    )
    datev.add_argument("file", type=Path, help="Invoice PDF")
    datev.add_argument("--type", type=_invoice_type, help="Force PAYABLE or RECEIVABLE")
    datev.add_argument("--skr", default="03", help="Chart of accounts (only 03 is supported)")

    batch = commands.add_parser(
        "datev-batch", parents=[common], help="Book every PDF below a folder"
    )
    batch.add_argument("folder", type=Path, help="Folder with invoice PDFs")
    batch.add_argument(
        "--type", type=_invoice_type, required=True, help="PAYABLE or RECEIVABLE for all files"
    )
    batch.add_argument("--workers", type=int, help="Number of parallel workers")
    batch.add_argument("--skr", default="03", help="Chart of accounts (only 03 is supported)")
    batch.add_argument(
        "--dry-run", action="store_true", help="Do not write results to the spreadsheet"
    )

    reconcile = commands.add_parser(
        "reconcile", parents=[common], help="Match invoices against bank transactions"
    )
    reconcile.add_argument(
        "--cutoff-date",
        type=_cutoff_date,
        default=None,
        help="Latest transaction date to consider, YYYY-MM-DD (default: today)",
    )
    reconcile.add_argument(
        "--dry-run", action="store_true", help="Do not write matches to the spreadsheet"
    )

    return parser


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _print_outcome(outcome: BookingOutcome, output_format: str) -> None:
    if output_format == "json":
        _print_json(outcome.model_dump(mode="json"))
        return

    invoice = outcome.invoice
    print(f"Rechnungsnr:     {invoice.invoice_number}")
    print(f"Typ:             {invoice.type.value if invoice.type else '-'}")
    print(f"Lieferant:       {invoice.vendor}")
    print(f"Kunde:           {invoice.customer}")
    print(f"Datum:           {invoice.issue_date or '-'}")
    print(f"Fällig:          {invoice.due_date or '-'}")
    print(f"Netto:           {format_amount(invoice.net_amount)} {invoice.currency}")
    print(f"MwSt:            {format_amount(invoice.vat_amount)} {invoice.currency}")
    print(f"Brutto:          {format_amount(invoice.gross_amount)} {invoice.currency}")
    if invoice.accounting_summary:
        print(f"Zusammenfassung: {invoice.accounting_summary}")

    booking = outcome.booking
    if booking is not None:
        print()
        print(f"Soll:            {booking.debit_account} {booking.debit_account_name}")
        print(f"Haben:           {booking.credit_account} {booking.credit_account_name}")
        print(f"Steuerschlüssel: {booking.tax_key} {booking.tax_key_description}")
        print(f"Buchungstext:    {booking.booking_text}")
        print(f"Betrag:          {booking.amount} {booking.currency}")
        print(f"Periode:         {booking.accounting_period}")
        if booking.explanation:
            print(f"Erläuterung:     {booking.explanation}")

    if outcome.warnings:
        print()
        print("Warnungen:")
        for warning in outcome.warnings:
            print(f"  - {warning}")


def _print_reconciliation(result: ReconciliationResult, output_format: str) -> None:
    if output_format == "json":
        _print_json(
            {
                "matched_invoices": result.matched_invoices,
                "matched_count": result.matched_count,
                "total_invoices": result.total_invoices,
                "total_transactions": result.total_transactions,
                "unmatched_invoices": len(result.unmatched_invoices),
                "unmatched_transactions": len(result.unmatched_transactions),
                "match_rate": round(result.match_rate, 1),
                "processing_seconds": round(result.processing_seconds, 2),
            }
        )
        return

    for pair in result.matches:
        print(f"{pair.invoice_key} -> {pair.transaction_key} ({pair.confidence:.2f})")
    print()
    print(
        f"{result.matched_count}/{result.total_invoices} Rechnungen abgeglichen "
        f"({result.match_rate:.1f}%), "
        f"{len(result.unmatched_transactions)} Transaktionen offen"
    )


def cmd_ocr(args: argparse.Namespace, settings: Settings) -> int:
    result = TesseractOCRService(settings).extract_text_from_path(args.file)
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return EXIT_FAILURE

    if args.format == "json":
        _print_json(result.model_dump())
    else:
        print(result.text)
    return EXIT_OK


def cmd_invoice(args: argparse.Namespace, settings: Settings) -> int:
    pipeline = create_booking_pipeline(settings, with_booking=False)
    outcome = pipeline.extract_invoice(args.file.read_bytes())
    _print_outcome(outcome, args.format)
    return EXIT_OK


def cmd_datev(args: argparse.Namespace, settings: Settings) -> int:
    pipeline = create_booking_pipeline(settings.model_copy(update={"chart_of_accounts": args.skr}))
    outcome = pipeline.process_document(args.file.read_bytes(), args.type)
    _print_outcome(outcome, args.format)
    return EXIT_OK


def cmd_datev_batch(args: argparse.Namespace, settings: Settings) -> int:
    files = find_pdf_files(args.folder)
    if not files:
        print(f"No PDF files found in {args.folder}")
        return EXIT_OK

    # Open the spreadsheet before spending any API calls on the documents
    sheets = None if args.dry_run else GoogleSheetsService(settings)

    pipeline = create_booking_pipeline(settings.model_copy(update={"chart_of_accounts": args.skr}))
    processor = BatchProcessor(
        pipeline,
        args.type,
        workers=args.workers or settings.batch_workers,
        show_progress=args.format == "console",
    )
    results = processor.process(files)
    counts = processor.summary(results)

    if sheets is not None:
        written = write_batch_results(sheets, settings, args.type, results)
        logger.info(f"Wrote {written} row(s) to the spreadsheet")

    if args.format == "json":
        _print_json(
            {
                "summary": counts,
                "results": [result.model_dump(mode="json") for result in results],
            }
        )
    else:
        print()
        print(
            f"{len(results)} Dateien: {counts['success']} erfolgreich, "
            f"{counts['warning']} mit Warnungen, {counts['error']} fehlgeschlagen"
        )
    return EXIT_OK


def cmd_reconcile(args: argparse.Namespace, settings: Settings) -> int:
    cutoff = args.cutoff_date or date.today()

    sheets = GoogleSheetsService(settings)
    reader = DataReader(settings, sheets)
    reader.validate_sheets()

    transactions = reader.read_bank_transactions()
    invoices = reader.read_all_invoices()

    matcher = TransactionMatcher(
        settings, LLMMatchClassifier(settings, create_generative_client(settings))
    )
    result = matcher.reconcile_all(invoices, transactions, cutoff)

    if not args.dry_run:
        written = write_reconciliation(sheets, settings, result)
        logger.info(f"Wrote {written} match(es) to {settings.reconciliation_sheet}")

    _print_reconciliation(result, args.format)
    return EXIT_OK


COMMANDS = {
    "ocr": cmd_ocr,
    "invoice": cmd_invoice,
    "datev": cmd_datev,
    "datev-batch": cmd_datev_batch,
    "reconcile": cmd_reconcile,
}


def main(argv: list[str] | None = None) -> int:
    """Run the CLI.

    Args:
        argv: Arguments without the program name; sys.argv when None

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings, verbose=args.verbose)

    try:
        return COMMANDS[args.command](args, settings)
    except (ConfigurationError, SheetError) as e:
        print(f"Setup error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except (NotADirectoryError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except (OperationCancelledError, KeyboardInterrupt):
        print("Cancelled", file=sys.stderr)
        return EXIT_FAILURE
    except BookkeepingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
