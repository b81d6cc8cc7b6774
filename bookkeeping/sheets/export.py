"""Row layouts for writing results back to the spreadsheet."""

from datetime import date, datetime

from bookkeeping.batch.processor import BatchResult
from bookkeeping.invoice.schema import InvoiceType
from bookkeeping.parsing.locale import format_amount
from bookkeeping.reconciliation.schema import ReconciliationResult
from bookkeeping.shared.config import Settings
from bookkeeping.sheets.service import SpreadsheetClient

BATCH_HEADERS = [
    "Datei",
    "Rechnungsnr",
    "Datum",
    "Lieferant/Kunde",
    "Netto",
    "MwSt",
    "Brutto",
    "Währung",
    "Sollkonto",
    "Habenkonto",
    "Steuerschlüssel",
    "Buchungstext",
    "Kostenstelle",
    "Beschreibung",
    "Fälligkeit",
    "Status",
    "Verarbeitet",
]

RECONCILIATION_HEADERS = [
    "Rechnung",
    "Transaktion",
    "Rechnungsnr",
    "Lieferant/Kunde",
    "Brutto",
    "Buchungsdatum",
    "Betrag",
    "Konfidenz",
    "Begründung",
    "Abgeglichen",
]


def format_date(value: date | None) -> str:
    return value.strftime("%d.%m.%Y") if value else ""


def target_sheet(settings: Settings, invoice_type: InvoiceType) -> str:
    """Kreditoren for payables, Debitoren for receivables."""
    if invoice_type == InvoiceType.PAYABLE:
        return settings.payables_sheet
    return settings.receivables_sheet


def batch_result_row(result: BatchResult, processed_at: datetime) -> list[str]:
    """One sheet row for a batch result."""
    row = [result.file_name] + [""] * (len(BATCH_HEADERS) - 1)
    row[15] = result.status
    row[16] = processed_at.strftime("%d.%m.%Y %H:%M")

    outcome = result.outcome
    if outcome is None:
        row[13] = result.error or ""
        return row

    invoice = outcome.invoice
    row[1] = invoice.invoice_number
    row[2] = format_date(invoice.issue_date)
    row[3] = invoice.counterparty
    row[4] = format_amount(invoice.net_amount)
    row[5] = format_amount(invoice.vat_amount)
    row[6] = format_amount(invoice.gross_amount)
    row[7] = invoice.currency
    row[13] = invoice.accounting_summary or invoice.description
    row[14] = format_date(invoice.due_date)

    booking = outcome.booking
    if booking is not None:
        row[8] = booking.debit_account
        row[9] = booking.credit_account
        row[10] = booking.tax_key
        row[11] = booking.booking_text
        row[12] = booking.cost_center
    return row


def write_batch_results(
    sheets: SpreadsheetClient,
    settings: Settings,
    invoice_type: InvoiceType,
    results: list[BatchResult],
    processed_at: datetime | None = None,
) -> int:
    """Append batch results to the invoice sheet for their direction.

    Returns:
        Number of rows written
    """
    sheet = target_sheet(settings, invoice_type)
    stamp = processed_at or datetime.now()
    rows = [batch_result_row(result, stamp) for result in results]
    sheets.ensure_worksheet(sheet, BATCH_HEADERS)
    sheets.append_rows(sheet, rows)
    return len(rows)


def write_reconciliation(
    sheets: SpreadsheetClient,
    settings: Settings,
    result: ReconciliationResult,
    processed_at: datetime | None = None,
) -> int:
    """Append accepted matches to the reconciliation sheet.

    Returns:
        Number of rows written
    """
    stamp = (processed_at or datetime.now()).strftime("%d.%m.%Y %H:%M")
    rows = [
        [
            pair.invoice_key,
            pair.transaction_key,
            pair.invoice.invoice_number,
            pair.invoice.counterparty,
            format_amount(pair.invoice.gross_amount),
            format_date(pair.transaction.date),
            f"{pair.transaction.amount:.2f}".replace(".", ","),
            f"{pair.confidence:.2f}",
            pair.reason,
            stamp,
        ]
        for pair in result.matches
    ]
    sheets.ensure_worksheet(settings.reconciliation_sheet, RECONCILIATION_HEADERS)
    sheets.append_rows(settings.reconciliation_sheet, rows)
    return len(rows)
