"""Reads bank transactions and invoice lists from the spreadsheet.

Malformed rows are skipped with a warning naming the sheet and row number;
they never fail the whole read.
"""

import logging
from decimal import Decimal, InvalidOperation

from bookkeeping.invoice.schema import Invoice, InvoiceType
from bookkeeping.parsing.locale import ParseError, normalize_currency, parse_amount, parse_date
from bookkeeping.reconciliation.schema import BankTransaction
from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import SheetError
from bookkeeping.sheets.service import SpreadsheetClient

logger = logging.getLogger(__name__)

BANK_COLUMNS = 11  # A:K
INVOICE_COLUMNS = 8  # A:H


def _cell(row: list[str], index: int) -> str:
    return str(row[index]).strip() if index < len(row) else ""


def parse_bank_amount(text: str) -> Decimal:
    """Bank export amount in major units; empty cells count as zero."""
    if not text.strip():
        return Decimal("0")
    return Decimal(parse_amount(text)) / 100


class DataReader:
    """Loads reconciliation input from the configured sheets."""

    def __init__(self, settings: Settings, sheets: SpreadsheetClient) -> None:
        """Initialize reader.

        Args:
            settings: Application settings with sheet names
            sheets: Spreadsheet client
        """
        self.settings = settings
        self.sheets = sheets

    def validate_sheets(self) -> None:
        """Check the bank and invoice sheets exist.

        Raises:
            SheetError: Naming the first missing sheet
        """
        for name in (
            self.settings.bank_sheet,
            self.settings.payables_sheet,
            self.settings.receivables_sheet,
        ):
            if not self.sheets.worksheet_exists(name):
                raise SheetError("validate_sheets", f"sheet '{name}' not found")

    def read_bank_transactions(self) -> list[BankTransaction]:
        """Read all bank transactions.

        Columns: date, type, description, EREF, MREF, CRED, SVWZ, counterparty,
        BIC, IBAN, amount.
        """
        sheet = self.settings.bank_sheet
        rows = self.sheets.read_range(f"{sheet}!A:K")
        transactions = []
        for number, row in enumerate(rows[1:], start=2):
            if len(row) < BANK_COLUMNS:
                logger.warning(f"{sheet} row {number}: expected {BANK_COLUMNS} columns, skipped")
                continue
            try:
                transactions.append(
                    BankTransaction(
                        date=parse_date(_cell(row, 0)),
                        type=_cell(row, 1),
                        description=_cell(row, 2),
                        eref=_cell(row, 3),
                        mref=_cell(row, 4),
                        cred=_cell(row, 5),
                        svwz=_cell(row, 6),
                        counterparty=_cell(row, 7),
                        bic=_cell(row, 8),
                        iban=_cell(row, 9),
                        amount=parse_bank_amount(_cell(row, 10)),
                    )
                )
            except (ParseError, InvalidOperation) as e:
                logger.warning(f"{sheet} row {number}: {e}, skipped")
        logger.info(f"Read {len(transactions)} bank transaction(s) from {sheet}")
        return transactions

    def read_invoices(self, sheet: str, invoice_type: InvoiceType) -> list[Invoice]:
        """Read invoices from one sheet.

        Columns: file, number, date, counterparty, net, vat, gross, currency.
        An unreadable gross amount skips the row; net and vat fall back to zero.

        Args:
            sheet: Sheet name
            invoice_type: Direction of every invoice on the sheet

        Returns:
            Invoices in sheet order
        """
        rows = self.sheets.read_range(f"{sheet}!A:H")
        invoices = []
        for number, row in enumerate(rows[1:], start=2):
            if len(row) < INVOICE_COLUMNS:
                logger.warning(f"{sheet} row {number}: expected {INVOICE_COLUMNS} columns, skipped")
                continue

            try:
                gross = parse_amount(_cell(row, 6))
            except ParseError as e:
                logger.warning(f"{sheet} row {number}: invalid gross amount ({e}), skipped")
                continue

            issue_date = None
            if _cell(row, 2):
                try:
                    issue_date = parse_date(_cell(row, 2))
                except ParseError as e:
                    logger.warning(f"{sheet} row {number}: {e}")

            counterparty = _cell(row, 3)
            invoices.append(
                Invoice(
                    id=_cell(row, 0),
                    invoice_number=_cell(row, 1),
                    type=invoice_type,
                    vendor=counterparty if invoice_type == InvoiceType.PAYABLE else "",
                    customer=counterparty if invoice_type == InvoiceType.RECEIVABLE else "",
                    issue_date=issue_date,
                    net_amount=self._lenient_amount(_cell(row, 4)),
                    vat_amount=self._lenient_amount(_cell(row, 5)),
                    gross_amount=gross,
                    currency=normalize_currency(_cell(row, 7), self.settings.home_currency),
                )
            )
        logger.info(f"Read {len(invoices)} invoice(s) from {sheet}")
        return invoices

    def read_all_invoices(self) -> list[Invoice]:
        """Payables first, then receivables."""
        return self.read_invoices(
            self.settings.payables_sheet, InvoiceType.PAYABLE
        ) + self.read_invoices(self.settings.receivables_sheet, InvoiceType.RECEIVABLE)

    @staticmethod
    def _lenient_amount(text: str) -> int:
        try:
            return parse_amount(text)
        except ParseError:
            return 0
