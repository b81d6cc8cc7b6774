"""Bank transaction and matching result models."""

import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from bookkeeping.invoice.schema import Invoice


class BankTransaction(BaseModel):
    """One line of the bank export.

    Amount is signed in major currency units; negative means outgoing.
    """

    date: datetime.date
    type: str = Field("", description="Transaction type label (e.g. SEPA-Überweisung)")
    description: str = ""
    eref: str = Field("", description="End-to-end reference")
    mref: str = Field("", description="Mandate reference")
    cred: str = Field("", description="Creditor identifier")
    svwz: str = Field("", description="Remittance text (Verwendungszweck)")
    counterparty: str = ""
    bic: str = ""
    iban: str = ""
    amount: Decimal


class TransactionCandidate(BaseModel):
    """A transaction offered to the classifier for one invoice.

    Attributes:
        transaction: Candidate transaction
        index: Position in the cutoff-filtered transaction list
        score: Combined amount/date score in [0, 1]
        amount_diff_cents: Distance from the expected amount
        days_apart: Days between invoice date and transaction date
    """

    transaction: BankTransaction
    index: int
    score: float
    amount_diff_cents: int
    days_apart: int | None = None


class MatchDecision(BaseModel):
    """Classifier verdict for one candidate shortlist."""

    matched: bool = False
    transaction_index: int = -1
    confidence: float = 0.0
    reason: str = ""


class MatchedPair(BaseModel):
    """An accepted invoice/transaction pairing."""

    invoice_key: str
    transaction_key: str
    invoice: Invoice
    transaction: BankTransaction
    confidence: float
    reason: str = ""


class ReconciliationResult(BaseModel):
    """Outcome of a reconciliation run.

    Attributes:
        matched_invoices: Invoice key → transaction key
        matches: Accepted pairs in invoice order
        unmatched_invoices: Invoices without an accepted match
        unmatched_transactions: Eligible transactions nobody claimed
        total_invoices: Invoices considered
        total_transactions: Transactions read (before the cutoff filter)
        matched_count: Number of accepted matches
        processing_seconds: Wall-clock duration of the run
    """

    matched_invoices: dict[str, str] = {}
    matches: list[MatchedPair] = []
    unmatched_invoices: list[Invoice] = []
    unmatched_transactions: list[BankTransaction] = []
    total_invoices: int = 0
    total_transactions: int = 0
    matched_count: int = 0
    processing_seconds: float = 0.0

    @property
    def match_rate(self) -> float:
        """Share of invoices matched, in percent."""
        if self.total_invoices == 0:
            return 0.0
        return self.matched_count / self.total_invoices * 100
