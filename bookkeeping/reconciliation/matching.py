"""Matching of invoices to bank transactions.

Invoices are processed one at a time in input order. For each, unclaimed
transactions within the amount tolerance are scored and shortlisted, and the
classifier picks at most one. An accepted transaction is consumed and never
offered again, so earlier invoices have first claim on ambiguous payments.
This allocation is order dependent and runs single-threaded.
"""

import logging
import threading
import time
from datetime import date

from bookkeeping.invoice.schema import Invoice, InvoiceType
from bookkeeping.parsing.locale import cents_from_decimal
from bookkeeping.reconciliation.classifier import MatchClassifier
from bookkeeping.reconciliation.schema import (
    BankTransaction,
    MatchedPair,
    ReconciliationResult,
    TransactionCandidate,
)
from bookkeeping.shared import metrics
from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import (
    GenerativeError,
    ResponseParseError,
    raise_if_cancelled,
)

logger = logging.getLogger(__name__)

AMOUNT_WEIGHT = 0.9
DATE_WEIGHT = 0.1
MIN_DATE_SCORE = 0.1


def invoice_key(invoice: Invoice) -> str:
    """Deterministic invoice identifier for the match map.

    Type, number and issue date; without a number, type, counterparty, date
    and gross amount.
    """
    kind = invoice.type.value if invoice.type else "UNKNOWN"
    day = invoice.issue_date.strftime("%Y%m%d") if invoice.issue_date else "00000000"
    if invoice.invoice_number:
        return f"{kind}_{invoice.invoice_number}_{day}"
    return f"{kind}_{invoice.counterparty}_{day}_{invoice.gross_amount / 100:.2f}"


def transaction_key(transaction: BankTransaction) -> str:
    """Deterministic transaction identifier: date, amount and counterparty."""
    return (
        f"TXN_{transaction.date.strftime('%Y%m%d')}_"
        f"{transaction.amount:.2f}_{transaction.counterparty}"
    )


def expected_amount(invoice: Invoice) -> int:
    """Signed cents the bank should show for an invoice; 0 if undetermined."""
    if invoice.type == InvoiceType.PAYABLE:
        return -invoice.gross_amount
    if invoice.type == InvoiceType.RECEIVABLE:
        return invoice.gross_amount
    return 0


def date_score(days: int | None, window_days: int = 30) -> float:
    """Score date proximity.

    Linear taper from 1.0 to 0.7 inside the window, then a steeper decay of
    0.02 per day down to a floor. Unknown distance scores the floor.
    """
    if days is None:
        return MIN_DATE_SCORE
    if days > window_days:
        return max(MIN_DATE_SCORE, 0.7 - (days - window_days) * 0.02)
    return 1.0 - days / window_days * 0.3


class TransactionMatcher:
    """Pairs invoices with bank transactions."""

    def __init__(self, settings: Settings, classifier: MatchClassifier) -> None:
        """Initialize matcher.

        Args:
            settings: Application settings (tolerance, shortlist size, date window)
            classifier: Final decision maker per shortlist
        """
        self.settings = settings
        self.classifier = classifier

    def find_candidates(
        self,
        invoice: Invoice,
        transactions: list[BankTransaction],
        used: set[int],
    ) -> list[TransactionCandidate]:
        """Build the score-ranked shortlist for one invoice.

        Args:
            invoice: Invoice to match
            transactions: Cutoff-filtered transactions
            used: Indices already consumed by earlier invoices

        Returns:
            At most ``match_max_candidates`` candidates, best first
        """
        expected = expected_amount(invoice)
        if expected == 0:
            return []

        tolerance = round(abs(expected) * self.settings.match_tolerance_pct / 100)
        candidates = []
        for index, transaction in enumerate(transactions):
            if index in used:
                continue
            cents = cents_from_decimal(transaction.amount)
            # Sign must match the invoice direction
            if cents == 0 or (cents < 0) != (expected < 0):
                continue
            diff = abs(cents - expected)
            if diff > tolerance:
                continue

            precision = max(0.0, 1.0 - diff / tolerance) if tolerance else 1.0
            days = (
                abs((transaction.date - invoice.issue_date).days)
                if invoice.issue_date
                else None
            )
            score = AMOUNT_WEIGHT * precision + DATE_WEIGHT * date_score(
                days, self.settings.match_date_window_days
            )
            candidates.append(
                TransactionCandidate(
                    transaction=transaction,
                    index=index,
                    score=score,
                    amount_diff_cents=diff,
                    days_apart=days,
                )
            )

        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates[: self.settings.match_max_candidates]

    def reconcile_all(
        self,
        invoices: list[Invoice],
        transactions: list[BankTransaction],
        cutoff_date: date,
        cancel_event: threading.Event | None = None,
    ) -> ReconciliationResult:
        """Match every invoice against the transactions up to the cutoff date.

        Classifier failures leave that invoice unmatched; the run continues.

        Args:
            invoices: Invoices in priority order
            transactions: All transactions read from the bank export
            cutoff_date: Latest eligible transaction date (inclusive)
            cancel_event: Set by the caller to stop before the next classifier call

        Returns:
            ReconciliationResult with matches, leftovers and counts

        Raises:
            OperationCancelledError: The cancel event was set
        """
        start = time.time()
        eligible = [t for t in transactions if t.date <= cutoff_date]
        logger.info(
            f"Reconciling {len(invoices)} invoice(s) against {len(eligible)} of "
            f"{len(transactions)} transaction(s) up to {cutoff_date.isoformat()}"
        )

        result = ReconciliationResult(
            total_invoices=len(invoices), total_transactions=len(transactions)
        )
        used: set[int] = set()

        for invoice in invoices:
            candidates = self.find_candidates(invoice, eligible, used)
            if not candidates:
                logger.debug(f"No candidates for invoice {invoice_key(invoice)}")
                metrics.reconciliation_invoices_total.labels(result="no_candidates").inc()
                result.unmatched_invoices.append(invoice)
                continue

            raise_if_cancelled("reconcile_all", cancel_event)
            try:
                decision = self.classifier.classify(invoice, candidates, cancel_event)
            except (GenerativeError, ResponseParseError) as e:
                logger.warning(f"Classifier failed for invoice {invoice_key(invoice)}: {e}")
                metrics.reconciliation_invoices_total.labels(result="classifier_error").inc()
                result.unmatched_invoices.append(invoice)
                continue

            if not decision.matched or not 0 <= decision.transaction_index < len(candidates):
                metrics.reconciliation_invoices_total.labels(result="unmatched").inc()
                result.unmatched_invoices.append(invoice)
                continue

            chosen = candidates[decision.transaction_index]
            used.add(chosen.index)
            pair = MatchedPair(
                invoice_key=invoice_key(invoice),
                transaction_key=transaction_key(chosen.transaction),
                invoice=invoice,
                transaction=chosen.transaction,
                confidence=decision.confidence,
                reason=decision.reason,
            )
            result.matches.append(pair)
            result.matched_invoices[pair.invoice_key] = pair.transaction_key
            metrics.reconciliation_invoices_total.labels(result="matched").inc()
            logger.info(
                f"Matched {pair.invoice_key} -> {pair.transaction_key} "
                f"(confidence {decision.confidence:.2f})"
            )

        result.unmatched_transactions = [t for i, t in enumerate(eligible) if i not in used]
        result.matched_count = len(result.matches)
        result.processing_seconds = time.time() - start
        metrics.reconciliation_duration_seconds.observe(result.processing_seconds)

        logger.info(
            f"Reconciliation finished: {result.matched_count}/{result.total_invoices} "
            f"matched ({result.match_rate:.1f}%), "
            f"{len(result.unmatched_transactions)} transaction(s) unmatched"
        )
        return result
