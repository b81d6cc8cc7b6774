"""Arbitration between two amount sources and the net + vat = gross identity.

Amounts are the fields most likely to disagree between extraction sources
(OCR misreads digits, generative models mis-transcribe), so they get
tolerance-based arbitration instead of first-value-wins merging.
"""

from pydantic import BaseModel

from bookkeeping.invoice.schema import AmountSource, Invoice
from bookkeeping.parsing.locale import format_amount

AMOUNT_FIELDS = ("net_amount", "vat_amount", "gross_amount")
_FIELD_LABELS = {"net_amount": "Net", "vat_amount": "VAT", "gross_amount": "Gross"}


class AmountReconciliation(BaseModel):
    """Outcome of reconciling two amount sources.

    Attributes:
        invoice: Copy of the input invoice with final amounts
        warnings: Human-readable data-quality findings
        has_discrepancy: Sources disagreed or the identity check failed
        max_discrepancy_pct: Largest per-field disagreement in percent
    """

    invoice: Invoice
    warnings: list[str] = []
    has_discrepancy: bool = False
    max_discrepancy_pct: float = 0.0


def discrepancy_pct(a: int, b: int) -> float:
    """Relative gap between two non-zero amounts, in percent of the larger one."""
    larger, smaller = max(abs(a), abs(b)), min(abs(a), abs(b))
    if larger == 0:
        return 0.0
    return abs(larger - smaller) / larger * 100


def synthesize_missing_amounts(invoice: Invoice) -> list[str]:
    """Derive a single missing amount from the other two, in place.

    Args:
        invoice: Invoice to update

    Returns:
        One explanatory warning per derived field
    """
    warnings = []
    if invoice.gross_amount == 0 and invoice.net_amount != 0 and invoice.vat_amount != 0:
        invoice.gross_amount = invoice.net_amount + invoice.vat_amount
        warnings.append("Gross amount calculated from Net + VAT")
    if invoice.net_amount == 0 and invoice.gross_amount != 0 and invoice.vat_amount != 0:
        invoice.net_amount = invoice.gross_amount - invoice.vat_amount
        warnings.append("Net amount calculated from Gross - VAT")
    if invoice.vat_amount == 0 and invoice.gross_amount != 0 and invoice.net_amount != 0:
        invoice.vat_amount = invoice.gross_amount - invoice.net_amount
        warnings.append("VAT amount calculated from Gross - Net")
    return warnings


class AmountReconciler:
    """Selects final amounts from two independently extracted sources.

    The first source (document extraction) wins while the sources agree within
    ``discrepancy_pct``; beyond that the more confident source wins, ties going
    to the first source.
    """

    def __init__(self, discrepancy_threshold_pct: float = 5.0, tolerance_cents: int = 2) -> None:
        """Initialize reconciler.

        Args:
            discrepancy_threshold_pct: Agreement threshold in percent
            tolerance_cents: Allowed gap for the net + vat = gross identity
        """
        self.discrepancy_threshold_pct = discrepancy_threshold_pct
        self.tolerance_cents = tolerance_cents

    def reconcile(
        self, source_a: AmountSource, source_b: AmountSource, invoice: Invoice
    ) -> AmountReconciliation:
        """Merge two amount sources into a copy of the invoice.

        Args:
            source_a: Document extraction amounts
            source_b: Generative completion amounts
            invoice: Invoice whose non-amount fields are kept as-is

        Returns:
            AmountReconciliation with the final invoice and findings
        """
        final = invoice.model_copy(deep=True)
        result = AmountReconciliation(invoice=final)

        for field in AMOUNT_FIELDS:
            value = self._select(field, source_a, source_b, result)
            setattr(final, field, value)

        self._cross_validate(result)
        result.warnings.extend(synthesize_missing_amounts(final))
        return result

    def _select(
        self,
        field: str,
        source_a: AmountSource,
        source_b: AmountSource,
        result: AmountReconciliation,
    ) -> int:
        a = getattr(source_a, field)
        b = getattr(source_b, field)

        if a != 0 and b != 0:
            pct = discrepancy_pct(a, b)
            result.max_discrepancy_pct = max(result.max_discrepancy_pct, pct)
            if pct <= self.discrepancy_threshold_pct:
                return a

            label = _FIELD_LABELS[field]
            result.warnings.append(
                f"{label} amount discrepancy: {source_a.source}={a / 100:.2f}, "
                f"{source_b.source}={b / 100:.2f} ({pct:.1f}% difference)"
            )
            result.has_discrepancy = True
            return b if source_b.confidence > source_a.confidence else a

        if a != 0:
            return a
        return b

    def _cross_validate(self, result: AmountReconciliation) -> None:
        invoice = result.invoice
        # A zero leg is missing rather than wrong; synthesis handles it.
        if invoice.net_amount == 0 or invoice.vat_amount == 0 or invoice.gross_amount == 0:
            return

        expected = invoice.net_amount + invoice.vat_amount
        gap = abs(expected - invoice.gross_amount)
        if gap > self.tolerance_cents:
            result.warnings.append(
                f"Amount calculation error: Net({format_amount(invoice.net_amount)}) + "
                f"VAT({format_amount(invoice.vat_amount)}) = {format_amount(expected)}, "
                f"but Gross={format_amount(invoice.gross_amount)} "
                f"(difference: {format_amount(gap)})"
            )
            result.has_discrepancy = True
