"""Completeness and post-completion checks for invoice records.

Pure functions: no I/O and no logging. Callers decide what to do with the
results.
"""

from bookkeeping.invoice.schema import Invoice, InvoiceType

ALWAYS_REQUIRED = (
    "invoice_number",
    "vendor",
    "type",
    "issue_date",
    "gross_amount",
    "currency",
)
STRICT_REQUIRED = ("customer", "due_date", "net_amount")


def _is_missing(invoice: Invoice, field: str) -> bool:
    if field == "type":
        return invoice.type not in (InvoiceType.PAYABLE, InvoiceType.RECEIVABLE)
    if field in ("gross_amount", "net_amount"):
        return getattr(invoice, field) <= 0
    if field in ("issue_date", "due_date"):
        return getattr(invoice, field) is None
    return not getattr(invoice, field).strip()


def check_completeness(
    invoice: Invoice, require_all_fields: bool = False
) -> tuple[bool, list[str]]:
    """Determine which required fields an invoice lacks.

    Args:
        invoice: Invoice to inspect
        require_all_fields: Strict policy, additionally requiring customer,
            due date and a positive net amount

    Returns:
        Tuple of (is_complete, missing field names in a fixed order)
    """
    fields = ALWAYS_REQUIRED + STRICT_REQUIRED if require_all_fields else ALWAYS_REQUIRED
    missing = [field for field in fields if _is_missing(invoice, field)]
    return not missing, missing


def validate_completed_invoice(invoice: Invoice) -> list[str]:
    """Check a completed invoice for hard failures.

    Negative net or gross amounts (credit notes) are permitted.

    Args:
        invoice: Invoice after merging completion results

    Returns:
        List of problems; empty when the invoice is acceptable
    """
    problems = []
    if invoice.type not in (InvoiceType.PAYABLE, InvoiceType.RECEIVABLE):
        problems.append(f"invalid invoice type: {invoice.type!r}")
    if invoice.net_amount == 0 and invoice.vat_amount == 0 and invoice.gross_amount == 0:
        problems.append("no amount information found after completion")
    return problems


def is_credit_note(invoice: Invoice) -> bool:
    """Negative net or gross marks a credit note or refund."""
    return invoice.net_amount < 0 or invoice.gross_amount < 0
