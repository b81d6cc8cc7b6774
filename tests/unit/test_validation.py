"""Unit tests for invoice completeness and post-completion checks."""

from datetime import date

import pytest

from bookkeeping.invoice.schema import Invoice, InvoiceType
from bookkeeping.invoice.validation import (
    ALWAYS_REQUIRED,
    check_completeness,
    is_credit_note,
    validate_completed_invoice,
)


@pytest.fixture
def lenient_complete_invoice() -> Invoice:
    """Invoice with all always-required fields but no customer or due date."""
    return Invoice(
        invoice_number="INV-1",
        type=InvoiceType.PAYABLE,
        vendor="Acme GmbH",
        issue_date=date(2024, 3, 1),
        gross_amount=11900,
        net_amount=10000,
        currency="EUR",
    )


def test_empty_invoice_missing_all_required_in_order() -> None:
    """Test missing fields are reported in a fixed order."""
    is_complete, missing = check_completeness(Invoice())

    assert is_complete is False
    assert missing == list(ALWAYS_REQUIRED)


def test_missing_customer_and_due_date_lenient(lenient_complete_invoice: Invoice) -> None:
    """Test customer and due date are not required under the lenient policy."""
    is_complete, missing = check_completeness(lenient_complete_invoice)

    assert is_complete is True
    assert missing == []


def test_missing_customer_and_due_date_strict(lenient_complete_invoice: Invoice) -> None:
    """Test customer and due date are required under the strict policy."""
    is_complete, missing = check_completeness(lenient_complete_invoice, require_all_fields=True)

    assert is_complete is False
    assert missing == ["customer", "due_date"]


def test_strict_requires_positive_net(lenient_complete_invoice: Invoice) -> None:
    """Test a zero net amount is missing under the strict policy."""
    invoice = lenient_complete_invoice.model_copy(
        update={"customer": "Muster GmbH", "due_date": date(2024, 4, 1), "net_amount": 0}
    )

    _, missing = check_completeness(invoice, require_all_fields=True)

    assert missing == ["net_amount"]


def test_non_positive_gross_is_missing(lenient_complete_invoice: Invoice) -> None:
    """Test gross amount must be positive to count as present."""
    invoice = lenient_complete_invoice.model_copy(update={"gross_amount": 0})

    _, missing = check_completeness(invoice)

    assert missing == ["gross_amount"]


def test_blank_strings_are_missing(lenient_complete_invoice: Invoice) -> None:
    """Test whitespace-only text fields count as missing."""
    invoice = lenient_complete_invoice.model_copy(update={"vendor": "  ", "currency": ""})

    _, missing = check_completeness(invoice)

    assert missing == ["vendor", "currency"]


def test_validate_completed_invoice_accepts_credit_note(
    lenient_complete_invoice: Invoice,
) -> None:
    """Test negative amounts pass post-validation."""
    invoice = lenient_complete_invoice.model_copy(
        update={"net_amount": -10000, "gross_amount": -11900}
    )

    assert validate_completed_invoice(invoice) == []
    assert is_credit_note(invoice) is True


def test_validate_completed_invoice_rejects_missing_type() -> None:
    """Test a completed invoice without a valid type is rejected."""
    problems = validate_completed_invoice(Invoice(gross_amount=100))

    assert len(problems) == 1
    assert "invalid invoice type" in problems[0]


def test_validate_completed_invoice_rejects_all_zero_amounts() -> None:
    """Test an invoice without any amount is rejected."""
    problems = validate_completed_invoice(Invoice(type=InvoiceType.RECEIVABLE))

    assert problems == ["no amount information found after completion"]


def test_invoice_type_parse() -> None:
    """Test raw type values map to members or None."""
    assert InvoiceType.parse("payable") == InvoiceType.PAYABLE
    assert InvoiceType.parse(" RECEIVABLE ") == InvoiceType.RECEIVABLE
    assert InvoiceType.parse("INVOICE") is None
    assert InvoiceType.parse(None) is None


def test_counterparty_follows_type() -> None:
    """Test counterparty is the vendor for payables and the customer for receivables."""
    invoice = Invoice(vendor="Acme GmbH", customer="Muster GmbH", type=InvoiceType.PAYABLE)
    assert invoice.counterparty == "Acme GmbH"

    invoice.type = InvoiceType.RECEIVABLE
    assert invoice.counterparty == "Muster GmbH"
