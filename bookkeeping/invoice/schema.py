"""Invoice data models shared by completion, booking and reconciliation.

Monetary values are integer cents. Dates are calendar dates without time of day.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class InvoiceType(str, Enum):
    """Invoice direction relative to the organization owning the books."""

    PAYABLE = "PAYABLE"  # we owe a vendor
    RECEIVABLE = "RECEIVABLE"  # a customer owes us

    @classmethod
    def parse(cls, value: object) -> "InvoiceType | None":
        """Return the matching member for a raw value, None if it is not one."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                return None
        return None


class Invoice(BaseModel):
    """Canonical invoice record.

    Built empty or partially populated by document extraction, then filled
    field by field during completion. Fields already present are never
    overwritten by completion.
    """

    id: str = Field("", description="Opaque identifier")
    invoice_number: str = Field("", description="Human-readable invoice number")
    type: InvoiceType | None = Field(None, description="PAYABLE or RECEIVABLE")

    vendor: str = Field("", description="Supplier name")
    customer: str = Field("", description="Customer name")

    issue_date: date | None = Field(None, description="Date the invoice was issued")
    due_date: date | None = Field(None, description="Payment due date")
    payment_date: date | None = Field(None, description="Date the invoice was paid")

    net_amount: int = Field(0, description="Amount before tax in cents")
    vat_amount: int = Field(0, description="Tax amount in cents")
    gross_amount: int = Field(0, description="Total amount in cents")
    currency: str = Field("", description="ISO 4217 currency code")

    is_paid: bool = False
    reference: str = Field("", description="Purchase order or reference number")
    description: str = Field("", description="Short description of the invoice")
    accounting_summary: str = Field(
        "", description="Narrative of billed goods or services with a booking category"
    )

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def counterparty(self) -> str:
        """Vendor for payables, customer for receivables."""
        if self.type == InvoiceType.RECEIVABLE:
            return self.customer or self.vendor
        return self.vendor or self.customer


class AmountSource(BaseModel):
    """One extraction pass's view of the three amounts.

    Attributes:
        net_amount: Net amount in cents (0 when unknown)
        vat_amount: Tax amount in cents (0 when unknown)
        gross_amount: Gross amount in cents (0 when unknown)
        source: Tag identifying the extraction source
        confidence: Source confidence in [0, 1]
    """

    net_amount: int = 0
    vat_amount: int = 0
    gross_amount: int = 0
    source: str
    confidence: float = Field(0.0, ge=0.0, le=1.0)
