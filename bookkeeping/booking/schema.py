"""DATEV booking proposal model."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class DATEVBooking(BaseModel):
    """Proposed DATEV booking line for one invoice.

    Accounts follow the SKR03 chart of accounts. The proposal is meant for
    human review before import.
    """

    booking_text: str = Field(..., max_length=60, description="Buchungstext")
    debit_account: str = Field(..., description="Sollkonto (4 digits)")
    credit_account: str = Field(..., description="Habenkonto (4 digits)")
    amount: Decimal = Field(..., description="Gross amount in major currency units")
    currency: str = "EUR"
    tax_key: str = Field(..., description="DATEV Steuerschlüssel")
    cost_center: str = ""
    booking_date: date
    document_number: str = ""
    accounting_period: str = Field(..., description="MMYYYY")
    explanation: str = ""
    debit_account_name: str = ""
    credit_account_name: str = ""
    tax_key_description: str = ""
    reasoning: dict[str, str] = {}
    generated_at: datetime
    chart_of_accounts: str = "SKR03"
