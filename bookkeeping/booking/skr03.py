"""SKR03 booking proposals via the generative provider."""

import json
import logging
import re
import threading
from datetime import date, datetime, timezone
from decimal import Decimal

from bookkeeping.booking.schema import DATEVBooking
from bookkeeping.invoice.schema import Invoice, InvoiceType
from bookkeeping.llm.base import GenerativeClient
from bookkeeping.llm.json_response import coerce_str, parse_json_object
from bookkeeping.shared.config import Settings
from bookkeeping.shared.errors import (
    BookingError,
    ConfigurationError,
    GenerativeError,
    ResponseParseError,
    raise_if_cancelled,
)

logger = logging.getLogger(__name__)

SUPPORTED_CHARTS = ("03",)
VALID_TAX_KEYS = {"0", "2", "3", "5", "9"}
MAX_BOOKING_TEXT = 60
BOOKING_TEMPERATURE = 0.1
BOOKING_MAX_TOKENS = 1500

_ACCOUNT = re.compile(r"^\d{4}$")

SYSTEM_PROMPT = """Du bist Experte für deutsches Rechnungswesen und DATEV-Buchungen \
nach SKR03 (Standardkontenrahmen 03).

Erstelle für Eingangs- und Ausgangsrechnungen korrekte Buchungssätze.

REGELN:
- Nur gültige, 4-stellige SKR03-Kontonummern
- Eingangsrechnungen (PAYABLE): Aufwand/Anlagen im Soll, Verbindlichkeiten im Haben
- Ausgangsrechnungen (RECEIVABLE): Forderungen im Soll, Erlöse im Haben
- Vorsteuer bzw. Umsatzsteuer passend zum Rechnungstyp
- Buchungstext maximal 60 Zeichen
- Kontenwahl fachlich begründen

SKR03 KONTENBEREICHE:
- 0000-0999: Anlagevermögen
- 1000-1999: Umlaufvermögen
- 2000-2999: Eigenkapital
- 3000-3999: Fremdkapital (Verbindlichkeiten)
- 4000-4999: Betriebliche Erträge
- 5000-7999: Betriebliche Aufwendungen
- 8000-8999: Steuern
- 9000-9999: Nicht betriebliche Erträge/Aufwendungen

STEUERSCHLÜSSEL:
- 0: Steuerfrei
- 9: 19% Vorsteuer (Eingangsrechnungen)
- 3: 19% Umsatzsteuer (Ausgangsrechnungen)
- 5: 7% Vorsteuer
- 2: 7% Umsatzsteuer

Antworte AUSSCHLIESSLICH mit gültigem JSON, ohne Markdown und ohne trailing commas."""


def ensure_supported_chart(chart: str) -> None:
    """Reject chart-of-accounts selectors other than SKR03.

    Raises:
        ConfigurationError: For any unsupported selector
    """
    if chart not in SUPPORTED_CHARTS:
        raise ConfigurationError(
            "booking", f"unsupported chart of accounts SKR{chart} (supported: SKR03)"
        )


def invoice_payload(invoice: Invoice) -> dict:
    """Invoice fields relevant to booking, amounts in major units."""
    return {
        "rechnungsnummer": invoice.invoice_number,
        "typ": invoice.type.value if invoice.type else "",
        "lieferant": invoice.vendor,
        "kunde": invoice.customer,
        "rechnungsdatum": invoice.issue_date.isoformat() if invoice.issue_date else None,
        "netto": invoice.net_amount / 100,
        "mwst": invoice.vat_amount / 100,
        "brutto": invoice.gross_amount / 100,
        "waehrung": invoice.currency,
        "beschreibung": invoice.description,
        "kontierung": invoice.accounting_summary,
    }


class SKR03BookingService:
    """Generates DATEV booking proposals in the SKR03 chart of accounts."""

    def __init__(self, settings: Settings, client: GenerativeClient) -> None:
        """Initialize booking service.

        Args:
            settings: Application settings
            client: Generative provider (usually configured with the booking model)

        Raises:
            ConfigurationError: If settings select an unsupported chart
        """
        ensure_supported_chart(settings.chart_of_accounts)
        self.settings = settings
        self.client = client

    def generate_booking(
        self, invoice: Invoice, cancel_event: threading.Event | None = None
    ) -> DATEVBooking:
        """Propose a booking for a completed invoice.

        Args:
            invoice: Invoice with type and amounts
            cancel_event: Set by the caller to abort before the provider call

        Returns:
            Validated booking proposal

        Raises:
            BookingError: Provider failure or an invalid proposal
        """
        op = "generate_booking"
        raise_if_cancelled(op, cancel_event)

        try:
            raw = self.client.complete(
                SYSTEM_PROMPT,
                self._build_booking_prompt(invoice),
                BOOKING_TEMPERATURE,
                BOOKING_MAX_TOKENS,
                cancel_event=cancel_event,
            )
            payload = parse_json_object(raw)
        except (GenerativeError, ResponseParseError) as e:
            raise BookingError(op, str(e)) from e

        fields = {key: coerce_str(value) for key, value in payload.items()}
        problem = self._validate_response(fields)
        if problem:
            raise BookingError(op, f"invalid booking response: {problem}")

        booking_date = invoice.issue_date or date.today()
        booking_text = fields["buchungstext"][:MAX_BOOKING_TEXT]
        booking = DATEVBooking(
            booking_text=booking_text,
            debit_account=fields["sollkonto"],
            credit_account=fields["habenkonto"],
            amount=Decimal(invoice.gross_amount) / 100,
            currency=invoice.currency or self.settings.home_currency,
            tax_key=fields["steuerschluessel"],
            cost_center=fields.get("kostenstelle", ""),
            booking_date=booking_date,
            document_number=invoice.invoice_number,
            accounting_period=f"{booking_date.month:02d}{booking_date.year}",
            explanation=fields.get("erlaeuterung", ""),
            debit_account_name=fields.get("sollkonto_name", ""),
            credit_account_name=fields.get("habenkonto_name", ""),
            tax_key_description=fields.get("steuerschluessel_beschreibung", ""),
            reasoning={
                "debit": fields.get("begruendung_sollkonto", ""),
                "credit": fields.get("begruendung_habenkonto", ""),
                "tax": fields.get("begruendung_steuer", ""),
            },
            generated_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Booking for {invoice.invoice_number or '?'}: "
            f"{booking.debit_account} an {booking.credit_account}, BU {booking.tax_key}"
        )
        return booking

    def _validate_response(self, fields: dict[str, str]) -> str | None:
        for key, label in (
            ("sollkonto", "debit account (Sollkonto)"),
            ("habenkonto", "credit account (Habenkonto)"),
            ("steuerschluessel", "tax key (Steuerschlüssel)"),
            ("buchungstext", "booking text (Buchungstext)"),
        ):
            if not fields.get(key):
                return f"missing {label}"
        for key in ("sollkonto", "habenkonto"):
            if not _ACCOUNT.match(fields[key]):
                return f"invalid account format: {fields[key]} (must be 4-digit SKR03 account)"
        if fields["steuerschluessel"] not in VALID_TAX_KEYS:
            return f"unknown tax key: {fields['steuerschluessel']}"
        return None

    def _build_booking_prompt(self, invoice: Invoice) -> str:
        lines = [
            "Erstelle einen DATEV-Buchungssatz nach SKR03 für folgende Rechnung.",
            "",
            "Rechnung (JSON):",
            json.dumps(invoice_payload(invoice), ensure_ascii=False, indent=2),
            "",
        ]
        if invoice.type == InvoiceType.PAYABLE:
            lines.append("Dies ist eine EINGANGSRECHNUNG (wir schulden dem Lieferanten Geld).")
        elif invoice.type == InvoiceType.RECEIVABLE:
            lines.append("Dies ist eine AUSGANGSRECHNUNG (der Kunde schuldet uns Geld).")

        lines += [
            "",
            "Gib folgende Buchungsinformationen als JSON zurück:",
            "{",
            '  "sollkonto": "4-stellige SKR03 Kontonummer",',
            '  "sollkonto_name": "Bezeichnung des Sollkontos",',
            '  "habenkonto": "4-stellige SKR03 Kontonummer",',
            '  "habenkonto_name": "Bezeichnung des Habenkontos",',
            '  "steuerschluessel": "Steuerschlüssel (0, 2, 3, 5, 9)",',
            '  "steuerschluessel_beschreibung": "Beschreibung des Steuerschlüssels",',
            '  "buchungstext": "Buchungstext, max. 60 Zeichen",',
            '  "kostenstelle": "Kostenstelle oder leer",',
            '  "erlaeuterung": "Erläuterung der Buchung",',
            '  "begruendung_sollkonto": "Warum dieses Sollkonto",',
            '  "begruendung_habenkonto": "Warum dieses Habenkonto",',
            '  "begruendung_steuer": "Warum dieser Steuerschlüssel"',
            "}",
        ]
        return "\n".join(lines)
