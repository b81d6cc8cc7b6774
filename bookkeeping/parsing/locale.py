"""Parsing of German-locale amounts, dates and currency labels.

Invoices and bank exports in this domain are mostly German formatted. English
and ISO forms are accepted as fallbacks but German convention wins when a
string is ambiguous: with both separators present, "." groups thousands.

All functions are pure and never log. Failures raise ParseError subclasses.
"""

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# Tried in order; the first successful format wins.
DATE_FORMATS = ("%d.%m.%Y", "%d.%m.%y", "%Y-%m-%d")

_CURRENCY_MARKERS = re.compile(r"€|\$|£|¥|EUR|USD|GBP|CHF|JPY", re.IGNORECASE)
_MAGNITUDE = re.compile(r"^(?:\d+(?:\.\d*)?|\.\d+)$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_CURRENCY_ALIASES = {
    "€": "EUR",
    "EUR": "EUR",
    "EURO": "EUR",
    "EUROS": "EUR",
    "$": "USD",
    "US$": "USD",
    "USD": "USD",
    "DOLLAR": "USD",
    "DOLLARS": "USD",
    "£": "GBP",
    "GBP": "GBP",
    "POUND": "GBP",
    "POUNDS": "GBP",
    "¥": "JPY",
    "JPY": "JPY",
    "YEN": "JPY",
    "CHF": "CHF",
    "FRANKEN": "CHF",
    "SWISS FRANC": "CHF",
}


class ParseError(ValueError):
    """Input text could not be parsed."""

    def __init__(self, kind: str, text: str, reason: str) -> None:
        self.kind = kind
        self.text = text
        self.reason = reason
        super().__init__(f"cannot parse {kind} {text!r}: {reason}")


class AmountParseError(ParseError):
    """Amount text is not numeric after cleaning."""

    def __init__(self, text: str, reason: str) -> None:
        super().__init__("amount", text, reason)


class DateParseError(ParseError):
    """Date text matches none of the accepted formats."""

    def __init__(self, text: str, reason: str) -> None:
        super().__init__("date", text, reason)


def parse_amount(text: str) -> int:
    """Parse an amount string into integer cents.

    Currency symbols, codes and whitespace are stripped first. Separator rules:
    both "." and "," present means "1.234,56" (dots removed, comma is the
    decimal point); only "," followed by one or two digits means a decimal
    comma; anything else is parsed as-is.

    Args:
        text: Amount as found on an invoice or bank export

    Returns:
        Signed amount in cents, rounded half up

    Raises:
        AmountParseError: If the cleaned string is not numeric
    """
    cleaned = _CURRENCY_MARKERS.sub("", text or "")
    cleaned = "".join(cleaned.split())
    if not cleaned:
        raise AmountParseError(text, "empty amount")

    negative = cleaned.startswith("-")
    magnitude = cleaned.lstrip("+-")

    if "." in magnitude and "," in magnitude:
        magnitude = magnitude.replace(".", "").replace(",", ".")
    elif "," in magnitude:
        parts = magnitude.split(",")
        if len(parts) == 2 and 1 <= len(parts[1]) <= 2:
            magnitude = f"{parts[0]}.{parts[1]}"

    if not _MAGNITUDE.match(magnitude):
        raise AmountParseError(text, "not a number")

    try:
        value = Decimal(magnitude)
    except InvalidOperation as e:
        raise AmountParseError(text, str(e)) from e

    cents = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return -cents if negative else cents


def parse_date(text: str) -> date:
    """Parse a German or ISO date.

    Accepts "02.01.2024", "2.1.2024", "02.01.24", "2.1.24" and "2024-01-02".

    Args:
        text: Date string

    Returns:
        Calendar date

    Raises:
        DateParseError: If the input is empty or matches no format
    """
    candidate = (text or "").strip()
    if not candidate:
        raise DateParseError(text, "empty date")

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue

    raise DateParseError(text, "unsupported date format")


def parse_iso_date(text: str) -> date:
    """Parse a strict YYYY-MM-DD date as returned by the generative provider.

    Raises:
        DateParseError: If the input is not a zero-padded ISO date
    """
    candidate = (text or "").strip()
    if not _ISO_DATE.match(candidate):
        raise DateParseError(text, "expected YYYY-MM-DD")
    try:
        return date.fromisoformat(candidate)
    except ValueError as e:
        raise DateParseError(text, str(e)) from e


def normalize_currency(value: str, home_currency: str = "EUR") -> str:
    """Map a currency symbol or alias to its ISO code.

    Unknown three-letter codes pass through; anything else becomes the home
    currency.

    Args:
        value: Currency as extracted ("€", "euro", "usd", "CHF")
        home_currency: Fallback code

    Returns:
        Upper-case three-letter currency code
    """
    key = " ".join((value or "").upper().split())
    if not key:
        return home_currency
    if key in _CURRENCY_ALIASES:
        return _CURRENCY_ALIASES[key]
    if len(key) == 3 and key.isalpha():
        return key
    return home_currency


def format_amount(cents: int) -> str:
    """Format cents German style: 123456 -> "1.234,56"."""
    sign = "-" if cents < 0 else ""
    whole, fraction = divmod(abs(cents), 100)
    grouped = f"{whole:,}".replace(",", ".")
    return f"{sign}{grouped},{fraction:02d}"


def cents_from_decimal(value: Decimal | float | int) -> int:
    """Convert a major-unit amount to cents, rounding half up."""
    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
