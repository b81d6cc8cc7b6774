"""Prompt construction for invoice completion.

Prompts are German: the invoices, the organization and the accounting
conventions (Kontierung, SKR03) are German.
"""

from bookkeeping.invoice.schema import Invoice
from bookkeeping.parsing.locale import format_amount

_FIELD_SCHEMA = {
    "vendor": '"vendor": "Name des Lieferanten/Verkäufers"',
    "customer": '"customer": "Name des Kunden/Rechnungsempfängers"',
    "invoice_number": '"invoice_number": "Rechnungs- oder Belegnummer"',
    "issue_date": '"issue_date": "YYYY-MM-DD"',
    "due_date": '"due_date": "YYYY-MM-DD"',
    "net_amount": '"net_amount": "Nettobetrag als String, z.B. \\"580.00\\""',
    "vat_amount": '"vat_amount": "Steuerbetrag als String"',
    "gross_amount": '"gross_amount": "Bruttobetrag als String"',
    "currency": '"currency": "Währungscode wie EUR, USD"',
    "reference": '"reference": "Bestell- oder Referenznummer"',
    "description": '"description": "Kurze Beschreibung der Rechnung"',
}


def build_system_prompt(company_name: str, aliases: list[str]) -> str:
    """System prompt focusing the model on invoice direction.

    Args:
        company_name: Organization owning the books
        aliases: Alternative names of the organization

    Returns:
        Prompt text
    """
    alias_text = ", ".join(aliases) if aliases else "keine"
    return f"""Du analysierst Rechnungen für {company_name}. \
Deine wichtigste Aufgabe ist die korrekte Bestimmung des Rechnungstyps.

Bestimme, ob diese Rechnung PAYABLE oder RECEIVABLE ist:

PAYABLE (Eingangsrechnung) = WIR MÜSSEN ZAHLEN
- Rechnung VON einem Lieferanten AN unser Unternehmen
- Wir sind Käufer bzw. Rechnungsempfänger
- Die Bankverbindung gehört dem Lieferanten
- Typisch: "Rechnung an", "Bill To" + unser Firmenname

RECEIVABLE (Ausgangsrechnung) = WIR BEKOMMEN GELD
- Rechnung VON unserem Unternehmen AN einen Kunden
- Wir sind Verkäufer bzw. Rechnungssteller
- Die Bankverbindung gehört uns
- Typisch: "From"/"Von" + unser Firmenname

ENTSCHEIDUNGSHILFEN:
1. Wer stellt die Rechnung aus? Wenn wir: RECEIVABLE
2. Wer soll zahlen? Wenn wir: PAYABLE
3. Wessen Bankdaten stehen auf der Rechnung? Wenn unsere: RECEIVABLE

ACCOUNTING SUMMARY: Beschreibe auf Deutsch nur, WELCHE Waren oder Leistungen \
abgerechnet werden (keine Beträge, Daten oder Rechnungsdetails) und ergänze \
einen Kontierungsvorschlag, z.B.:
- "Büromaterial mit Druckerpapier und Toner, Kontierung: Bürobedarf"
- "Monatliche Cloud-Hosting-Gebühren, Kontierung: IT-Infrastruktur/laufende Kosten"

Firmenkontext:
- Unser Unternehmen: {company_name}
- Aliasse: {alias_text}

Antworte AUSSCHLIESSLICH mit gültigem JSON ohne trailing commas:
- null für fehlende Werte
- Beträge im Originalformat als String (z.B. "580.00")
- Datumsangaben als YYYY-MM-DD"""


def build_user_prompt(
    ocr_text: str,
    missing_fields: list[str],
    invoice: Invoice,
    company_name: str,
    aliases: list[str],
) -> str:
    """User prompt listing known data and the fields still needed.

    Type, type confidence, type reasoning and the accounting summary are
    always requested.

    Args:
        ocr_text: Text recognized in the document
        missing_fields: Fields reported missing by the completeness check
        invoice: Partially populated invoice
        company_name: Organization owning the books
        aliases: Alternative names of the organization

    Returns:
        Prompt text
    """
    type_missing = "type" in missing_fields
    lines = ["Analysiere diese Rechnung und extrahiere die fehlenden Informationen:", ""]

    lines.append("Bereits extrahierte Daten:")
    if invoice.vendor:
        lines.append(f"Lieferant: {invoice.vendor}")
        if type_missing:
            lines.append(
                "HINWEIS: Ein Lieferant wurde bereits erkannt, "
                "daher ist dies wahrscheinlich eine PAYABLE Rechnung (Eingangsrechnung)"
            )
    if invoice.customer:
        lines.append(f"Kunde: {invoice.customer}")
        if type_missing:
            lines.append(
                "HINWEIS: Ein Kunde wurde bereits erkannt, "
                "daher ist dies wahrscheinlich eine RECEIVABLE Rechnung (Ausgangsrechnung)"
            )
    if invoice.invoice_number:
        lines.append(f"Rechnungsnummer: {invoice.invoice_number}")
    if invoice.gross_amount > 0:
        lines.append(f"Bruttobetrag: {format_amount(invoice.gross_amount)} {invoice.currency}")

    if type_missing:
        lines += [
            "",
            "FIRMEN-KONTEXT für die Typ-Bestimmung:",
            f"Unser Unternehmen: {company_name}",
        ]
        if aliases:
            lines.append(f"Unsere Aliasse: {', '.join(aliases)}")
        lines.append("Steht unser Name bei 'Bill To'/'Rechnung an', ist es PAYABLE (wir zahlen)")
        lines.append("Steht unser Name bei 'From'/'Von', ist es RECEIVABLE (wir bekommen Geld)")

    lines += ["", "OCR-Text:", ocr_text, ""]

    schema = [
        '"type": "PAYABLE oder RECEIVABLE (ERFORDERLICH)"',
        '"type_confidence": "Konfidenz 0-1 (0.9+ bei eindeutigen Hinweisen)"',
        '"type_reasoning": "Deutsche Begründung mit konkreten Textstellen"',
        '"accounting_summary": "Beschreibung der Waren/Leistungen mit Kontierungsvorschlag"',
    ]
    schema += [_FIELD_SCHEMA[field] for field in missing_fields if field in _FIELD_SCHEMA]

    lines.append("Gib JSON mit diesen Feldern zurück (nur fehlende Felder):")
    lines.append("{")
    lines.append(",\n".join(f"  {entry}" for entry in schema))
    lines.append("}")
    lines.append("")
    lines.append("AUSSCHLIESSLICH gültiges JSON ohne Text davor oder danach!")
    return "\n".join(lines)
