"""Final match decision for a candidate shortlist.

The matching engine narrows transactions down by amount and date; the
classifier decides which candidate, if any, is the payment of the invoice.
"""

import json
import logging
import threading
from datetime import date
from typing import Protocol

from bookkeeping.invoice.schema import Invoice
from bookkeeping.llm.base import GenerativeClient
from bookkeeping.llm.json_response import coerce_float, coerce_str, parse_json_object
from bookkeeping.reconciliation.schema import MatchDecision, TransactionCandidate
from bookkeeping.shared.config import Settings

logger = logging.getLogger(__name__)


class MatchClassifier(Protocol):
    """Decides which shortlist entry pays an invoice."""

    def classify(
        self,
        invoice: Invoice,
        candidates: list[TransactionCandidate],
        cancel_event: threading.Event | None = None,
    ) -> MatchDecision: ...


def _date(value: date | None) -> str:
    return value.strftime("%d.%m.%Y") if value else ""


def build_match_prompt(invoice: Invoice, candidates: list[TransactionCandidate]) -> str:
    """German prompt with the invoice and candidate transactions as JSON."""
    invoice_json = json.dumps(
        {
            "rechnungsnummer": invoice.invoice_number,
            "datum": _date(invoice.issue_date),
            "lieferant_kunde": invoice.counterparty,
            "netto": invoice.net_amount / 100,
            "mwst": invoice.vat_amount / 100,
            "brutto": invoice.gross_amount / 100,
            "waehrung": invoice.currency,
            "typ": invoice.type.value if invoice.type else "",
        },
        ensure_ascii=False,
        indent=2,
    )
    candidates_json = json.dumps(
        [
            {
                "datum": _date(c.transaction.date),
                "transaktionstyp": c.transaction.type,
                "beschreibung": c.transaction.description,
                "empfaenger_absender": c.transaction.counterparty,
                "betrag": float(c.transaction.amount),
                "verwendungszweck": c.transaction.svwz,
                "eref": c.transaction.eref,
                "mref": c.transaction.mref,
                "iban": c.transaction.iban,
                "bic": c.transaction.bic,
            }
            for c in candidates
        ],
        ensure_ascii=False,
        indent=2,
    )
    return f"""Prüfe, ob eine dieser Banktransaktionen zur Rechnung passt:

RECHNUNG:
{invoice_json}

MÖGLICHE TRANSAKTIONEN (Index ab 0):
{candidates_json}

Kriterien:
1. Stimmt der Betrag überein (kleine Toleranz für Rundungsfehler)?
2. Passt das Datum (Rechnung vor oder am Tag der Transaktion)?
3. Stimmt Empfänger/Absender mit Lieferant/Kunde überein?
4. Gibt der Verwendungszweck Hinweise auf die Rechnung?

Antworte nur mit JSON:
{{
  "matched": true,
  "transaction_index": 0,
  "confidence": 0.95,
  "reason": "Betrag und Lieferant stimmen überein"
}}

Wenn keine Transaktion passt: "matched": false und "transaction_index": -1."""


def decode_decision(payload: dict) -> MatchDecision:
    """Decode a classifier response, tolerating loose types."""
    matched = payload.get("matched")
    if isinstance(matched, str):
        matched = matched.strip().lower() == "true"
    index = payload.get("transaction_index")
    try:
        index = int(index) if index is not None and not isinstance(index, bool) else -1
    except (TypeError, ValueError):
        index = -1
    return MatchDecision(
        matched=bool(matched),
        transaction_index=index,
        confidence=coerce_float(payload.get("confidence"), 0.0),
        reason=coerce_str(payload.get("reason")),
    )


class LLMMatchClassifier:
    """Match classifier backed by a generative provider.

    Raises GenerativeError or ResponseParseError on failure; the matching
    engine treats both as "no match".
    """

    def __init__(self, settings: Settings, client: GenerativeClient) -> None:
        """Initialize classifier.

        Args:
            settings: Application settings
            client: Generative provider
        """
        self.settings = settings
        self.client = client

    def classify(
        self,
        invoice: Invoice,
        candidates: list[TransactionCandidate],
        cancel_event: threading.Event | None = None,
    ) -> MatchDecision:
        """Ask the provider which candidate pays the invoice.

        Args:
            invoice: Invoice to match
            candidates: Score-ranked shortlist
            cancel_event: Passed to the generative client to stop its retries

        Returns:
            MatchDecision with an index into ``candidates``
        """
        logger.debug(
            f"Classifying invoice {invoice.invoice_number or '?'} "
            f"against {len(candidates)} candidate(s)"
        )
        raw = self.client.complete(
            "",
            build_match_prompt(invoice, candidates),
            self.settings.llm_temperature,
            self.settings.llm_max_tokens,
            cancel_event=cancel_event,
        )
        return decode_decision(parse_json_object(raw))
