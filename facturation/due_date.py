"""Calcul de l'échéance à partir des conditions de paiement."""

from __future__ import annotations

import re
from datetime import date, timedelta

from .fiscal_calendar import last_day_of_month

_TERMS = re.compile(r"^(\d+) jours (net|fin de mois)$")

DEFAULT_DAYS = 30


class DueDateCalculator:
    """Comprend ``comptant``, ``N jours net`` et ``N jours fin de mois``.

    Toute autre formulation retombe sur 30 jours net.
    """

    def calculate(self, invoice_date: date, payment_terms: str) -> date:
        terms = (payment_terms or "").strip().lower()
        if terms == "comptant":
            return invoice_date

        match = _TERMS.match(terms)
        if match is None:
            return invoice_date + timedelta(days=DEFAULT_DAYS)

        due = invoice_date + timedelta(days=int(match.group(1)))
        if match.group(2) == "fin de mois":
            return last_day_of_month(due)
        return due


__all__ = ["DueDateCalculator", "DEFAULT_DAYS"]
