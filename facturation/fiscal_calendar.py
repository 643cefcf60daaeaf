"""Calendrier fiscal : exercices, périodes de déclaration et échéances.

Fonctions pures, sans I/O. Toute la numérotation et les exports passent par
``fiscal_year_of`` pour rattacher une date à un exercice : c'est l'unique point
de calcul, la séquence et le numéro formaté ne peuvent donc pas diverger.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Tuple

from .exceptions import FiscalConfigError

MONTHS_FR = (
    "Janvier", "Février", "Mars", "Avril", "Mai", "Juin",
    "Juillet", "Août", "Septembre", "Octobre", "Novembre", "Décembre",
)
MONTHS_EN = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


class ReportingFrequency(Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"

    @property
    def months_interval(self) -> int:
        return 3 if self is ReportingFrequency.QUARTERLY else 1

    @property
    def label(self) -> str:
        return "Trimestriel" if self is ReportingFrequency.QUARTERLY else "Mensuel"


def last_day_of_month(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def add_months(d: date, months: int) -> date:
    """Décale de ``months`` mois en bornant au dernier jour du mois cible."""

    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def validate_fiscal_start(start_month: int, start_day: int) -> None:
    if not isinstance(start_month, int) or not 1 <= start_month <= 12:
        raise FiscalConfigError(f"fiscal start month must be 1-12, got {start_month!r}")
    if not isinstance(start_day, int) or not 1 <= start_day <= 31:
        raise FiscalConfigError(f"fiscal start day must be 1-31, got {start_day!r}")
    # 2001 is not a leap year: Feb 29 would not recur every year
    if start_day > calendar.monthrange(2001, start_month)[1]:
        raise FiscalConfigError(
            f"fiscal start {start_month:02d}-{start_day:02d} does not exist every year"
        )


def fiscal_year_of(d: date, start_month: int = 1, start_day: int = 1) -> int:
    """Exercice auquel appartient ``d``.

    >>> fiscal_year_of(date(2024, 10, 31), 11, 1)
    2023
    >>> fiscal_year_of(date(2024, 11, 1), 11, 1)
    2024
    """

    validate_fiscal_start(start_month, start_day)
    start = date(d.year, start_month, start_day)
    return d.year - 1 if d < start else d.year


def fiscal_year_bounds(
    fiscal_year: int, start_month: int = 1, start_day: int = 1
) -> Tuple[date, date]:
    """Premier et dernier jour de l'exercice (bornes incluses)."""

    validate_fiscal_start(start_month, start_day)
    start = date(fiscal_year, start_month, start_day)
    end = add_months(start, 12) - timedelta(days=1)
    return start, end


def period_bounds(d: date, frequency: ReportingFrequency) -> Tuple[date, date]:
    """Mois civil ou trimestre civil contenant ``d``."""

    if frequency is ReportingFrequency.QUARTERLY:
        first_month = 3 * ((d.month - 1) // 3) + 1
        start = date(d.year, first_month, 1)
        end = last_day_of_month(date(d.year, first_month + 2, 1))
    else:
        start = d.replace(day=1)
        end = last_day_of_month(d)
    return start, end


def next_deadline(period_end: date) -> date:
    """Dernier jour du mois qui suit la fin de période."""

    return last_day_of_month(add_months(period_end.replace(day=1), 1))


def period_label(period_start: date, frequency: ReportingFrequency, locale: str = "fr") -> str:
    """Libellé lisible : ``Mars 2025`` / ``T1 2025`` (ou ``March 2025`` / ``Q1 2025``)."""

    if frequency is ReportingFrequency.MONTHLY:
        months = MONTHS_EN if locale == "en" else MONTHS_FR
        return f"{months[period_start.month - 1]} {period_start.year}"
    quarter = (period_start.month - 1) // 3 + 1
    prefix = "Q" if locale == "en" else "T"
    return f"{prefix}{quarter} {period_start.year}"


@dataclass(frozen=True, slots=True)
class ReportingPeriod:
    start: date
    end: date
    deadline: date
    frequency: ReportingFrequency

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end

    def label(self, locale: str = "fr") -> str:
        return period_label(self.start, self.frequency, locale)


def reporting_period_for(d: date, frequency: ReportingFrequency) -> ReportingPeriod:
    start, end = period_bounds(d, frequency)
    return ReportingPeriod(start=start, end=end, deadline=next_deadline(end), frequency=frequency)


@dataclass(frozen=True, slots=True)
class FiscalYearConfig:
    """Début d'exercice d'une société (mois/jour), validé à la construction."""

    start_month: int = 1
    start_day: int = 1

    def __post_init__(self) -> None:
        validate_fiscal_start(self.start_month, self.start_day)

    def fiscal_year_of(self, d: date) -> int:
        return fiscal_year_of(d, self.start_month, self.start_day)

    def bounds(self, fiscal_year: int) -> Tuple[date, date]:
        return fiscal_year_bounds(fiscal_year, self.start_month, self.start_day)

    def bounds_for_date(self, d: date) -> Tuple[date, date]:
        return self.bounds(self.fiscal_year_of(d))


__all__ = [
    "FiscalYearConfig",
    "ReportingFrequency",
    "ReportingPeriod",
    "add_months",
    "fiscal_year_bounds",
    "fiscal_year_of",
    "last_day_of_month",
    "next_deadline",
    "period_bounds",
    "period_label",
    "reporting_period_for",
    "validate_fiscal_start",
]
