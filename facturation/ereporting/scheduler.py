"""Périodes et échéances e-reporting (mensuel ou trimestriel)."""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional

from ..fiscal_calendar import (
    ReportingFrequency,
    ReportingPeriod,
    next_deadline,
    period_label,
    reporting_period_for,
)


class EReportingScheduler:
    def __init__(self, frequency: ReportingFrequency = ReportingFrequency.MONTHLY) -> None:
        self.frequency = frequency

    def _freq(self, frequency: Optional[ReportingFrequency]) -> ReportingFrequency:
        return frequency or self.frequency

    def current_period(
        self, d: date, frequency: Optional[ReportingFrequency] = None
    ) -> ReportingPeriod:
        return reporting_period_for(d, self._freq(frequency))

    def previous_period(
        self, d: date, frequency: Optional[ReportingFrequency] = None
    ) -> ReportingPeriod:
        current = self.current_period(d, frequency)
        return self.current_period(current.start - timedelta(days=1), frequency)

    @staticmethod
    def deadline_for_period(period_end: date) -> date:
        return next_deadline(period_end)

    def pending_periods(
        self,
        last_submitted_end: date,
        today: date,
        frequency: Optional[ReportingFrequency] = None,
    ) -> List[ReportingPeriod]:
        """Périodes closes depuis la dernière déclaration, période en cours exclue."""

        current = self.current_period(today, frequency)
        periods: List[ReportingPeriod] = []
        check = last_submitted_end + timedelta(days=1)
        while check < current.start:
            period = self.current_period(check, frequency)
            periods.append(period)
            check = period.end + timedelta(days=1)
        return periods

    def is_overdue(self, period_end: date, today: date) -> bool:
        return today > self.deadline_for_period(period_end)

    def days_until_deadline(self, period_end: date, today: date) -> int:
        return (self.deadline_for_period(period_end) - today).days

    def period_for_date(
        self, d: date, frequency: Optional[ReportingFrequency] = None
    ) -> ReportingPeriod:
        return self.current_period(d, frequency)

    def period_label(
        self,
        start: date,
        frequency: Optional[ReportingFrequency] = None,
        locale: str = "fr",
    ) -> str:
        return period_label(start, self._freq(frequency), locale)


__all__ = ["EReportingScheduler"]
