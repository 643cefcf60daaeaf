"""Fiscal calendar: fiscal years, reporting periods and deadlines."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from facturation.exceptions import FiscalConfigError
from facturation.fiscal_calendar import (
    FiscalYearConfig,
    ReportingFrequency,
    add_months,
    fiscal_year_bounds,
    fiscal_year_of,
    next_deadline,
    period_bounds,
    period_label,
    reporting_period_for,
)


@pytest.mark.parametrize(
    ("day", "start_month", "start_day", "expected"),
    [
        (date(2025, 1, 1), 1, 1, 2025),
        (date(2025, 12, 31), 1, 1, 2025),
        (date(2024, 10, 31), 11, 1, 2023),
        (date(2024, 11, 1), 11, 1, 2024),
        (date(2025, 3, 31), 4, 1, 2024),
        (date(2025, 4, 1), 4, 1, 2025),
        (date(2025, 7, 14), 7, 15, 2024),
    ],
)
def test_fiscal_year_of(day: date, start_month: int, start_day: int, expected: int) -> None:
    assert fiscal_year_of(day, start_month, start_day) == expected


def test_fiscal_year_bounds_calendar_year() -> None:
    assert fiscal_year_bounds(2025) == (date(2025, 1, 1), date(2025, 12, 31))


def test_fiscal_year_bounds_straddling_year() -> None:
    assert fiscal_year_bounds(2024, 11, 1) == (date(2024, 11, 1), date(2025, 10, 31))


def test_fiscal_year_bounds_contain_every_day_of_the_year() -> None:
    # Arrange
    config = FiscalYearConfig(4, 1)
    start, end = config.bounds(2024)

    # Act & Assert
    assert config.fiscal_year_of(start) == 2024
    assert config.fiscal_year_of(end) == 2024
    assert config.fiscal_year_of(date(2025, 4, 1)) == 2025
    assert (end - start).days == 364


@pytest.mark.parametrize(
    ("start_month", "start_day"),
    [(1, 1), (4, 1), (11, 1), (7, 15), (8, 31)],
)
def test_every_day_falls_inside_its_fiscal_year(start_month: int, start_day: int) -> None:
    day = date(2023, 1, 1)
    while day <= date(2025, 12, 31):
        fiscal_year = fiscal_year_of(day, start_month, start_day)
        start, end = fiscal_year_bounds(fiscal_year, start_month, start_day)
        next_start, _ = fiscal_year_bounds(fiscal_year + 1, start_month, start_day)

        assert start <= day <= end, (day, fiscal_year)
        assert next_start == end + timedelta(days=1)
        day += timedelta(days=1)


def test_add_months_clamps_to_month_end() -> None:
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)
    assert add_months(date(2025, 3, 31), -1) == date(2025, 2, 28)


@pytest.mark.parametrize(
    ("month", "day"),
    [(0, 1), (13, 1), (1, 0), (1, 32), (2, 29), (2, 30), (4, 31)],
)
def test_invalid_fiscal_start_is_rejected(month: int, day: int) -> None:
    with pytest.raises(FiscalConfigError):
        FiscalYearConfig(month, day)


def test_monthly_period_and_deadline() -> None:
    # Act
    period = reporting_period_for(date(2025, 2, 14), ReportingFrequency.MONTHLY)

    # Assert
    assert period.start == date(2025, 2, 1)
    assert period.end == date(2025, 2, 28)
    assert period.deadline == date(2025, 3, 31)
    assert period.contains(date(2025, 2, 28))
    assert not period.contains(date(2025, 3, 1))


@pytest.mark.parametrize("day", [1, 15, 28])
def test_monthly_period_ends_on_the_last_day_of_february(day: int) -> None:
    assert period_bounds(date(2024, 2, day), ReportingFrequency.MONTHLY) == (
        date(2024, 2, 1),
        date(2024, 2, 29),
    )
    assert period_bounds(date(2025, 2, day), ReportingFrequency.MONTHLY) == (
        date(2025, 2, 1),
        date(2025, 2, 28),
    )


def test_leap_day_closes_its_monthly_period() -> None:
    period = reporting_period_for(date(2024, 2, 29), ReportingFrequency.MONTHLY)

    assert (period.start, period.end) == (date(2024, 2, 1), date(2024, 2, 29))
    assert period.deadline == date(2024, 3, 31)


def test_quarterly_period_and_deadline() -> None:
    start, end = period_bounds(date(2025, 11, 5), ReportingFrequency.QUARTERLY)

    assert (start, end) == (date(2025, 10, 1), date(2025, 12, 31))
    assert next_deadline(end) == date(2026, 1, 31)


def test_deadline_is_end_of_following_month() -> None:
    assert next_deadline(date(2024, 1, 31)) == date(2024, 2, 29)
    assert next_deadline(date(2025, 3, 31)) == date(2025, 4, 30)


def test_period_labels_in_french_and_english() -> None:
    assert period_label(date(2025, 3, 1), ReportingFrequency.MONTHLY) == "Mars 2025"
    assert period_label(date(2025, 3, 1), ReportingFrequency.MONTHLY, "en") == "March 2025"
    assert period_label(date(2025, 4, 1), ReportingFrequency.QUARTERLY) == "T2 2025"
    assert period_label(date(2025, 4, 1), ReportingFrequency.QUARTERLY, "en") == "Q2 2025"


def test_frequency_properties() -> None:
    assert ReportingFrequency.MONTHLY.months_interval == 1
    assert ReportingFrequency.QUARTERLY.months_interval == 3
    assert ReportingFrequency.QUARTERLY.label == "Trimestriel"
