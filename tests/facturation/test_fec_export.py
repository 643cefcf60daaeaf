"""FEC export: 18 columns, balanced entries, credit notes and lettering."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.engine import Engine

from facturation.dto import Party, Payment
from facturation.enums import InvoiceStatus, InvoiceType
from facturation.fec import (
    HEADER_COLUMNS,
    FecAccounts,
    FecExporter,
    customer_aux_code,
    export_range,
    fec_filename,
    format_amount,
    lettrage_code,
    line_balance,
)
from facturation.repository import InvoiceRepository
from facturation.samples import CONSUMER_PARTY, SCENARIOS, build_sample_invoice


def _finalized(scenario_index: int, number: str, issue_date: date, **kwargs):
    invoice = build_sample_invoice(SCENARIOS[scenario_index], issue_date=issue_date, **kwargs)
    invoice.number = number
    invoice.fiscal_year = issue_date.year
    invoice.status = InvoiceStatus.FINALIZED
    return invoice


def _rows(content: str) -> list[list[str]]:
    return [line.split("|") for line in content.splitlines()[1:]]


def test_invoice_entry_columns_and_accounts() -> None:
    # Arrange
    invoice = _finalized(2, "FA-2025-0001", date(2025, 3, 14))

    # Act
    content = FecExporter(FecAccounts()).export([invoice])

    # Assert
    header, *_ = content.splitlines()
    assert header.split("|") == list(HEADER_COLUMNS)
    rows = _rows(content)
    assert all(len(row) == 18 for row in rows)
    assert [(r[4], r[11], r[12]) for r in rows] == [
        ("411000", "186,00", "0,00"),
        ("707000", "0,00", "160,00"),
        ("445712", "0,00", "6,00"),
        ("445710", "0,00", "20,00"),
    ]
    assert {r[2] for r in rows} == {"000001"}
    assert rows[0][3] == rows[0][9] == "20250314"
    assert rows[0][6] == "55208131766522"
    assert rows[0][8] == "FA-2025-0001"


def test_credit_note_reverses_sides() -> None:
    credit_note = _finalized(
        0,
        "AV-2025-0001",
        date(2025, 3, 20),
        type=InvoiceType.CREDIT_NOTE,
        credited_invoice_number="FA-2025-0001",
    )

    rows = _rows(FecExporter(FecAccounts()).export([credit_note]))

    assert [(r[4], r[11], r[12]) for r in rows] == [
        ("411000", "0,00", "120,00"),
        ("707000", "100,00", "0,00"),
        ("445710", "20,00", "0,00"),
    ]
    assert rows[0][10] == "Avoir AV-2025-0001"


def test_payments_are_lettered_on_bank_journal() -> None:
    # Arrange
    paid = _finalized(0, "FA-2025-0001", date(2025, 3, 1))
    paid.record_payment(Payment(Decimal("120"), date(2025, 3, 31)))
    unpaid = _finalized(0, "FA-2025-0002", date(2025, 3, 2))
    second_paid = _finalized(0, "FA-2025-0003", date(2025, 3, 3))
    second_paid.record_payment(Payment(Decimal("120"), date(2025, 4, 2)))

    # Act
    content = FecExporter(FecAccounts()).export([paid, unpaid, second_paid])

    # Assert
    rows = _rows(content)
    bank_rows = [r for r in rows if r[0] == "BQ"]
    assert [(r[4], r[11], r[12], r[13]) for r in bank_rows] == [
        ("512000", "120,00", "0,00", ""),
        ("411000", "0,00", "120,00", "A"),
        ("512000", "120,00", "0,00", ""),
        ("411000", "0,00", "120,00", "B"),
    ]
    customer_rows = [r for r in rows if r[0] == "VT" and r[4] == "411000"]
    assert [(r[8], r[13], r[14]) for r in customer_rows] == [
        ("FA-2025-0001", "A", "20250331"),
        ("FA-2025-0002", "", ""),
        ("FA-2025-0003", "B", "20250402"),
    ]
    assert all(balance == Decimal("0") for balance in line_balance(content).values())
    assert len({r[2] for r in rows}) == 5


def test_every_sample_entry_balances() -> None:
    invoices = [
        _finalized(i, f"FA-2025-{i + 1:04d}", date(2025, 5, 1 + i)) for i in range(len(SCENARIOS))
    ]

    balances = line_balance(FecExporter(FecAccounts()).export(invoices))

    assert len(balances) == len(SCENARIOS)
    assert set(balances.values()) == {Decimal("0")}


def test_export_range_reads_finalized_documents(engine: Engine) -> None:
    # Arrange
    repository = InvoiceRepository()
    inside = _finalized(0, "FA-2025-0001", date(2025, 6, 30))
    outside = _finalized(0, "FA-2025-0002", date(2025, 7, 1))
    draft = build_sample_invoice(SCENARIOS[0], issue_date=date(2025, 6, 15))
    with engine.begin() as conn:
        for invoice in (inside, outside, draft):
            repository.save(conn, invoice)

    # Act
    with engine.connect() as conn:
        content = export_range(conn, date(2025, 1, 1), date(2025, 6, 30), accounts=FecAccounts())

    # Assert
    assert {r[8] for r in _rows(content)} == {"FA-2025-0001"}


def test_empty_export_is_header_only() -> None:
    assert FecExporter(FecAccounts()).export([]) == "|".join(HEADER_COLUMNS)


@pytest.mark.parametrize(
    ("counter", "code"), [(1, "A"), (26, "Z"), (27, "AA"), (52, "AZ"), (53, "BA"), (703, "AAA")]
)
def test_lettrage_code(counter: int, code: str) -> None:
    assert lettrage_code(counter) == code


def test_formatting_helpers() -> None:
    assert format_amount(Decimal("1234.5")) == "1234,50"
    assert fec_filename("732829320", date(2025, 12, 31)) == "732829320FEC20251231.txt"


def test_customer_aux_code_falls_back_to_name() -> None:
    consumer = _finalized(0, "FA-2025-0001", date(2025, 1, 1), buyer=CONSUMER_PARTY)
    accented = _finalized(
        0,
        "FA-2025-0002",
        date(2025, 1, 1),
        buyer=Party(name="Société Générale d'Équipement Électrique", address=CONSUMER_PARTY.address),
    )

    assert customer_aux_code(consumer) == "JEANNEMARTIN"
    assert customer_aux_code(accented) == "SOCIETEGENERALEDE"
