"""Gapless invoice numbering, including concurrent finalizations."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date
from typing import List

import pytest
from sqlalchemy.engine import Engine

from facturation.company import CompanyData
from facturation.enums import InvoiceType
from facturation.exceptions import TransactionRequiredError
from facturation.numbering import InvoiceNumberGenerator, format_invoice_number, generate_number
from facturation.samples import SCENARIOS, build_sample_invoice
from facturation.sequence_store import SequenceStore


def _draft(issue_date: date, **kwargs):
    return build_sample_invoice(SCENARIOS[0], issue_date=issue_date, **kwargs)


def test_format_invoice_number() -> None:
    assert format_invoice_number(InvoiceType.INVOICE, 2025, 42) == "FA-2025-0042"
    assert format_invoice_number(InvoiceType.CREDIT_NOTE, 2025, 7, padding=6) == "AV-2025-000007"
    # no truncation beyond the padding width
    assert format_invoice_number(InvoiceType.INVOICE, 2025, 123456) == "FA-2025-123456"
    with pytest.raises(ValueError):
        format_invoice_number(InvoiceType.INVOICE, 2025, 0)


def test_numbers_are_consecutive(engine: Engine, company: CompanyData) -> None:
    # Arrange
    generator = InvoiceNumberGenerator()

    # Act
    numbers = []
    for _ in range(3):
        invoice = _draft(date(2025, 6, 1))
        with engine.begin() as conn:
            numbers.append(generator.generate(conn, invoice, company))

    # Assert
    assert numbers == ["FA-2025-0001", "FA-2025-0002", "FA-2025-0003"]
    with engine.connect() as conn:
        stored = SequenceStore().get(conn, None, 2025, InvoiceType.INVOICE)
    assert stored.last_number == 3


def test_generate_sets_fiscal_year_but_not_number(engine: Engine, company: CompanyData) -> None:
    invoice = _draft(date(2025, 6, 1))

    with engine.begin() as conn:
        number = generate_number(conn, invoice, company)

    assert number == "FA-2025-0001"
    assert invoice.fiscal_year == 2025
    assert invoice.number is None


def test_invoices_and_credit_notes_have_separate_sequences(
    engine: Engine, company: CompanyData
) -> None:
    generator = InvoiceNumberGenerator()
    invoice = _draft(date(2025, 6, 1))
    credit_note = _draft(
        date(2025, 6, 2), type=InvoiceType.CREDIT_NOTE, credited_invoice_number="FA-2025-0001"
    )

    with engine.begin() as conn:
        first = generator.generate(conn, invoice, company)
        second = generator.generate(conn, credit_note, company)

    assert (first, second) == ("FA-2025-0001", "AV-2025-0001")


def test_new_fiscal_year_restarts_at_one(engine: Engine, company: CompanyData) -> None:
    generator = InvoiceNumberGenerator()

    with engine.begin() as conn:
        generator.generate(conn, _draft(date(2024, 12, 31)), company)
        generator.generate(conn, _draft(date(2024, 12, 31)), company)
        number = generator.generate(conn, _draft(date(2025, 1, 1)), company)

    assert number == "FA-2025-0001"


def test_shifted_fiscal_year_drives_the_number(engine: Engine, company: CompanyData) -> None:
    # Arrange
    november_company = replace(company, fiscal_year_start_month=11, fiscal_year_start_day=1)
    before = _draft(date(2025, 10, 31))
    after = _draft(date(2025, 11, 1))

    # Act
    with engine.begin() as conn:
        first = generate_number(conn, before, november_company)
        second = generate_number(conn, after, november_company)

    # Assert
    assert first == "FA-2024-0001"
    assert before.fiscal_year == 2024
    assert second == "FA-2025-0001"


def test_sequences_are_isolated_per_company(engine: Engine, company: CompanyData) -> None:
    generator = InvoiceNumberGenerator()

    with engine.begin() as conn:
        a1 = generator.generate(conn, _draft(date(2025, 2, 1), company_id=1), company)
        b1 = generator.generate(conn, _draft(date(2025, 2, 1), company_id=2), company)
        a2 = generator.generate(conn, _draft(date(2025, 2, 1), company_id=1), company)

    assert (a1, b1, a2) == ("FA-2025-0001", "FA-2025-0001", "FA-2025-0002")


def test_rolled_back_transaction_does_not_consume_a_number(
    engine: Engine, company: CompanyData
) -> None:
    # Arrange
    generator = InvoiceNumberGenerator()

    # Act
    with pytest.raises(RuntimeError):
        with engine.begin() as conn:
            generator.generate(conn, _draft(date(2025, 6, 1)), company)
            raise RuntimeError("finalization failed")
    with engine.begin() as conn:
        number = generator.generate(conn, _draft(date(2025, 6, 1)), company)

    # Assert
    assert number == "FA-2025-0001"
    with engine.connect() as conn:
        assert SequenceStore().get(conn, None, 2025, InvoiceType.INVOICE).last_number == 1
    # nothing survives a rollback on the generator itself
    assert set(vars(generator)) == {"_store", "_padding"}


def test_generate_requires_a_transaction(engine: Engine, company: CompanyData) -> None:
    with engine.connect() as conn:
        with pytest.raises(TransactionRequiredError):
            InvoiceNumberGenerator().generate(conn, _draft(date(2025, 6, 1)), company)


def test_padding_must_be_positive() -> None:
    with pytest.raises(ValueError):
        InvoiceNumberGenerator(padding=0)


def test_concurrent_generation_has_no_gaps_or_duplicates(
    engine: Engine, company: CompanyData
) -> None:
    # Arrange
    workers = 8
    per_worker = 5
    numbers: List[str] = []
    errors: List[BaseException] = []
    lock = threading.Lock()
    barrier = threading.Barrier(workers)

    def worker() -> None:
        generator = InvoiceNumberGenerator()
        barrier.wait()
        for _ in range(per_worker):
            try:
                with engine.begin() as conn:
                    number = generator.generate(conn, _draft(date(2025, 6, 1)), company)
            except BaseException as exc:  # collected and asserted below
                with lock:
                    errors.append(exc)
                return
            with lock:
                numbers.append(number)

    threads = [threading.Thread(target=worker) for _ in range(workers)]

    # Act
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # Assert
    assert errors == []
    expected = [format_invoice_number(InvoiceType.INVOICE, 2025, n) for n in range(1, workers * per_worker + 1)]
    assert sorted(numbers) == expected
    with engine.connect() as conn:
        sequence = SequenceStore().get(conn, None, 2025, InvoiceType.INVOICE)
    assert sequence.last_number == workers * per_worker
