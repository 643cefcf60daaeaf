"""Row locking on PostgreSQL (``SELECT ... FOR UPDATE``) under contention."""

from __future__ import annotations

import os
import threading
from datetime import date
from typing import Iterator, List

import pytest
import sqlalchemy as sa
from sqlalchemy.engine import Engine

from backend.core.db import METADATA, create_engine
from facturation.company import CompanyData
from facturation.enums import InvoiceType
from facturation.exceptions import SequenceLockError
from facturation.numbering import InvoiceNumberGenerator
from facturation.samples import SCENARIOS, build_sample_invoice
from facturation.sequence_store import SEQUENCES, SequenceStore

RUN_DB_TESTS = os.getenv("RUN_DB_TESTS") == "1"
DB_URL = os.getenv("DATABASE_URL", "")

pytestmark = pytest.mark.skipif(
    not RUN_DB_TESTS or not DB_URL.startswith("postgresql"),
    reason="Set RUN_DB_TESTS=1 and a PostgreSQL DATABASE_URL for locking tests.",
)

COMPANY_ID = 4242


@pytest.fixture(scope="module")
def pg_engine() -> Iterator[Engine]:
    engine = create_engine(DB_URL, lock_timeout_s=1)
    METADATA.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(autouse=True)
def _clean_sequences(pg_engine: Engine) -> Iterator[None]:
    def _delete() -> None:
        with pg_engine.begin() as conn:
            conn.execute(sa.delete(SEQUENCES).where(SEQUENCES.c.company_id == COMPANY_ID))

    _delete()
    yield
    _delete()


def _draft():
    return build_sample_invoice(SCENARIOS[0], issue_date=date(2025, 6, 1), company_id=COMPANY_ID)


def test_concurrent_generation_is_gapless(pg_engine: Engine, company: CompanyData) -> None:
    # Arrange
    numbers: List[str] = []
    errors: List[BaseException] = []
    lock = threading.Lock()
    barrier = threading.Barrier(6)

    def worker() -> None:
        generator = InvoiceNumberGenerator()
        barrier.wait()
        for _ in range(5):
            try:
                with pg_engine.begin() as conn:
                    number = generator.generate(conn, _draft(), company)
            except SequenceLockError:
                # retryable: replay the whole transaction
                continue
            except BaseException as exc:  # collected and asserted below
                with lock:
                    errors.append(exc)
                return
            with lock:
                numbers.append(number)

    threads = [threading.Thread(target=worker) for _ in range(6)]

    # Act
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # Assert
    assert errors == []
    expected = [f"FA-2025-{n:04d}" for n in range(1, len(numbers) + 1)]
    assert sorted(numbers) == expected


def test_lock_timeout_surfaces_as_retryable(pg_engine: Engine, company: CompanyData) -> None:
    # Arrange
    store = SequenceStore()
    with pg_engine.begin() as conn:
        InvoiceNumberGenerator().generate(conn, _draft(), company)

    holder = pg_engine.connect()
    holder.begin()
    store.lock_for_update(holder, COMPANY_ID, 2025, InvoiceType.INVOICE)

    # Act & Assert
    try:
        with pytest.raises(SequenceLockError) as excinfo:
            with pg_engine.begin() as conn:
                store.lock_for_update(conn, COMPANY_ID, 2025, InvoiceType.INVOICE)
        assert excinfo.value.retryable is True
    finally:
        holder.rollback()
        holder.close()
