from __future__ import annotations

from pathlib import Path
from typing import Any, List, Mapping

import sqlalchemy as sa
from alembic import command
from alembic.config import Config
from sqlalchemy.engine import Engine

from backend.core.db import create_engine
from backend.core.outbox.consumer import consume_one
from backend.core.outbox.publisher import EVENTS, enqueue_event

ROOT = Path(__file__).resolve().parents[2]


def _fetch_event(engine: Engine, event_id: str) -> dict:
    with engine.connect() as conn:
        row = conn.execute(sa.select(EVENTS).where(EVENTS.c.id == event_id)).mappings().first()
    if not row:
        raise AssertionError(f"Event {event_id} not found")
    return dict(row)


def _enqueue(engine: Engine, topic: str = "InvoiceFinalized") -> str:
    with engine.begin() as conn:
        return str(enqueue_event(conn, topic, {"number": "FA-2025-0001"}))


def test_consumer_processes_once(engine: Engine) -> None:
    received: List[Mapping[str, Any]] = []
    event_id = _enqueue(engine)

    processed = consume_one({"InvoiceFinalized": received.append}, engine)
    assert processed is True
    assert received == [{"number": "FA-2025-0001"}]

    row = _fetch_event(engine, event_id)
    assert row["status"] == "processed"
    assert row["attempt_count"] == 0

    # Idempotent: second run should not reprocess the same event
    processed_again = consume_one({"InvoiceFinalized": received.append}, engine)
    assert processed_again is False
    assert len(received) == 1


def test_consumer_idle_without_events(engine: Engine) -> None:
    assert consume_one({}, engine) is False


def test_handler_error_reschedules_event(engine: Engine) -> None:
    event_id = _enqueue(engine)

    def failing(payload: Mapping[str, Any]) -> None:
        raise ConnectionError("downstream unavailable")

    processed = consume_one({"InvoiceFinalized": failing}, engine)

    assert processed is False
    row = _fetch_event(engine, event_id)
    assert row["status"] == "pending"
    assert row["attempt_count"] == 1
    # backoff keeps the event out of reach until its next attempt
    assert consume_one({"InvoiceFinalized": failing}, engine) is False
    assert _fetch_event(engine, event_id)["attempt_count"] == 1


def test_missing_handler_reschedules_event(engine: Engine) -> None:
    event_id = _enqueue(engine, topic="Unknown")

    assert consume_one({"InvoiceFinalized": lambda payload: None}, engine) is False
    assert _fetch_event(engine, event_id)["attempt_count"] == 1


def test_alembic_upgrade_creates_schema(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    cfg = Config()
    cfg.set_main_option("script_location", str(ROOT / "ops" / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)

    command.upgrade(cfg, "head")

    engine = create_engine(url)
    try:
        inspector = sa.inspect(engine)
        tables = set(inspector.get_table_names())
        assert {
            "companies",
            "invoice_sequences",
            "invoices",
            "invoice_transmissions",
            "outbox_events",
        } <= tables
        uniques = {u["name"] for u in inspector.get_unique_constraints("invoice_sequences")}
        assert "uq_invoice_sequences_company_year_type" in uniques
        invoice_uniques = {
            u["name"]: u["column_names"] for u in inspector.get_unique_constraints("invoices")
        }
        assert invoice_uniques["uq_invoices_company_number"] == ["company_key", "number"]

        event_id = _enqueue(engine)
        assert consume_one({"InvoiceFinalized": lambda payload: None}, engine) is True
        assert _fetch_event(engine, event_id)["status"] == "processed"
    finally:
        engine.dispose()

    command.downgrade(cfg, "base")
    engine = create_engine(url)
    try:
        remaining = set(sa.inspect(engine).get_table_names())
        assert not {"outbox_events", "invoices", "invoice_transmissions"} & remaining
    finally:
        engine.dispose()
