"""PDP connectors: statuses, null connector, dispatcher and outbox handler."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
import sqlalchemy as sa
from sqlalchemy.engine import Engine

from backend.core.config import Settings
from backend.core.outbox.consumer import consume_one
from backend.core.outbox.publisher import EVENTS
from facturation.finalizer import TOPIC_INVOICE_FINALIZED, InvoiceFinalizer
from facturation.pdp import (
    HealthCheckResult,
    NullConnector,
    PdpCapability,
    PdpConnector,
    PdpConnectorNotFoundError,
    PdpDispatcher,
    PdpError,
    PdpStatusCode,
    PdpTransmissionError,
    ReceivedInvoice,
    TransmissionResult,
    TransmitFinalizedInvoice,
    build_dispatcher,
    pdp_handlers,
)
from facturation.samples import SCENARIOS, build_sample_invoice

FIXED_NOW = datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc)
AUTO_TRANSMIT = Settings(PDP_AUTO_TRANSMIT=True, FACTURX_ENABLED=True, EINVOICE_VALIDATION_MODE="temp")


class RejectingConnector(NullConnector):
    def transmit(self, invoice, pdf_content=None, xml_content=None) -> TransmissionResult:
        return TransmissionResult.rejected("Invalid recipient", ["BR-FR-01"])


def _numbered(number: str = "FA-2025-0001"):
    invoice = build_sample_invoice(SCENARIOS[0], issue_date=date(2025, 6, 1))
    invoice.number = number
    return invoice


def _finalize(engine: Engine, company_provider, artifacts_dir: Path) -> str:
    finalizer = InvoiceFinalizer(
        engine,
        company_provider,
        artifacts_dir=artifacts_dir,
        config=AUTO_TRANSMIT,
        clock=lambda: FIXED_NOW,
    )
    return finalizer.finalize(build_sample_invoice(SCENARIOS[0], issue_date=date(2025, 6, 1))).number


def _event_rows(engine: Engine) -> list:
    with engine.connect() as conn:
        return [dict(r) for r in conn.execute(sa.select(EVENTS)).mappings()]


@pytest.mark.parametrize(
    "status, successful, failure, terminal, pending",
    [
        (PdpStatusCode.SUBMITTED, False, False, False, True),
        (PdpStatusCode.DELIVERED, True, False, False, True),
        (PdpStatusCode.PAID, True, False, True, False),
        (PdpStatusCode.REJECTED, False, True, True, False),
        (PdpStatusCode.FAILED, False, True, True, False),
    ],
)
def test_status_code_classification(status, successful, failure, terminal, pending) -> None:
    assert status.is_successful is successful
    assert status.is_failure is failure
    assert status.is_terminal is terminal
    assert status.is_pending is pending
    assert status.label


def test_null_connector_satisfies_protocol() -> None:
    connector = NullConnector()
    assert isinstance(connector, PdpConnector)
    assert connector.supports(PdpCapability.TRANSMIT)
    assert not connector.supports(PdpCapability.WEBHOOKS)
    assert connector.is_configured()


def test_null_connector_transmit_and_status() -> None:
    # Arrange
    connector = NullConnector()

    # Act
    result = connector.transmit(_numbered(), b"%PDF", b"<xml/>")
    status = connector.get_status(result.transmission_id)

    # Assert
    assert result.success
    assert result.transmission_id == "NULL-FA-2025-0001"
    assert result.status is PdpStatusCode.SUBMITTED
    assert result.metadata == {"connector": "null", "simulated": True}
    assert status.is_in_progress
    assert connector.transmitted == ["NULL-FA-2025-0001"]


def test_null_connector_status_updates() -> None:
    connector = NullConnector()
    transmission_id = connector.transmit(_numbered()).transmission_id

    connector.set_status(transmission_id, PdpStatusCode.DELIVERED)
    status = connector.get_status(transmission_id)

    assert status.is_delivered
    assert not status.is_complete
    with pytest.raises(PdpError):
        connector.get_status("NULL-unknown")


def test_null_connector_simulated_failure_and_reset() -> None:
    # Arrange
    connector = NullConnector()
    connector.simulate_failure()

    # Act
    failed = connector.transmit(_numbered())
    connector.reset()
    recovered = connector.transmit(_numbered())

    # Assert
    assert not failed.success
    assert failed.status is PdpStatusCode.FAILED
    assert failed.errors == ["Simulated failure"]
    assert recovered.success


def test_null_connector_health_check() -> None:
    connector = NullConnector()

    healthy = connector.health_check()
    connector.simulate_unhealthy()
    unhealthy = connector.health_check()

    assert healthy.healthy
    assert healthy.is_response_time_acceptable()
    assert healthy.details == {"simulated": True}
    assert not unhealthy.healthy
    assert unhealthy.message == "Simulated unhealthy state"


def test_null_connector_received_invoices_since_and_limit() -> None:
    # Arrange
    connector = NullConnector()
    base = datetime(2025, 6, 1, tzinfo=timezone.utc)
    for i in range(3):
        connector.add_received_invoice(
            ReceivedInvoice(
                transmission_id=f"IN-{i}",
                invoice_number=f"F-{i}",
                invoice_date=date(2025, 6, 1),
                supplier_name="Fournisseur",
                total_amount_cents=12000,
                vat_amount_cents=2000,
                received_at=base + timedelta(hours=i),
            )
        )

    # Act
    since = connector.get_received_invoices(since=base)
    limited = connector.get_received_invoices(limit=1)

    # Assert
    assert [r.transmission_id for r in since] == ["IN-1", "IN-2"]
    assert [r.transmission_id for r in limited] == ["IN-0"]
    assert since[0].total_amount == Decimal("120")
    assert since[0].net_amount_cents == 10000
    assert not since[0].has_pdf


def test_dispatcher_registration_and_default() -> None:
    # Arrange
    dispatcher = PdpDispatcher()

    # Act / Assert
    with pytest.raises(PdpConnectorNotFoundError):
        dispatcher.default()
    dispatcher.register(NullConnector())
    assert dispatcher.default_id == "null"
    assert dispatcher.has("null")
    assert dispatcher.ids() == ["null"]
    assert len(dispatcher.configured_connectors()) == 1
    with pytest.raises(PdpConnectorNotFoundError):
        dispatcher.set_default("chorus")
    with pytest.raises(LookupError):
        dispatcher.get("chorus")


def test_dispatcher_routes_to_default_connector() -> None:
    # Arrange
    dispatcher = build_dispatcher(Settings(PDP_DEFAULT_CONNECTOR="null"))

    # Act
    result = dispatcher.transmit(_numbered())
    status = dispatcher.get_status(result.transmission_id)
    health = dispatcher.health_check_all()

    # Assert
    assert result.success
    assert status.status is PdpStatusCode.SUBMITTED
    assert set(health) == {"null"}
    assert isinstance(health["null"], HealthCheckResult)


def test_transmission_error_from_result_is_retryable_only_on_failure() -> None:
    failed = PdpTransmissionError.from_result(TransmissionResult.failed("timeout", ["503"]), "null")
    rejected = PdpTransmissionError.from_result(TransmissionResult.rejected("bad"), "null")

    assert failed.retryable
    assert failed.has_errors
    assert failed.connector_id == "null"
    assert not rejected.retryable
    assert PdpTransmissionError.network_error("reset").retryable
    assert "SIRET" in str(PdpTransmissionError.validation_failed(["SIRET"]))


def test_handler_does_nothing_when_auto_transmit_disabled(engine: Engine, artifacts_dir: Path) -> None:
    # Arrange
    dispatcher = build_dispatcher(Settings())
    handler = TransmitFinalizedInvoice(
        dispatcher, engine, config=Settings(PDP_AUTO_TRANSMIT=False), artifacts_dir=artifacts_dir
    )

    # Act
    handler({"number": "FA-2025-0001"})

    # Assert
    assert dispatcher.default().transmitted == []


def test_handler_ignores_unknown_invoice(engine: Engine, artifacts_dir: Path) -> None:
    dispatcher = build_dispatcher(Settings())
    handler = TransmitFinalizedInvoice(
        dispatcher, engine, config=AUTO_TRANSMIT, artifacts_dir=artifacts_dir
    )

    handler({"number": "FA-2099-9999"})

    assert dispatcher.default().transmitted == []


def test_finalized_invoice_is_transmitted_through_outbox(
    engine: Engine, company_provider, artifacts_dir: Path
) -> None:
    # Arrange
    number = _finalize(engine, company_provider, artifacts_dir)
    dispatcher = build_dispatcher(Settings())
    handlers = pdp_handlers(dispatcher, engine, config=AUTO_TRANSMIT, artifacts_dir=artifacts_dir)

    # Act
    handled = consume_one(handlers, engine)

    # Assert
    assert set(handlers) == {TOPIC_INVOICE_FINALIZED}
    assert handled is True
    assert dispatcher.default().transmitted == [f"NULL-{number}"]
    assert [e["status"] for e in _event_rows(engine)] == ["processed"]


def test_failed_transmission_reschedules_event(
    engine: Engine, company_provider, artifacts_dir: Path
) -> None:
    # Arrange
    _finalize(engine, company_provider, artifacts_dir)
    dispatcher = build_dispatcher(Settings())
    dispatcher.default().simulate_failure()
    handler = TransmitFinalizedInvoice(
        dispatcher, engine, config=AUTO_TRANSMIT, artifacts_dir=artifacts_dir
    )

    # Act
    handled = consume_one({TOPIC_INVOICE_FINALIZED: handler}, engine)

    # Assert
    assert handled is False
    rows = _event_rows(engine)
    assert [(e["status"], e["attempt_count"]) for e in rows] == [("pending", 1)]


def test_failed_transmission_raises_retryable_error(
    engine: Engine, company_provider, artifacts_dir: Path
) -> None:
    number = _finalize(engine, company_provider, artifacts_dir)
    dispatcher = build_dispatcher(Settings())
    dispatcher.default().simulate_failure("PDP unavailable")
    handler = TransmitFinalizedInvoice(
        dispatcher, engine, config=AUTO_TRANSMIT, artifacts_dir=artifacts_dir
    )

    with pytest.raises(PdpTransmissionError) as excinfo:
        handler({"number": number})

    assert excinfo.value.retryable
    assert str(excinfo.value) == "PDP unavailable"


def test_rejected_transmission_is_not_retried(
    engine: Engine, company_provider, artifacts_dir: Path
) -> None:
    # Arrange
    number = _finalize(engine, company_provider, artifacts_dir)
    dispatcher = PdpDispatcher()
    dispatcher.register(RejectingConnector())
    handler = TransmitFinalizedInvoice(
        dispatcher, engine, config=AUTO_TRANSMIT, artifacts_dir=artifacts_dir
    )

    # Act
    handler({"number": number})
    handled = consume_one({TOPIC_INVOICE_FINALIZED: handler}, engine)

    # Assert
    assert handled is True
    assert [e["status"] for e in _event_rows(engine)] == ["processed"]
