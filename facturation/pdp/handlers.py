"""Transmission PDP déclenchée par l'événement outbox ``InvoiceFinalized``."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.engine import Engine

from backend.core.config import Settings, settings as default_settings
from backend.core.db import get_engine
from backend.core.observability.logging import get_logger

from .. import archive
from ..facturx import FACTURX_FILENAME
from ..finalizer import TOPIC_INVOICE_FINALIZED
from ..repository import InvoiceRepository
from .capability import PdpStatusCode
from .dispatcher import PdpDispatcher
from .exceptions import PdpTransmissionError
from .transmissions import TransmissionRepository

logger = get_logger(__name__)


def _read_optional(path: Path) -> Optional[bytes]:
    return path.read_bytes() if path.exists() else None


class TransmitFinalizedInvoice:
    """Handler outbox : envoie la facture finalisée au connecteur PDP.

    Chaque dépôt est consigné dans ``invoice_transmissions``. Une facture déjà
    déposée (ou rejetée) n'est pas renvoyée si l'événement est relivré. Une
    transmission en échec lève ``PdpTransmissionError`` pour que le
    consommateur replanifie l'événement, jusqu'à ``PDP_MAX_RETRIES`` nouvelles
    tentatives. Un rejet définitif est journalisé sans nouvelle tentative.
    """

    def __init__(
        self,
        dispatcher: PdpDispatcher,
        engine: Optional[Engine] = None,
        *,
        repository: Optional[InvoiceRepository] = None,
        transmissions: Optional[TransmissionRepository] = None,
        config: Optional[Settings] = None,
        artifacts_dir: Optional[Path] = None,
        connector_id: Optional[str] = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        config = config or default_settings
        self._dispatcher = dispatcher
        self._engine = engine
        self._repository = repository or InvoiceRepository()
        self._transmissions = transmissions or TransmissionRepository()
        self._enabled = config.PDP_AUTO_TRANSMIT
        self._max_retries = config.PDP_MAX_RETRIES
        self._artifacts_dir = Path(artifacts_dir or config.ARTIFACTS_DIR)
        self._connector_id = connector_id
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def __call__(self, payload: Mapping[str, Any]) -> None:
        number = payload.get("number")
        company_id = payload.get("company_id")
        if not self._enabled:
            logger.info("pdp_auto_transmit_disabled", extra={"invoice_no": number})
            return

        engine = self._engine or get_engine()
        with engine.connect() as conn:
            invoice = self._repository.get_by_number(conn, number, company_id)
            latest = (
                self._transmissions.find_latest_for_invoice(conn, invoice.invoice_id)
                if invoice is not None
                else None
            )
        if invoice is None:
            logger.error(
                "pdp_invoice_not_found", extra={"invoice_no": number, "company_id": company_id}
            )
            return
        if latest is not None and latest.status is not PdpStatusCode.FAILED:
            logger.info(
                "pdp_invoice_already_transmitted",
                extra={
                    "invoice_no": invoice.number,
                    "transmission_id": latest.transmission_id,
                    "status": latest.status.value,
                },
            )
            return

        package = archive.invoice_dir(self._artifacts_dir, invoice.company_id, invoice.number)
        pdf = _read_optional(package / f"{invoice.number}.pdf")
        xml = _read_optional(package / FACTURX_FILENAME)

        connector_id = self._connector_id or self._dispatcher.default_id
        result = self._dispatcher.transmit(invoice, pdf, xml, connector_id=connector_id)
        with engine.begin() as conn:
            transmission = self._transmissions.record_attempt(
                conn, invoice, connector_id, result, self._clock()
            )

        if result.success:
            logger.info(
                "pdp_invoice_transmitted",
                extra={
                    "invoice_no": invoice.number,
                    "company_id": invoice.company_id,
                    "transmission_id": result.transmission_id,
                    "status": result.status.value,
                },
            )
            return

        error = PdpTransmissionError.from_result(result, connector_id)
        retries_left = transmission.retry_count < self._max_retries
        logger.error(
            "pdp_invoice_transmission_failed",
            extra={
                "invoice_no": invoice.number,
                "company_id": invoice.company_id,
                "status": result.status.value,
                "error_count": result.error_count,
                "retryable": error.retryable,
                "retry_count": transmission.retry_count,
            },
        )
        if error.retryable and retries_left:
            raise error
        if error.retryable:
            logger.error(
                "pdp_invoice_retries_exhausted",
                extra={"invoice_no": invoice.number, "retry_count": transmission.retry_count},
            )


def pdp_handlers(
    dispatcher: PdpDispatcher,
    engine: Optional[Engine] = None,
    **kwargs: Any,
) -> dict:
    """Table topic -> handler pour ``consume_one``."""
    return {TOPIC_INVOICE_FINALIZED: TransmitFinalizedInvoice(dispatcher, engine, **kwargs)}


__all__ = ["TransmitFinalizedInvoice", "pdp_handlers"]
