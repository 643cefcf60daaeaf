"""Connecteur PDP simulé : aucun appel réseau.

Sert en développement et en test. Les transmissions sont gardées en mémoire,
et les échecs ou pannes peuvent être simulés.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional

from backend.core.observability.logging import get_logger

from ..dto import Invoice
from .capability import PdpCapability, PdpStatusCode
from .dto import HealthCheckResult, PdpInvoiceStatus, ReceivedInvoice, TransmissionResult
from .exceptions import PdpError

logger = get_logger(__name__)

NULL_CONNECTOR_ID = "null"
NULL_CONNECTOR_VERSION = "1.0.0-null"

_CAPABILITIES = frozenset(
    {
        PdpCapability.TRANSMIT,
        PdpCapability.RECEIVE,
        PdpCapability.STATUS,
        PdpCapability.HEALTH_CHECK,
    }
)


class NullConnector:
    def __init__(self) -> None:
        self._statuses: Dict[str, PdpInvoiceStatus] = {}
        self._received: List[ReceivedInvoice] = []
        self._transmitted: List[str] = []
        self._failure: Optional[str] = None
        self._unhealthy: Optional[str] = None

    @property
    def id(self) -> str:
        return NULL_CONNECTOR_ID

    @property
    def name(self) -> str:
        return "Null PDP (simulation)"

    @property
    def capabilities(self) -> FrozenSet[PdpCapability]:
        return _CAPABILITIES

    def supports(self, capability: PdpCapability) -> bool:
        return capability in _CAPABILITIES

    def is_configured(self) -> bool:
        return True

    # simulation controls

    def simulate_failure(self, message: str = "Simulated failure") -> None:
        self._failure = message

    def simulate_unhealthy(self, message: str = "Simulated unhealthy state") -> None:
        self._unhealthy = message

    def add_received_invoice(self, received: ReceivedInvoice) -> None:
        self._received.append(received)

    def reset(self) -> None:
        self._statuses.clear()
        self._received.clear()
        self._transmitted.clear()
        self._failure = None
        self._unhealthy = None

    @property
    def transmitted(self) -> List[str]:
        return list(self._transmitted)

    # connector operations

    def transmit(
        self, invoice: Invoice, pdf_content: Optional[bytes] = None, xml_content: Optional[bytes] = None
    ) -> TransmissionResult:
        if self._failure is not None:
            logger.info("pdp_null_transmit_failed", extra={"invoice_no": invoice.number})
            return TransmissionResult.failed(self._failure, [self._failure])

        transmission_id = f"NULL-{invoice.number or uuid.uuid4()}"
        self._statuses[transmission_id] = PdpInvoiceStatus(
            transmission_id=transmission_id,
            status=PdpStatusCode.SUBMITTED,
            status_at=datetime.now(timezone.utc),
            message="Simulated submission",
        )
        self._transmitted.append(transmission_id)
        logger.info(
            "pdp_null_transmit",
            extra={
                "invoice_no": invoice.number,
                "transmission_id": transmission_id,
                "has_pdf": pdf_content is not None,
                "has_xml": xml_content is not None,
            },
        )
        return TransmissionResult.succeeded(
            transmission_id,
            "Invoice submitted (simulated)",
            metadata={"connector": NULL_CONNECTOR_ID, "simulated": True},
        )

    def get_status(self, transmission_id: str) -> PdpInvoiceStatus:
        try:
            return self._statuses[transmission_id]
        except KeyError:
            raise PdpError(
                f"unknown transmission {transmission_id}", connector_id=NULL_CONNECTOR_ID
            ) from None

    def set_status(self, transmission_id: str, status: PdpStatusCode, message: Optional[str] = None) -> None:
        self.get_status(transmission_id)
        self._statuses[transmission_id] = PdpInvoiceStatus(
            transmission_id=transmission_id,
            status=status,
            status_at=datetime.now(timezone.utc),
            message=message,
        )

    def get_received_invoices(
        self, since: Optional[datetime] = None, limit: int = 100
    ) -> List[ReceivedInvoice]:
        received = self._received
        if since is not None:
            received = [r for r in received if r.received_at is not None and r.received_at > since]
        return list(received[:limit])

    def health_check(self) -> HealthCheckResult:
        if self._unhealthy is not None:
            return HealthCheckResult.unhealthy(NULL_CONNECTOR_ID, self._unhealthy)
        return HealthCheckResult.ok(
            NULL_CONNECTOR_ID,
            response_time_ms=0.1,
            version=NULL_CONNECTOR_VERSION,
            details={"simulated": True},
        )


__all__ = ["NULL_CONNECTOR_ID", "NULL_CONNECTOR_VERSION", "NullConnector"]
