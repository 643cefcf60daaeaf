"""Registre des connecteurs PDP et routage vers le connecteur par défaut."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from backend.core.config import Settings, settings as default_settings
from backend.core.observability.logging import get_logger

from ..dto import Invoice
from .connector import PdpConnector
from .dto import HealthCheckResult, PdpInvoiceStatus, ReceivedInvoice, TransmissionResult
from .exceptions import PdpConnectorNotFoundError
from .null_connector import NullConnector

logger = get_logger(__name__)


class PdpDispatcher:
    def __init__(self, default_connector_id: Optional[str] = None) -> None:
        self._connectors: Dict[str, PdpConnector] = {}
        self._default_id = default_connector_id

    def register(self, connector: PdpConnector) -> None:
        self._connectors[connector.id] = connector
        if self._default_id is None:
            self._default_id = connector.id
        logger.info("pdp_connector_registered", extra={"connector_id": connector.id})

    def get(self, connector_id: str) -> PdpConnector:
        try:
            return self._connectors[connector_id]
        except KeyError:
            raise PdpConnectorNotFoundError(connector_id) from None

    def default(self) -> PdpConnector:
        if self._default_id is None:
            raise PdpConnectorNotFoundError("default (not configured)")
        return self.get(self._default_id)

    def has(self, connector_id: str) -> bool:
        return connector_id in self._connectors

    def ids(self) -> List[str]:
        return list(self._connectors)

    def connectors(self) -> List[PdpConnector]:
        return list(self._connectors.values())

    def configured_connectors(self) -> List[PdpConnector]:
        return [c for c in self._connectors.values() if c.is_configured()]

    def set_default(self, connector_id: str) -> None:
        self.get(connector_id)
        self._default_id = connector_id

    @property
    def default_id(self) -> Optional[str]:
        return self._default_id

    def _resolve(self, connector_id: Optional[str]) -> PdpConnector:
        return self.get(connector_id) if connector_id else self.default()

    def transmit(
        self,
        invoice: Invoice,
        pdf_content: Optional[bytes] = None,
        xml_content: Optional[bytes] = None,
        connector_id: Optional[str] = None,
    ) -> TransmissionResult:
        connector = self._resolve(connector_id)
        result = connector.transmit(invoice, pdf_content, xml_content)
        logger.info(
            "pdp_transmit",
            extra={
                "connector_id": connector.id,
                "invoice_no": invoice.number,
                "success": result.success,
                "transmission_id": result.transmission_id,
                "status": result.status.value,
            },
        )
        return result

    def get_status(self, transmission_id: str, connector_id: Optional[str] = None) -> PdpInvoiceStatus:
        return self._resolve(connector_id).get_status(transmission_id)

    def get_received_invoices(
        self,
        since: Optional[datetime] = None,
        limit: int = 100,
        connector_id: Optional[str] = None,
    ) -> List[ReceivedInvoice]:
        return self._resolve(connector_id).get_received_invoices(since, limit)

    def health_check(self, connector_id: Optional[str] = None) -> HealthCheckResult:
        return self._resolve(connector_id).health_check()

    def health_check_all(self) -> Dict[str, HealthCheckResult]:
        return {cid: c.health_check() for cid, c in self._connectors.items()}


def build_dispatcher(config: Optional[Settings] = None) -> PdpDispatcher:
    """Dispatcher avec le connecteur simulé enregistré.

    Le connecteur par défaut vient de ``PDP_DEFAULT_CONNECTOR``.
    """
    config = config or default_settings
    dispatcher = PdpDispatcher(default_connector_id=config.PDP_DEFAULT_CONNECTOR)
    dispatcher.register(NullConnector())
    return dispatcher


__all__ = ["PdpDispatcher", "build_dispatcher"]
