"""Connecteurs PDP (Plateformes de Dématérialisation Partenaires)."""

from .capability import PdpCapability, PdpStatusCode
from .connector import PdpConnector
from .dispatcher import PdpDispatcher, build_dispatcher
from .dto import HealthCheckResult, PdpInvoiceStatus, ReceivedInvoice, TransmissionResult
from .exceptions import PdpConnectorNotFoundError, PdpError, PdpTransmissionError
from .handlers import TransmitFinalizedInvoice, pdp_handlers
from .null_connector import NULL_CONNECTOR_ID, NullConnector
from .transmissions import InvoiceTransmission, TransmissionRepository, refresh_pending_statuses

__all__ = [
    "HealthCheckResult",
    "InvoiceTransmission",
    "NULL_CONNECTOR_ID",
    "NullConnector",
    "PdpCapability",
    "PdpConnector",
    "PdpConnectorNotFoundError",
    "PdpDispatcher",
    "PdpError",
    "PdpInvoiceStatus",
    "PdpStatusCode",
    "PdpTransmissionError",
    "ReceivedInvoice",
    "TransmissionResult",
    "TransmissionRepository",
    "TransmitFinalizedInvoice",
    "build_dispatcher",
    "pdp_handlers",
    "refresh_pending_statuses",
]
