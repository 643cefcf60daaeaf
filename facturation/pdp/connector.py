"""Contrat d'un connecteur PDP."""

from __future__ import annotations

from datetime import datetime
from typing import FrozenSet, List, Optional, Protocol, runtime_checkable

from ..dto import Invoice
from .capability import PdpCapability
from .dto import HealthCheckResult, PdpInvoiceStatus, ReceivedInvoice, TransmissionResult


@runtime_checkable
class PdpConnector(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def capabilities(self) -> FrozenSet[PdpCapability]: ...

    def supports(self, capability: PdpCapability) -> bool: ...

    def transmit(
        self, invoice: Invoice, pdf_content: Optional[bytes] = None, xml_content: Optional[bytes] = None
    ) -> TransmissionResult: ...

    def get_status(self, transmission_id: str) -> PdpInvoiceStatus: ...

    def get_received_invoices(
        self, since: Optional[datetime] = None, limit: int = 100
    ) -> List[ReceivedInvoice]: ...

    def health_check(self) -> HealthCheckResult: ...

    def is_configured(self) -> bool: ...


__all__ = ["PdpConnector"]
