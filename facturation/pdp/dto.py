"""Résultats échangés avec les connecteurs PDP."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .capability import PdpStatusCode


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class TransmissionResult:
    success: bool
    transmission_id: Optional[str] = None
    status: PdpStatusCode = PdpStatusCode.PENDING
    message: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    transmitted_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(
        cls,
        transmission_id: str,
        message: Optional[str] = None,
        status: PdpStatusCode = PdpStatusCode.SUBMITTED,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "TransmissionResult":
        return cls(
            success=True,
            transmission_id=transmission_id,
            status=status,
            message=message,
            transmitted_at=_now(),
            metadata=metadata or {},
        )

    @classmethod
    def failed(
        cls,
        message: str,
        errors: Optional[List[str]] = None,
        status: PdpStatusCode = PdpStatusCode.FAILED,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "TransmissionResult":
        return cls(success=False, status=status, message=message, errors=errors or [], metadata=metadata or {})

    @classmethod
    def rejected(
        cls,
        message: str,
        errors: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "TransmissionResult":
        return cls.failed(message, errors, PdpStatusCode.REJECTED, metadata)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def error_count(self) -> int:
        return len(self.errors)


@dataclass(frozen=True, slots=True)
class PdpInvoiceStatus:
    transmission_id: str
    status: PdpStatusCode
    status_at: datetime
    message: Optional[str] = None
    recipient_id: Optional[str] = None
    recipient_name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_in_progress(self) -> bool:
        return self.status.is_pending and not self.status.is_terminal

    @property
    def is_complete(self) -> bool:
        return self.status.is_terminal

    @property
    def is_delivered(self) -> bool:
        return self.status in (
            PdpStatusCode.DELIVERED,
            PdpStatusCode.ACKNOWLEDGED,
            PdpStatusCode.APPROVED,
            PdpStatusCode.PAID,
        )

    @property
    def has_error(self) -> bool:
        return self.status.is_failure


@dataclass(frozen=True, slots=True)
class ReceivedInvoice:
    """Facture fournisseur reçue ; montants en centimes."""

    transmission_id: str
    invoice_number: str
    invoice_date: date
    supplier_name: str
    supplier_siret: Optional[str] = None
    supplier_vat_number: Optional[str] = None
    total_amount_cents: int = 0
    vat_amount_cents: int = 0
    pdf_content: Optional[bytes] = None
    xml_content: Optional[bytes] = None
    received_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_amount(self) -> Decimal:
        return Decimal(self.total_amount_cents) / 100

    @property
    def vat_amount(self) -> Decimal:
        return Decimal(self.vat_amount_cents) / 100

    @property
    def net_amount_cents(self) -> int:
        return self.total_amount_cents - self.vat_amount_cents

    @property
    def has_pdf(self) -> bool:
        return bool(self.pdf_content)

    @property
    def has_xml(self) -> bool:
        return bool(self.xml_content)


@dataclass(frozen=True, slots=True)
class HealthCheckResult:
    healthy: bool
    connector_id: str
    response_time_ms: float = 0.0
    message: Optional[str] = None
    version: Optional[str] = None
    checked_at: Optional[datetime] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        connector_id: str,
        response_time_ms: float = 0.0,
        version: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "HealthCheckResult":
        return cls(
            healthy=True,
            connector_id=connector_id,
            response_time_ms=response_time_ms,
            message="Connection successful",
            version=version,
            checked_at=_now(),
            details=details or {},
        )

    @classmethod
    def unhealthy(
        cls,
        connector_id: str,
        message: str,
        response_time_ms: float = 0.0,
        details: Optional[Dict[str, Any]] = None,
    ) -> "HealthCheckResult":
        return cls(
            healthy=False,
            connector_id=connector_id,
            response_time_ms=response_time_ms,
            message=message,
            checked_at=_now(),
            details=details or {},
        )

    def is_response_time_acceptable(self, threshold_ms: float = 5000.0) -> bool:
        return self.response_time_ms <= threshold_ms


__all__ = ["HealthCheckResult", "PdpInvoiceStatus", "ReceivedInvoice", "TransmissionResult"]
