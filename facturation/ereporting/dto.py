"""Objets e-reporting : transaction déclarée, synthèse de période, résultat d'envoi."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..fiscal_calendar import ReportingFrequency, period_label
from .enums import EReportingPaymentStatus, TransactionType

ZERO = Decimal("0.00")


@dataclass(frozen=True, slots=True)
class EReportingTransaction:
    invoice_number: str
    invoice_date: date
    transaction_type: TransactionType
    total_excluding_vat: Decimal
    total_vat: Decimal
    total_including_vat: Decimal
    customer_country: Optional[str] = None
    customer_vat_number: Optional[str] = None
    payment_status: EReportingPaymentStatus = EReportingPaymentStatus.NOT_PAID
    payment_date: Optional[date] = None
    payment_method: Optional[str] = None
    # taux formaté "%.2f" -> montant de TVA
    vat_breakdown: Dict[str, Decimal] = field(default_factory=dict)
    invoice_id: Optional[str] = None

    @property
    def requires_ereporting(self) -> bool:
        return self.transaction_type.requires_ereporting

    @property
    def is_export(self) -> bool:
        return self.transaction_type.is_export

    @property
    def is_intra_eu(self) -> bool:
        return self.transaction_type.is_intra_eu

    @property
    def is_domestic(self) -> bool:
        return self.transaction_type.is_domestic

    @property
    def is_paid(self) -> bool:
        return self.payment_status.is_paid

    def with_payment(
        self,
        status: EReportingPaymentStatus,
        paid_on: Optional[date] = None,
        method: Optional[str] = None,
    ) -> "EReportingTransaction":
        return replace(
            self,
            payment_status=status,
            payment_date=paid_on or self.payment_date,
            payment_method=method or self.payment_method,
        )


@dataclass(frozen=True, slots=True)
class ReportingSummary:
    period_start: date
    period_end: date
    deadline: date
    frequency: ReportingFrequency
    transaction_count: int = 0
    total_excluding_vat: Decimal = ZERO
    total_vat: Decimal = ZERO
    total_including_vat: Decimal = ZERO
    transactions_by_type: Dict[str, int] = field(default_factory=dict)
    vat_by_rate: Dict[str, Decimal] = field(default_factory=dict)
    is_submitted: bool = False
    report_id: Optional[str] = None

    def is_overdue(self, today: date) -> bool:
        return not self.is_submitted and self.deadline < today

    @property
    def has_transactions(self) -> bool:
        return self.transaction_count > 0

    def period_label(self, locale: str = "fr") -> str:
        return period_label(self.period_start, self.frequency, locale)

    def days_until_deadline(self, today: date) -> int:
        """Négatif une fois l'échéance dépassée."""
        return (self.deadline - today).days

    def with_submission(self, report_id: str) -> "ReportingSummary":
        return replace(self, is_submitted=True, report_id=report_id)


@dataclass(frozen=True, slots=True)
class ReportingResult:
    success: bool
    report_id: Optional[str] = None
    message: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    transactions: int = 0
    submitted_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(
        cls,
        report_id: str,
        transactions: int,
        message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ReportingResult":
        return cls(
            success=True,
            report_id=report_id,
            message=message or "Rapport soumis avec succès",
            transactions=transactions,
            submitted_at=datetime.now(timezone.utc),
            metadata=metadata or {},
        )

    @classmethod
    def failed(
        cls,
        message: str,
        errors: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ReportingResult":
        return cls(success=False, message=message, errors=errors or [], metadata=metadata or {})

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


__all__ = ["EReportingTransaction", "ReportingResult", "ReportingSummary"]
