"""Construction des transactions e-reporting et synthèse par période."""

from __future__ import annotations

import secrets
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from backend.core.observability.logging import get_logger

from ..dto import Invoice, quantize_money
from ..enums import InvoiceStatus
from ..fiscal_calendar import ReportingFrequency
from .dto import EReportingTransaction, ReportingResult, ReportingSummary
from .enums import EReportingPaymentStatus, TransactionType
from .scheduler import EReportingScheduler

logger = get_logger(__name__)

EU_COUNTRY_CODES = frozenset(
    (
        "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR",
        "DE", "GR", "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL",
        "PL", "PT", "RO", "SK", "SI", "ES", "SE",
    )
)

ZERO = Decimal("0.00")


def transaction_type_for(invoice: Invoice) -> TransactionType:
    """B2B si le client a un numéro de TVA ; zone selon son pays (FR par défaut)."""

    country = (invoice.buyer.address.country_code or "FR").upper()
    b2b = bool(invoice.buyer.vat_id)
    if country == "FR":
        return TransactionType.B2B_FRANCE if b2b else TransactionType.B2C_FRANCE
    if country in EU_COUNTRY_CODES:
        return TransactionType.B2B_INTRA_EU if b2b else TransactionType.B2C_INTRA_EU
    return TransactionType.B2B_EXPORT if b2b else TransactionType.B2C_EXPORT


def _payment_status(invoice: Invoice) -> EReportingPaymentStatus:
    if invoice.status is InvoiceStatus.PAID:
        return EReportingPaymentStatus.FULLY_PAID
    if invoice.status is InvoiceStatus.PARTIALLY_PAID:
        return EReportingPaymentStatus.PARTIALLY_PAID
    return EReportingPaymentStatus.NOT_PAID


def _vat_breakdown(invoice: Invoice) -> Dict[str, Decimal]:
    breakdown: Dict[str, Decimal] = {}
    for line in invoice.lines:
        key = f"{line.vat_rate:.2f}"
        breakdown[key] = quantize_money(breakdown.get(key, ZERO) + line.tax_amount())
    return breakdown


def _report_id(now: datetime) -> str:
    return f"RPT-{now.strftime('%Y-%m-%d-%H%M%S')}-{secrets.token_hex(4)}"


class EReportingService:
    def __init__(self, scheduler: Optional[EReportingScheduler] = None) -> None:
        self._scheduler = scheduler or EReportingScheduler()

    @property
    def scheduler(self) -> EReportingScheduler:
        return self._scheduler

    def create_transaction(self, invoice: Invoice) -> EReportingTransaction:
        totals = invoice.compute_totals()
        last = invoice.last_payment() if invoice.status is InvoiceStatus.PAID else None
        return EReportingTransaction(
            invoice_number=invoice.number or "",
            invoice_date=invoice.issue_date,
            transaction_type=transaction_type_for(invoice),
            total_excluding_vat=totals.total_net,
            total_vat=totals.total_tax,
            total_including_vat=totals.total_gross,
            customer_country=invoice.buyer.address.country_code,
            customer_vat_number=invoice.buyer.vat_id,
            payment_status=_payment_status(invoice),
            payment_date=last.paid_at if last else None,
            payment_method=last.method.value if last else None,
            vat_breakdown=_vat_breakdown(invoice),
            invoice_id=invoice.invoice_id,
        )

    def summarize(
        self,
        reference_date: date,
        frequency: ReportingFrequency,
        transactions: Iterable[EReportingTransaction],
    ) -> ReportingSummary:
        """Synthèse de la période contenant ``reference_date``.

        Les transactions hors période sont ignorées.
        """

        period = self._scheduler.current_period(reference_date, frequency)
        selected = [t for t in transactions if period.contains(t.invoice_date)]

        by_type: Dict[str, int] = {}
        vat_by_rate: Dict[str, Decimal] = {}
        net = vat = gross = ZERO
        for t in selected:
            net += t.total_excluding_vat
            vat += t.total_vat
            gross += t.total_including_vat
            by_type[t.transaction_type.value] = by_type.get(t.transaction_type.value, 0) + 1
            for rate, amount in t.vat_breakdown.items():
                vat_by_rate[rate] = quantize_money(vat_by_rate.get(rate, ZERO) + amount)

        return ReportingSummary(
            period_start=period.start,
            period_end=period.end,
            deadline=period.deadline,
            frequency=frequency,
            transaction_count=len(selected),
            total_excluding_vat=quantize_money(net),
            total_vat=quantize_money(vat),
            total_including_vat=quantize_money(gross),
            transactions_by_type=by_type,
            vat_by_rate=dict(sorted(vat_by_rate.items())),
        )

    def submit(
        self,
        transactions: Sequence[EReportingTransaction],
        *,
        now: Optional[datetime] = None,
    ) -> ReportingResult:
        """Soumission simulée : l'identifiant serait attribué par la PDP."""

        if not transactions:
            return ReportingResult.failed(
                "Aucune transaction à soumettre",
                errors=["Le rapport ne contient aucune transaction"],
            )
        report_id = _report_id(now or datetime.now(timezone.utc))
        logger.info(
            "ereporting_report_submitted",
            extra={"report_id": report_id, "transactions": len(transactions)},
        )
        return ReportingResult.succeeded(
            report_id,
            len(transactions),
            message="Rapport e-reporting soumis avec succès",
        )

    def requires_ereporting(self, invoice: Invoice) -> bool:
        if invoice.status is InvoiceStatus.DRAFT:
            return False
        return transaction_type_for(invoice).requires_ereporting

    def reportable_transactions(self, invoices: Iterable[Invoice]) -> List[EReportingTransaction]:
        return [self.create_transaction(i) for i in invoices if self.requires_ereporting(i)]


__all__ = ["EU_COUNTRY_CODES", "EReportingService", "transaction_type_for"]
