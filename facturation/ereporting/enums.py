"""Énumérations e-reporting."""

from __future__ import annotations

from enum import Enum

from ..fiscal_calendar import ReportingFrequency


class TransactionType(Enum):
    B2B_FRANCE = "b2b_france"
    B2B_INTRA_EU = "b2b_intra_eu"
    B2B_EXPORT = "b2b_export"
    B2C_FRANCE = "b2c_france"
    B2C_INTRA_EU = "b2c_intra_eu"
    B2C_EXPORT = "b2c_export"
    B2G_FRANCE = "b2g_france"

    @property
    def is_b2b(self) -> bool:
        return self in (TransactionType.B2B_FRANCE, TransactionType.B2B_INTRA_EU, TransactionType.B2B_EXPORT)

    @property
    def is_b2c(self) -> bool:
        return self in (TransactionType.B2C_FRANCE, TransactionType.B2C_INTRA_EU, TransactionType.B2C_EXPORT)

    @property
    def is_b2g(self) -> bool:
        return self is TransactionType.B2G_FRANCE

    @property
    def is_domestic(self) -> bool:
        return self in (TransactionType.B2B_FRANCE, TransactionType.B2C_FRANCE, TransactionType.B2G_FRANCE)

    @property
    def is_intra_eu(self) -> bool:
        return self in (TransactionType.B2B_INTRA_EU, TransactionType.B2C_INTRA_EU)

    @property
    def is_export(self) -> bool:
        return self in (TransactionType.B2B_EXPORT, TransactionType.B2C_EXPORT)

    @property
    def requires_ereporting(self) -> bool:
        """B2C et export B2B relèvent de l'e-reporting ; le B2B domestique de l'e-invoicing."""
        return self.is_b2c or self is TransactionType.B2B_EXPORT

    @property
    def label(self) -> str:
        return _TRANSACTION_LABELS[self]


_TRANSACTION_LABELS = {
    TransactionType.B2B_FRANCE: "B2B France",
    TransactionType.B2B_INTRA_EU: "B2B Intra-UE",
    TransactionType.B2B_EXPORT: "B2B Export",
    TransactionType.B2C_FRANCE: "B2C France",
    TransactionType.B2C_INTRA_EU: "B2C Intra-UE",
    TransactionType.B2C_EXPORT: "B2C Export",
    TransactionType.B2G_FRANCE: "B2G France",
}


class EReportingPaymentStatus(Enum):
    NOT_PAID = "not_paid"
    PARTIALLY_PAID = "partially_paid"
    FULLY_PAID = "fully_paid"

    @property
    def is_paid(self) -> bool:
        return self is EReportingPaymentStatus.FULLY_PAID

    @property
    def is_partially_paid(self) -> bool:
        return self is EReportingPaymentStatus.PARTIALLY_PAID

    @property
    def label(self) -> str:
        return {
            EReportingPaymentStatus.NOT_PAID: "Non payé",
            EReportingPaymentStatus.PARTIALLY_PAID: "Partiellement payé",
            EReportingPaymentStatus.FULLY_PAID: "Payé",
        }[self]


__all__ = ["EReportingPaymentStatus", "ReportingFrequency", "TransactionType"]
