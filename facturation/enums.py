"""Énumérations métier : types de document, statuts, codes EN16931."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class InvoiceType(Enum):
    """Type de document soumis à numérotation."""

    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"

    @property
    def prefix(self) -> str:
        return "AV" if self is InvoiceType.CREDIT_NOTE else "FA"

    @property
    def document_type_code(self) -> str:
        """Code UNTDID 1001 (380 facture, 381 avoir)."""
        return "381" if self is InvoiceType.CREDIT_NOTE else "380"

    @property
    def label(self) -> str:
        return "Avoir" if self is InvoiceType.CREDIT_NOTE else "Facture"


class InvoiceStatus(Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    SENT = "sent"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

    @property
    def is_numbered(self) -> bool:
        return self is not InvoiceStatus.DRAFT

    @property
    def accepts_payments(self) -> bool:
        return self not in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED)


class PaymentMethod(Enum):
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    CHECK = "check"
    CASH = "cash"
    DIRECT_DEBIT = "direct_debit"
    OTHER = "other"


class PaymentMeansCode(Enum):
    """Codes UNTDID 4461 des moyens de paiement."""

    CASH = "10"
    CHECK = "20"
    CREDIT_TRANSFER = "30"
    BANK_ACCOUNT = "42"
    CREDIT_CARD = "48"
    DIRECT_DEBIT = "49"
    SEPA_CREDIT_TRANSFER = "58"
    SEPA_DIRECT_DEBIT = "59"

    @classmethod
    def from_payment_method(cls, method: PaymentMethod) -> "PaymentMeansCode":
        return _MEANS_BY_METHOD[method]


_MEANS_BY_METHOD = {
    PaymentMethod.CASH: PaymentMeansCode.CASH,
    PaymentMethod.CHECK: PaymentMeansCode.CHECK,
    PaymentMethod.BANK_TRANSFER: PaymentMeansCode.SEPA_CREDIT_TRANSFER,
    PaymentMethod.CREDIT_CARD: PaymentMeansCode.CREDIT_CARD,
    PaymentMethod.DIRECT_DEBIT: PaymentMeansCode.SEPA_DIRECT_DEBIT,
    PaymentMethod.OTHER: PaymentMeansCode.CREDIT_TRANSFER,
}


class TaxCategoryCode(Enum):
    """Catégories de TVA (UNCL 5305)."""

    STANDARD = "S"
    ZERO_RATE = "Z"
    EXEMPT = "E"
    REVERSE_CHARGE = "AE"
    INTRA_EU = "K"
    EXPORT = "G"
    NOT_SUBJECT = "O"

    @property
    def label(self) -> str:
        return _TAX_CATEGORY_LABELS[self]

    @property
    def requires_zero_rate(self) -> bool:
        return self is not TaxCategoryCode.STANDARD

    @property
    def exemption_reason_code(self) -> Optional[str]:
        return _EXEMPTION_CODES.get(self)


_TAX_CATEGORY_LABELS = {
    TaxCategoryCode.STANDARD: "TVA taux normal",
    TaxCategoryCode.ZERO_RATE: "TVA taux zéro",
    TaxCategoryCode.EXEMPT: "Exonéré de TVA",
    TaxCategoryCode.REVERSE_CHARGE: "Autoliquidation",
    TaxCategoryCode.INTRA_EU: "Livraison intracommunautaire",
    TaxCategoryCode.EXPORT: "Exportation",
    TaxCategoryCode.NOT_SUBJECT: "Non soumis à TVA",
}

_EXEMPTION_CODES = {
    TaxCategoryCode.REVERSE_CHARGE: "VATEX-EU-AE",
    TaxCategoryCode.INTRA_EU: "VATEX-EU-IC",
    TaxCategoryCode.EXPORT: "VATEX-EU-G",
}


class FacturXProfile(Enum):
    MINIMUM = "MINIMUM"
    BASIC_WL = "BASIC_WL"
    BASIC = "BASIC"
    EN16931 = "EN16931"
    EXTENDED = "EXTENDED"

    @property
    def urn(self) -> str:
        return _PROFILE_URNS[self]

    @property
    def xmp_conformance_level(self) -> str:
        """Valeur ``fx:ConformanceLevel`` des métadonnées XMP."""
        return "BASIC WL" if self is FacturXProfile.BASIC_WL else self.value

    @property
    def has_line_items(self) -> bool:
        return self not in (FacturXProfile.MINIMUM, FacturXProfile.BASIC_WL)


_PROFILE_URNS = {
    FacturXProfile.MINIMUM: "urn:factur-x.eu:1p0:minimum",
    FacturXProfile.BASIC_WL: "urn:factur-x.eu:1p0:basicwl",
    FacturXProfile.BASIC: "urn:cen.eu:en16931:2017#compliant#urn:factur-x.eu:1p0:basic",
    FacturXProfile.EN16931: "urn:cen.eu:en16931:2017",
    FacturXProfile.EXTENDED: "urn:cen.eu:en16931:2017#conformant#urn:factur-x.eu:1p0:extended",
}


class InvoiceHistoryAction(Enum):
    CREATED = "created"
    FINALIZED = "finalized"
    SENT = "sent"
    PAID = "paid"
    PAYMENT_RECEIVED = "payment_received"
    CANCELLED = "cancelled"
    STATUS_CHANGED = "status_changed"
    EDITED = "edited"


__all__ = [
    "FacturXProfile",
    "InvoiceHistoryAction",
    "InvoiceStatus",
    "InvoiceType",
    "PaymentMeansCode",
    "PaymentMethod",
    "TaxCategoryCode",
]
