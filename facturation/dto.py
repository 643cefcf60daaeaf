"""Objets métier des factures et avoirs.

Les montants sont des ``Decimal`` arrondis au centime avec ``ROUND_HALF_UP``.
La TVA est calculée ligne par ligne puis cumulée par taux, ce qui donne les
mêmes totaux que le Factur-X, le FEC et l'e-reporting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from .due_date import DueDateCalculator
from .enums import InvoiceStatus, InvoiceType, PaymentMethod, TaxCategoryCode
from .exceptions import InvoiceStateError


DecimalLike = Decimal | str | int | float

ZERO = Decimal("0.00")


def _to_decimal(value: DecimalLike) -> Decimal:
    """Convertit une entrée en ``Decimal`` sans erreur d'arrondi binaire.

    Les flottants passent par ``str`` pour rester reproductibles.
    """

    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a decimal amount")
    if isinstance(value, (int, str, float)):
        return Decimal(str(value))
    raise TypeError(f"Unsupported decimal input: {type(value)!r}")


def quantize_money(amount: DecimalLike) -> Decimal:
    """Arrondit au centime (ROUND_HALF_UP)."""

    return _to_decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class Address:
    street: str
    postal_code: str
    city: str
    country_code: str = "FR"


@dataclass(frozen=True, slots=True)
class Party:
    name: str
    address: Address
    siret: Optional[str] = None
    vat_id: Optional[str] = None
    email: Optional[str] = None
    iban: Optional[str] = None
    bic: Optional[str] = None

    @property
    def siren(self) -> Optional[str]:
        return self.siret[:9] if self.siret else None


@dataclass(slots=True)
class InvoiceLine:
    description: str
    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal
    discount_rate: Decimal = ZERO
    tax_category: TaxCategoryCode = TaxCategoryCode.STANDARD
    unit_code: str = "C62"

    def __post_init__(self) -> None:
        self.quantity = _to_decimal(self.quantity)
        self.unit_price = _to_decimal(self.unit_price)
        self.vat_rate = quantize_money(self.vat_rate)
        self.discount_rate = _to_decimal(self.discount_rate)
        if self.tax_category.requires_zero_rate and self.vat_rate != ZERO:
            raise ValueError(
                f"tax category {self.tax_category.value} requires a 0% rate, got {self.vat_rate}"
            )

    def gross_before_discount(self) -> Decimal:
        return quantize_money(self.quantity * self.unit_price)

    def net_amount(self) -> Decimal:
        factor = Decimal("1") - self.discount_rate / Decimal("100")
        return quantize_money(self.quantity * self.unit_price * factor)

    def tax_amount(self) -> Decimal:
        return quantize_money(self.net_amount() * self.vat_rate / Decimal("100"))

    def gross_amount(self) -> Decimal:
        return quantize_money(self.net_amount() + self.tax_amount())


@dataclass(frozen=True, slots=True)
class Payment:
    amount: Decimal
    paid_at: date
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", quantize_money(self.amount))
        if self.amount <= ZERO:
            raise ValueError("payment amount must be positive")


@dataclass(slots=True)
class Totals:
    net_by_rate: Dict[Decimal, Decimal]
    tax_by_rate: Dict[Decimal, Decimal]
    total_net: Decimal
    total_tax: Decimal
    total_gross: Decimal

    def net_for_rate(self, rate: DecimalLike) -> Decimal:
        return self.net_by_rate.get(quantize_money(rate), ZERO)

    def tax_for_rate(self, rate: DecimalLike) -> Decimal:
        return self.tax_by_rate.get(quantize_money(rate), ZERO)


@dataclass(slots=True)
class Invoice:
    """Facture ou avoir.

    ``number`` et ``fiscal_year`` restent vides tant que le document est un
    brouillon ; ils sont posés une seule fois lors de la finalisation.
    """

    buyer: Party
    lines: List[InvoiceLine]
    issue_date: date
    due_date: date
    type: InvoiceType = InvoiceType.INVOICE
    status: InvoiceStatus = InvoiceStatus.DRAFT
    company_id: Optional[int] = None
    invoice_id: str = field(default_factory=lambda: uuid4().hex)
    currency: str = "EUR"
    payment_terms: str = ""
    payments: List[Payment] = field(default_factory=list)
    number: Optional[str] = None
    fiscal_year: Optional[int] = None
    credited_invoice_number: Optional[str] = None
    buyer_reference: Optional[str] = None
    finalized_at: Optional[datetime] = None

    def compute_totals(self) -> Totals:
        if not self.lines:
            raise ValueError("Invoice requires at least one line")

        net_by_rate: Dict[Decimal, Decimal] = {}
        tax_by_rate: Dict[Decimal, Decimal] = {}

        for line in self.lines:
            rate = line.vat_rate
            net_by_rate[rate] = quantize_money(net_by_rate.get(rate, ZERO) + line.net_amount())
            tax_by_rate[rate] = quantize_money(tax_by_rate.get(rate, ZERO) + line.tax_amount())

        total_net = quantize_money(sum(net_by_rate.values(), ZERO))
        total_tax = quantize_money(sum(tax_by_rate.values(), ZERO))

        return Totals(
            net_by_rate=dict(sorted(net_by_rate.items())),
            tax_by_rate=dict(sorted(tax_by_rate.items())),
            total_net=total_net,
            total_tax=total_tax,
            total_gross=quantize_money(total_net + total_tax),
        )

    def validate(self) -> None:
        if not self.currency or len(self.currency) != 3:
            raise ValueError("Currency must be a 3-letter ISO code")
        if self.issue_date > self.due_date:
            raise ValueError("Due date must not be before issue date")
        if self.type is InvoiceType.CREDIT_NOTE and not self.credited_invoice_number:
            raise ValueError("Credit note must reference the credited invoice")
        self.compute_totals()

    @property
    def is_credit_note(self) -> bool:
        return self.type is InvoiceType.CREDIT_NOTE

    @property
    def amount_paid(self) -> Decimal:
        return quantize_money(sum((p.amount for p in self.payments), ZERO))

    @property
    def remaining_amount(self) -> Decimal:
        return quantize_money(self.compute_totals().total_gross - self.amount_paid)

    @property
    def is_fully_paid(self) -> bool:
        return self.remaining_amount <= ZERO

    def last_payment(self) -> Optional[Payment]:
        if not self.payments:
            return None
        return max(self.payments, key=lambda p: p.paid_at)

    def record_payment(self, payment: Payment) -> InvoiceStatus:
        """Enregistre un règlement et met à jour le statut (payée / partiellement payée)."""

        if not self.status.accepts_payments:
            raise InvoiceStateError(
                f"cannot record a payment on a {self.status.value} invoice"
            )
        self.payments.append(payment)
        self.status = InvoiceStatus.PAID if self.is_fully_paid else InvoiceStatus.PARTIALLY_PAID
        return self.status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoice_id": self.invoice_id,
            "company_id": self.company_id,
            "type": self.type.value,
            "status": self.status.value,
            "number": self.number,
            "fiscal_year": self.fiscal_year,
            "issue_date": self.issue_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "currency": self.currency,
            "payment_terms": self.payment_terms,
            "credited_invoice_number": self.credited_invoice_number,
            "buyer_reference": self.buyer_reference,
            "finalized_at": (
                _ensure_utc(self.finalized_at).isoformat() if self.finalized_at else None
            ),
            "buyer": {
                "name": self.buyer.name,
                "siret": self.buyer.siret,
                "vat_id": self.buyer.vat_id,
                "email": self.buyer.email,
                "iban": self.buyer.iban,
                "bic": self.buyer.bic,
                "address": {
                    "street": self.buyer.address.street,
                    "postal_code": self.buyer.address.postal_code,
                    "city": self.buyer.address.city,
                    "country_code": self.buyer.address.country_code,
                },
            },
            "lines": [
                {
                    "description": line.description,
                    "quantity": str(line.quantity),
                    "unit_price": str(line.unit_price),
                    "vat_rate": str(line.vat_rate),
                    "discount_rate": str(line.discount_rate),
                    "tax_category": line.tax_category.value,
                    "unit_code": line.unit_code,
                }
                for line in self.lines
            ],
            "payments": [
                {
                    "amount": str(p.amount),
                    "paid_at": p.paid_at.isoformat(),
                    "method": p.method.value,
                    "reference": p.reference,
                }
                for p in self.payments
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Invoice":
        buyer = data["buyer"]
        finalized_at = data.get("finalized_at")
        return cls(
            invoice_id=data["invoice_id"],
            company_id=data.get("company_id"),
            type=InvoiceType(data["type"]),
            status=InvoiceStatus(data["status"]),
            number=data.get("number"),
            fiscal_year=data.get("fiscal_year"),
            issue_date=date.fromisoformat(data["issue_date"]),
            due_date=date.fromisoformat(data["due_date"]),
            currency=data.get("currency", "EUR"),
            payment_terms=data.get("payment_terms", ""),
            credited_invoice_number=data.get("credited_invoice_number"),
            buyer_reference=data.get("buyer_reference"),
            finalized_at=datetime.fromisoformat(finalized_at) if finalized_at else None,
            buyer=Party(
                name=buyer["name"],
                siret=buyer.get("siret"),
                vat_id=buyer.get("vat_id"),
                email=buyer.get("email"),
                iban=buyer.get("iban"),
                bic=buyer.get("bic"),
                address=Address(**buyer["address"]),
            ),
            lines=[
                InvoiceLine(
                    description=line["description"],
                    quantity=Decimal(line["quantity"]),
                    unit_price=Decimal(line["unit_price"]),
                    vat_rate=Decimal(line["vat_rate"]),
                    discount_rate=Decimal(line.get("discount_rate", "0")),
                    tax_category=TaxCategoryCode(line.get("tax_category", "S")),
                    unit_code=line.get("unit_code", "C62"),
                )
                for line in data["lines"]
            ],
            payments=[
                Payment(
                    amount=Decimal(p["amount"]),
                    paid_at=date.fromisoformat(p["paid_at"]),
                    method=PaymentMethod(p["method"]),
                    reference=p.get("reference"),
                )
                for p in data.get("payments", [])
            ],
        )


def build_invoice(
    *,
    buyer: Party,
    lines: Iterable[InvoiceLine],
    issue_date: date,
    due_date: Optional[date] = None,
    payment_terms: str = "",
    type: InvoiceType = InvoiceType.INVOICE,
    company_id: Optional[int] = None,
    currency: str = "EUR",
    credited_invoice_number: Optional[str] = None,
    invoice_id: Optional[str] = None,
) -> Invoice:
    """Construit un brouillon validé ; l'échéance découle des conditions si absente."""

    if due_date is None:
        due_date = DueDateCalculator().calculate(issue_date, payment_terms)

    invoice = Invoice(
        buyer=buyer,
        lines=list(lines),
        issue_date=issue_date,
        due_date=due_date,
        type=type,
        company_id=company_id,
        currency=currency,
        payment_terms=payment_terms,
        credited_invoice_number=credited_invoice_number,
    )
    if invoice_id:
        invoice.invoice_id = invoice_id
    invoice.validate()
    return invoice


__all__ = [
    "Address",
    "DecimalLike",
    "Invoice",
    "InvoiceLine",
    "Party",
    "Payment",
    "Totals",
    "build_invoice",
    "quantize_money",
]
