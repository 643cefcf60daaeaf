"""Factures d'exemple déterministes pour les tests et la CLI."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from .company import CompanyData
from .dto import Address, Invoice, InvoiceLine, Party, build_invoice
from .enums import InvoiceType


@dataclass(frozen=True)
class SampleScenario:
    code: str
    description: str
    line_specs: tuple[tuple[str, str, str, str], ...]


SELLER_COMPANY = CompanyData(
    name="Atelier Exemple SAS",
    address="12 rue de la République",
    postal_code="69002",
    city="Lyon",
    country_code="FR",
    siret="73282932000074",
    vat_number="FR44732829320",
    email="facturation@atelier-exemple.fr",
    legal_form="SAS",
    share_capital="10 000 EUR",
    rcs="RCS Lyon 732 829 320",
    iban="FR7630006000011234567890189",
    bic="AGRIFRPP",
)

BUYER_PARTY = Party(
    name="Client Exemple SARL",
    address=Address(
        street="5 avenue Foch",
        postal_code="75016",
        city="Paris",
        country_code="FR",
    ),
    siret="55208131766522",
    vat_id="FR40552081317",
)

CONSUMER_PARTY = Party(
    name="Jeanne Martin",
    address=Address(street="3 place Bellecour", postal_code="69002", city="Lyon"),
)

EU_BUYER_PARTY = Party(
    name="Kunde GmbH",
    address=Address(
        street="Customer Way 5",
        postal_code="20095",
        city="Hamburg",
        country_code="DE",
    ),
    vat_id="DE123456789",
)


def _make_line(spec: tuple[str, str, str, str]) -> InvoiceLine:
    description, quantity, unit_price, rate = spec
    return InvoiceLine(
        description=description,
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        vat_rate=Decimal(rate),
    )


SCENARIOS: List[SampleScenario] = [
    SampleScenario("01", "single_20", (("Conseil", "1", "100.00", "20"),)),
    SampleScenario(
        "02",
        "dual_20",
        (
            ("Prestation A", "1", "80.00", "20"),
            ("Prestation B", "3", "20.00", "20"),
        ),
    ),
    SampleScenario(
        "03",
        "mixed_10_20",
        (
            ("Conseil", "1", "100.00", "20"),
            ("Restauration", "2", "30.00", "10"),
        ),
    ),
    SampleScenario(
        "04",
        "reduced_5_5",
        (("Livres", "4", "12.50", "5.5"),),
    ),
    SampleScenario(
        "05",
        "mixed_all",
        (
            ("Conseil", "1", "100.00", "20"),
            ("Restauration", "1", "50.00", "10"),
            ("Livres", "2", "15.00", "5.5"),
            ("Presse", "3", "2.00", "2.1"),
        ),
    ),
    SampleScenario(
        "06",
        "fractional_quantities",
        (
            ("Demi-journée de conseil", "0.5", "199.99", "20"),
            ("Atelier", "1.25", "80.40", "10"),
        ),
    ),
    SampleScenario(
        "07",
        "rounding_edge",
        (
            ("Ligne A", "3", "33.333", "20"),
            ("Ligne B", "4", "14.375", "5.5"),
        ),
    ),
]


def iter_sample_scenarios() -> Iterable[SampleScenario]:
    return list(SCENARIOS)


def build_sample_invoice(
    scenario: SampleScenario,
    *,
    issue_date: date,
    buyer: Party = BUYER_PARTY,
    payment_terms: str = "30 jours net",
    company_id: Optional[int] = None,
    type: InvoiceType = InvoiceType.INVOICE,
    credited_invoice_number: Optional[str] = None,
) -> Invoice:
    return build_invoice(
        buyer=buyer,
        lines=[_make_line(spec) for spec in scenario.line_specs],
        issue_date=issue_date,
        payment_terms=payment_terms,
        type=type,
        company_id=company_id,
        credited_invoice_number=credited_invoice_number,
    )


__all__ = [
    "BUYER_PARTY",
    "CONSUMER_PARTY",
    "EU_BUYER_PARTY",
    "SCENARIOS",
    "SELLER_COMPANY",
    "SampleScenario",
    "build_sample_invoice",
    "iter_sample_scenarios",
]
