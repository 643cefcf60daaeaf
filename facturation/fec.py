"""Export FEC (Fichier des Écritures Comptables, art. A47 A-1 du LPF).

Une écriture (``EcritureNum``) par pièce et une par règlement. Pièce :
client au TTC, ventes au HT, une ligne de TVA par taux ; les avoirs
inversent débit et crédit. Règlement : banque et client sur le journal de
banque, lettrés avec la ligne client de la pièce.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.engine import Connection

from backend.core.config import Settings, settings as default_settings

from .dto import Invoice, quantize_money
from .repository import InvoiceRepository

HEADER_COLUMNS = (
    "JournalCode",
    "JournalLib",
    "EcritureNum",
    "EcritureDate",
    "CompteNum",
    "CompteLib",
    "CompAuxNum",
    "CompAuxLib",
    "PieceRef",
    "PieceDate",
    "EcritureLib",
    "Debit",
    "Credit",
    "EcritureLet",
    "DateLet",
    "ValidDate",
    "Montantdevise",
    "Idevise",
)

# Plan Comptable Général
ACCOUNT_LABELS = {
    "411000": "Clients",
    "512000": "Banque",
    "707000": "Ventes de marchandises",
    "445710": "TVA collectée 20%",
    "445712": "TVA collectée 10%",
    "445711": "TVA collectée 5.5%",
    "445713": "TVA collectée 2.1%",
}

REDUCED_RATE_ACCOUNTS = {
    Decimal("10.00"): "445712",
    Decimal("5.50"): "445711",
    Decimal("2.10"): "445713",
}

STANDARD_RATE = Decimal("20.00")
ZERO_AMOUNT = "0,00"


@dataclass(frozen=True, slots=True)
class FecAccounts:
    customer: str = "411000"
    sales: str = "707000"
    vat_collected: str = "445710"
    journal_code: str = "VT"
    journal_label: str = "Ventes"
    bank: str = "512000"
    bank_journal_code: str = "BQ"
    bank_journal_label: str = "Banque"

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "FecAccounts":
        config = config or default_settings
        return cls(
            customer=config.FEC_CUSTOMER_ACCOUNT,
            sales=config.FEC_SALES_ACCOUNT,
            vat_collected=config.FEC_VAT_COLLECTED_ACCOUNT,
            journal_code=config.FEC_JOURNAL_CODE,
            journal_label=config.FEC_JOURNAL_LABEL,
            bank=config.FEC_BANK_ACCOUNT,
            bank_journal_code=config.FEC_BANK_JOURNAL_CODE,
            bank_journal_label=config.FEC_BANK_JOURNAL_LABEL,
        )


def format_amount(amount: Decimal) -> str:
    """Virgule décimale, sans séparateur de milliers : ``1234,50``."""

    return f"{quantize_money(amount):.2f}".replace(".", ",")


def format_date(d: date) -> str:
    return d.strftime("%Y%m%d")


def lettrage_code(counter: int) -> str:
    """1 → A, 26 → Z, 27 → AA."""

    if counter < 1:
        raise ValueError("lettrage counter must be >= 1")
    code = ""
    while counter > 0:
        counter -= 1
        code = chr(65 + counter % 26) + code
        counter //= 26
    return code


def customer_aux_code(invoice: Invoice) -> str:
    """SIRET du client, sinon son nom en majuscules sans accents (17 caractères)."""

    if invoice.buyer.siret:
        return invoice.buyer.siret
    decomposed = unicodedata.normalize("NFD", invoice.buyer.name)
    ascii_name = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return re.sub(r"[^A-Za-z0-9]", "", ascii_name).upper()[:17]


def fec_filename(siren: str, closing_date: date) -> str:
    return f"{siren}FEC{format_date(closing_date)}.txt"


class FecExporter:
    def __init__(self, accounts: Optional[FecAccounts] = None) -> None:
        self._accounts = accounts or FecAccounts.from_settings()
        self._ecriture_counter = 0
        self._lettrage_counter = 0

    def export(self, invoices: Iterable[Invoice]) -> str:
        """Retourne le contenu FEC (en-tête + lignes, séparateur ``|``)."""

        self._ecriture_counter = 0
        self._lettrage_counter = 0
        rows: List[str] = ["|".join(HEADER_COLUMNS)]
        for invoice in invoices:
            lettrage = ""
            if invoice.payments:
                self._lettrage_counter += 1
                lettrage = lettrage_code(self._lettrage_counter)
            rows.extend(self._invoice_rows(invoice, lettrage))
            rows.extend(self._payment_rows(invoice, lettrage))
        return "\n".join(rows)

    def _next_ecriture_num(self) -> str:
        self._ecriture_counter += 1
        return f"{self._ecriture_counter:06d}"

    @staticmethod
    def _row(columns: Sequence[str]) -> str:
        if len(columns) != len(HEADER_COLUMNS):
            raise ValueError(f"FEC line must have exactly 18 columns, got {len(columns)}")
        return "|".join(columns)

    @staticmethod
    def _sides(amount: Decimal, *, debit: bool) -> tuple[str, str]:
        formatted = format_amount(amount)
        return (formatted, ZERO_AMOUNT) if debit else (ZERO_AMOUNT, formatted)

    def _vat_account(self, rate: Decimal) -> str:
        if rate == STANDARD_RATE:
            return self._accounts.vat_collected
        return REDUCED_RATE_ACCOUNTS.get(rate, self._accounts.vat_collected)

    def _vat_label(self, rate: Decimal) -> str:
        if rate == STANDARD_RATE or rate in REDUCED_RATE_ACCOUNTS:
            label = ACCOUNT_LABELS.get(self._vat_account(rate))
            if label:
                return label
        return f"TVA collectée {rate:.1f}%"

    def _invoice_rows(self, invoice: Invoice, lettrage: str) -> List[str]:
        a = self._accounts
        num = self._next_ecriture_num()
        credit_note = invoice.is_credit_note
        label = f"{invoice.type.label} {invoice.number or ''}"
        piece_date = format_date(invoice.issue_date)
        number = invoice.number or ""
        totals = invoice.compute_totals()

        date_let = ""
        last = invoice.last_payment()
        if lettrage and last is not None:
            date_let = format_date(last.paid_at)

        debit, credit = self._sides(totals.total_gross, debit=not credit_note)
        rows = [
            self._row(
                (
                    a.journal_code, a.journal_label, num, piece_date,
                    a.customer, ACCOUNT_LABELS.get(a.customer, "Clients"),
                    customer_aux_code(invoice), invoice.buyer.name,
                    number, piece_date, label, debit, credit,
                    lettrage, date_let, piece_date, "", "",
                )
            )
        ]

        debit, credit = self._sides(totals.total_net, debit=credit_note)
        rows.append(
            self._row(
                (
                    a.journal_code, a.journal_label, num, piece_date,
                    a.sales, ACCOUNT_LABELS.get(a.sales, "Ventes de marchandises"),
                    "", "", number, piece_date, label, debit, credit,
                    "", "", piece_date, "", "",
                )
            )
        )

        for rate, vat_amount in totals.tax_by_rate.items():
            debit, credit = self._sides(vat_amount, debit=credit_note)
            rows.append(
                self._row(
                    (
                        a.journal_code, a.journal_label, num, piece_date,
                        self._vat_account(rate), self._vat_label(rate),
                        "", "", number, piece_date,
                        f"{label} - TVA {rate:.1f}%",
                        debit, credit, "", "", piece_date, "", "",
                    )
                )
            )
        return rows

    def _payment_rows(self, invoice: Invoice, lettrage: str) -> List[str]:
        a = self._accounts
        rows: List[str] = []
        credit_note = invoice.is_credit_note
        number = invoice.number or ""
        label = f"Règlement {invoice.type.label} {number}"
        for payment in invoice.payments:
            num = self._next_ecriture_num()
            paid = format_date(payment.paid_at)

            debit, credit = self._sides(payment.amount, debit=not credit_note)
            rows.append(
                self._row(
                    (
                        a.bank_journal_code, a.bank_journal_label, num, paid,
                        a.bank, ACCOUNT_LABELS.get(a.bank, "Banque"),
                        "", "", number, paid, label, debit, credit,
                        "", "", paid, "", "",
                    )
                )
            )
            debit, credit = self._sides(payment.amount, debit=credit_note)
            rows.append(
                self._row(
                    (
                        a.bank_journal_code, a.bank_journal_label, num, paid,
                        a.customer, ACCOUNT_LABELS.get(a.customer, "Clients"),
                        customer_aux_code(invoice), invoice.buyer.name,
                        number, paid, label, debit, credit,
                        lettrage, paid, paid, "", "",
                    )
                )
            )
        return rows


def export_range(
    conn: Connection,
    start: date,
    end: date,
    *,
    company_id: Optional[int] = None,
    repository: Optional[InvoiceRepository] = None,
    accounts: Optional[FecAccounts] = None,
) -> str:
    """FEC des pièces finalisées émises entre ``start`` et ``end`` inclus."""

    repository = repository or InvoiceRepository()
    invoices = repository.find_for_fec_export(conn, start, end, company_id)
    return FecExporter(accounts).export(invoices)


def line_balance(content: str) -> Dict[str, Decimal]:
    """Totaux débit/crédit par ``EcritureNum`` (contrôle d'équilibre)."""

    balances: Dict[str, Decimal] = {}
    for row in content.splitlines()[1:]:
        cols = row.split("|")
        debit = Decimal(cols[11].replace(",", "."))
        credit = Decimal(cols[12].replace(",", "."))
        balances[cols[2]] = balances.get(cols[2], Decimal("0")) + debit - credit
    return balances


__all__ = [
    "ACCOUNT_LABELS",
    "FecAccounts",
    "FecExporter",
    "HEADER_COLUMNS",
    "customer_aux_code",
    "export_range",
    "fec_filename",
    "format_amount",
    "lettrage_code",
    "line_balance",
]
