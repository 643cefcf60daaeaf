"""Numérotation séquentielle sans trou des factures et avoirs.

``InvoiceNumberGenerator.generate`` doit être appelé dans une transaction
d'écriture ouverte par l'appelant (``engine.begin()``). Chaque appel consomme
un numéro : l'appelant garantit un seul appel par finalisation. Aucun nouvel
essai interne ; un ``SequenceLockError`` (``retryable``) remonte tel quel et la
transaction entière doit être rejouée.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.engine import Connection

from backend.core.observability.logging import get_logger

from .company import CompanyData
from .dto import Invoice
from .enums import InvoiceType
from .exceptions import NumberingError, SequenceConsistencyError, TransactionRequiredError
from .sequence_store import SequenceStore

logger = get_logger(__name__)

DEFAULT_PADDING = 4


def format_invoice_number(
    type: InvoiceType, fiscal_year: int, sequence: int, padding: int = DEFAULT_PADDING
) -> str:
    """``FA-2025-0042`` / ``AV-2025-0042`` ; au-delà du padding, rien n'est tronqué."""

    if sequence < 1:
        raise ValueError("sequence must be >= 1")
    if padding < 1:
        raise ValueError("padding must be >= 1")
    return f"{type.prefix}-{fiscal_year}-{sequence:0{padding}d}"


class InvoiceNumberGenerator:
    def __init__(
        self,
        store: Optional[SequenceStore] = None,
        *,
        padding: int = DEFAULT_PADDING,
    ) -> None:
        if padding < 1:
            raise ValueError("padding must be >= 1")
        self._store = store or SequenceStore()
        self._padding = padding

    def generate(self, conn: Connection, invoice: Invoice, company: CompanyData) -> str:
        """Attribue le prochain numéro à ``invoice`` et le retourne.

        Pose aussi ``invoice.fiscal_year``. Ne modifie ni ``invoice.number`` ni
        le statut : c'est le rôle du finaliseur.
        """

        if not conn.in_transaction():
            raise TransactionRequiredError("number generation must run inside an active transaction")
        if invoice.issue_date is None:
            raise NumberingError("invoice date is required for numbering")
        if not isinstance(invoice.type, InvoiceType):
            raise NumberingError(f"unsupported document type {invoice.type!r}")

        config = company.fiscal_year_config
        sequence = self._store.find_or_create(
            conn, invoice.company_id, invoice.issue_date, invoice.type, config
        )
        fiscal_year = sequence.fiscal_year

        locked = self._store.lock_for_update(conn, invoice.company_id, fiscal_year, invoice.type)
        if locked is None:
            raise SequenceConsistencyError(
                f"sequence ({invoice.company_id}, {fiscal_year}, {invoice.type.value}) "
                "vanished between creation and lock"
            )

        next_number = self._store.increment(conn, locked)
        number = format_invoice_number(invoice.type, fiscal_year, next_number, self._padding)
        invoice.fiscal_year = fiscal_year

        logger.info(
            "invoice_number_generated",
            extra={
                "company_id": invoice.company_id,
                "fiscal_year": fiscal_year,
                "type": invoice.type.value,
                "sequence": next_number,
                "invoice_no": number,
            },
        )
        return number


def generate_number(
    conn: Connection,
    invoice: Invoice,
    company: CompanyData,
    *,
    padding: int = DEFAULT_PADDING,
) -> str:
    return InvoiceNumberGenerator(padding=padding).generate(conn, invoice, company)


__all__ = [
    "DEFAULT_PADDING",
    "InvoiceNumberGenerator",
    "format_invoice_number",
    "generate_number",
]
