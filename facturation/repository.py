"""Persistance des factures (SQLAlchemy Core, document JSON + colonnes de requête)."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

import sqlalchemy as sa
from sqlalchemy import MetaData, Table
from sqlalchemy.engine import Connection

from backend.core.db import METADATA, JSONType

from .dto import Invoice
from .enums import InvoiceStatus
from .sequence_store import company_key

FEC_STATUSES = (
    InvoiceStatus.FINALIZED,
    InvoiceStatus.SENT,
    InvoiceStatus.PAID,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
)
UNPAID_STATUSES = (
    InvoiceStatus.FINALIZED,
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
)


def get_invoices_table(metadata: MetaData) -> Table:
    return sa.Table(
        "invoices",
        metadata,
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("company_key", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("number", sa.String(32), nullable=True),
        sa.Column("fiscal_year", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("total_net", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_tax", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_gross", sa.Numeric(14, 2), nullable=False),
        sa.Column("document", JSONType, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("company_key", "number", name="uq_invoices_company_number"),
        sa.Index("ix_invoices_status_issue_date", "status", "issue_date"),
        extend_existing=True,
    )


INVOICES = get_invoices_table(METADATA)


def _statuses(values: Iterable[InvoiceStatus]) -> List[str]:
    return [status.value for status in values]


class InvoiceRepository:
    def __init__(self, table: Table = INVOICES) -> None:
        self._table = table

    def save(self, conn: Connection, invoice: Invoice) -> None:
        """Insère ou met à jour ; le numéro attribué est immuable."""

        t = self._table
        totals = invoice.compute_totals()
        now = datetime.now(timezone.utc)
        values = {
            "company_key": company_key(invoice.company_id),
            "company_id": invoice.company_id,
            "number": invoice.number,
            "fiscal_year": invoice.fiscal_year,
            "type": invoice.type.value,
            "status": invoice.status.value,
            "issue_date": invoice.issue_date,
            "due_date": invoice.due_date,
            "customer_name": invoice.buyer.name,
            "total_net": totals.total_net,
            "total_tax": totals.total_tax,
            "total_gross": totals.total_gross,
            "document": invoice.to_dict(),
            "updated_at": now,
        }

        current = conn.execute(
            sa.select(t.c.number).where(t.c.id == invoice.invoice_id)
        ).first()
        if current is None:
            conn.execute(sa.insert(t).values(id=invoice.invoice_id, created_at=now, **values))
            return

        stored_number = current[0]
        if stored_number is not None and stored_number != invoice.number:
            raise ValueError(
                f"invoice {invoice.invoice_id} already numbered {stored_number}; numbers are immutable"
            )
        conn.execute(sa.update(t).where(t.c.id == invoice.invoice_id).values(**values))

    def _fetch_one(self, conn: Connection, condition, for_update: bool) -> Optional[Invoice]:
        stmt = sa.select(self._table.c.document).where(condition)
        if for_update:
            stmt = stmt.with_for_update()
        row = conn.execute(stmt).first()
        return Invoice.from_dict(row[0]) if row else None

    def get(self, conn: Connection, invoice_id: str, *, for_update: bool = False) -> Optional[Invoice]:
        return self._fetch_one(conn, self._table.c.id == invoice_id, for_update)

    def get_by_number(
        self,
        conn: Connection,
        number: str,
        company_id: Optional[int] = None,
        *,
        for_update: bool = False,
    ) -> Optional[Invoice]:
        """Pièce ``number`` de la société ``company_id`` (``None`` en mono-société).

        ``for_update`` verrouille la ligne jusqu'à la fin de la transaction
        appelante, à utiliser avant toute réécriture du document.
        """

        t = self._table
        condition = sa.and_(t.c.company_key == company_key(company_id), t.c.number == number)
        return self._fetch_one(conn, condition, for_update)

    def _select_documents(
        self,
        conn: Connection,
        *conditions,
        company_id: Optional[int],
        for_update: bool = False,
    ) -> List[Invoice]:
        t = self._table
        stmt = sa.select(t.c.document).where(*conditions)
        if company_id is not None:
            stmt = stmt.where(t.c.company_id == company_id)
        stmt = stmt.order_by(t.c.issue_date.asc(), t.c.number.asc())
        if for_update:
            stmt = stmt.with_for_update()
        return [Invoice.from_dict(row[0]) for row in conn.execute(stmt)]

    def find_for_fec_export(
        self, conn: Connection, start: date, end: date, company_id: Optional[int] = None
    ) -> List[Invoice]:
        """Documents finalisés (hors brouillons et annulés) émis entre ``start`` et ``end`` inclus."""

        t = self._table
        return self._select_documents(
            conn,
            t.c.status.in_(_statuses(FEC_STATUSES)),
            t.c.issue_date >= start,
            t.c.issue_date <= end,
            company_id=company_id,
        )

    def find_by_date_range(
        self, conn: Connection, start: date, end: date, company_id: Optional[int] = None
    ) -> List[Invoice]:
        t = self._table
        return self._select_documents(
            conn, t.c.issue_date >= start, t.c.issue_date <= end, company_id=company_id
        )

    def find_by_status(
        self, conn: Connection, status: InvoiceStatus, company_id: Optional[int] = None
    ) -> List[Invoice]:
        return self._select_documents(
            conn, self._table.c.status == status.value, company_id=company_id
        )

    def find_unpaid(self, conn: Connection, company_id: Optional[int] = None) -> List[Invoice]:
        return self._select_documents(
            conn, self._table.c.status.in_(_statuses(UNPAID_STATUSES)), company_id=company_id
        )

    def find_overdue(
        self,
        conn: Connection,
        today: date,
        company_id: Optional[int] = None,
        *,
        for_update: bool = False,
    ) -> List[Invoice]:
        t = self._table
        return self._select_documents(
            conn,
            t.c.status.in_(_statuses(UNPAID_STATUSES)),
            t.c.due_date < today,
            company_id=company_id,
            for_update=for_update,
        )

    def count_by_fiscal_year(
        self, conn: Connection, fiscal_year: int, company_id: Optional[int] = None
    ) -> int:
        t = self._table
        stmt = sa.select(sa.func.count()).select_from(t).where(t.c.fiscal_year == fiscal_year)
        if company_id is not None:
            stmt = stmt.where(t.c.company_id == company_id)
        return int(conn.execute(stmt).scalar_one())


__all__ = ["FEC_STATUSES", "INVOICES", "InvoiceRepository", "get_invoices_table"]
