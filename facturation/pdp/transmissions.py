"""Suivi persistant des transmissions PDP.

Une ligne par tentative de dépôt d'une facture auprès d'un connecteur. Une
transmission en échec (``failed``) est reprise sur la même ligne, qui compte
les nouvelles tentatives ; tout autre état antérieur ouvre une nouvelle ligne.
L'identifiant rendu par la PDP relie ``PdpDispatcher.get_status`` à la facture.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy import MetaData, Table
from sqlalchemy.engine import Connection, Engine

from backend.core.db import METADATA, JSONType
from backend.core.observability.logging import get_logger

from ..dto import Invoice
from ..repository import INVOICES
from .capability import PdpStatusCode
from .dispatcher import PdpDispatcher
from .dto import TransmissionResult
from .exceptions import PdpError

logger = get_logger(__name__)

DEFAULT_MAX_RETRIES = 3

TERMINAL_STATUSES = tuple(status for status in PdpStatusCode if status.is_terminal)


def get_invoice_transmissions_table(metadata: MetaData) -> Table:
    return sa.Table(
        "invoice_transmissions",
        metadata,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "invoice_id",
            sa.String(64),
            sa.ForeignKey(f"{INVOICES.name}.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("invoice_number", sa.String(32), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("connector_id", sa.String(50), nullable=False),
        sa.Column("transmission_id", sa.String(100), nullable=True),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("status_message", sa.Text(), nullable=True),
        sa.Column("status_history", JSONType, nullable=False),
        sa.Column("errors", JSONType, nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Index("ix_invoice_transmissions_invoice_id", "invoice_id"),
        sa.Index("ix_invoice_transmissions_connector_id", "connector_id"),
        sa.Index("ix_invoice_transmissions_transmission_id", "transmission_id"),
        sa.Index("ix_invoice_transmissions_status", "status"),
        extend_existing=True,
    )


TRANSMISSIONS = get_invoice_transmissions_table(METADATA)


@dataclass(frozen=True, slots=True)
class InvoiceTransmission:
    id: int
    invoice_id: str
    invoice_number: str
    company_id: Optional[int]
    connector_id: str
    transmission_id: Optional[str]
    status: PdpStatusCode
    status_message: Optional[str]
    retry_count: int
    last_retry_at: Optional[datetime]
    created_at: datetime
    status_history: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def can_retry(self, max_retries: int = DEFAULT_MAX_RETRIES) -> bool:
        return self.status is PdpStatusCode.FAILED and self.retry_count < max_retries


def _from_row(row) -> InvoiceTransmission:
    return InvoiceTransmission(
        id=row["id"],
        invoice_id=row["invoice_id"],
        invoice_number=row["invoice_number"],
        company_id=row["company_id"],
        connector_id=row["connector_id"],
        transmission_id=row["transmission_id"],
        status=PdpStatusCode(row["status"]),
        status_message=row["status_message"],
        retry_count=row["retry_count"],
        last_retry_at=row["last_retry_at"],
        created_at=row["created_at"],
        status_history=list(row["status_history"] or []),
        errors=list(row["errors"] or []),
    )


def _history_entry(status: PdpStatusCode, message: Optional[str], now: datetime) -> Dict[str, Any]:
    return {
        "status": status.value,
        "message": message,
        "timestamp": now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


class TransmissionRepository:
    def __init__(self, table: Table = TRANSMISSIONS) -> None:
        self._table = table

    def _select(
        self, conn: Connection, *conditions, order_by=None, limit=None
    ) -> List[InvoiceTransmission]:
        t = self._table
        stmt = sa.select(t).where(*conditions)
        stmt = stmt.order_by(*(order_by or (t.c.created_at.asc(), t.c.id.asc())))
        if limit is not None:
            stmt = stmt.limit(limit)
        return [_from_row(row) for row in conn.execute(stmt).mappings()]

    def record_attempt(
        self,
        conn: Connection,
        invoice: Invoice,
        connector_id: str,
        result: TransmissionResult,
        now: datetime,
    ) -> InvoiceTransmission:
        """Enregistre le résultat d'un dépôt.

        Reprend la dernière ligne de la facture si elle est en échec sur le
        même connecteur, sinon en crée une nouvelle.
        """

        t = self._table
        latest = self.find_latest_for_invoice(conn, invoice.invoice_id)
        entry = _history_entry(result.status, result.message, now)
        if (
            latest is not None
            and latest.status is PdpStatusCode.FAILED
            and latest.connector_id == connector_id
        ):
            conn.execute(
                sa.update(t)
                .where(t.c.id == latest.id)
                .values(
                    transmission_id=result.transmission_id or latest.transmission_id,
                    status=result.status.value,
                    status_message=result.message,
                    status_history=[*latest.status_history, entry],
                    errors=list(result.errors),
                    retry_count=latest.retry_count + 1,
                    last_retry_at=now,
                    updated_at=now,
                )
            )
            row_id = latest.id
        else:
            inserted = conn.execute(
                sa.insert(t).values(
                    invoice_id=invoice.invoice_id,
                    invoice_number=invoice.number,
                    company_id=invoice.company_id,
                    connector_id=connector_id,
                    transmission_id=result.transmission_id,
                    status=result.status.value,
                    status_message=result.message,
                    status_history=[entry],
                    errors=list(result.errors),
                    retry_count=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            row_id = inserted.inserted_primary_key[0]
        return self.get(conn, row_id)

    def update_status(
        self,
        conn: Connection,
        transmission_id: str,
        status: PdpStatusCode,
        message: Optional[str],
        now: datetime,
    ) -> Optional[InvoiceTransmission]:
        current = self.find_by_transmission_id(conn, transmission_id)
        if current is None:
            return None
        if current.status is status and current.status_message == message:
            return current
        t = self._table
        conn.execute(
            sa.update(t)
            .where(t.c.id == current.id)
            .values(
                status=status.value,
                status_message=message,
                status_history=[*current.status_history, _history_entry(status, message, now)],
                updated_at=now,
            )
        )
        return self.get(conn, current.id)

    def get(self, conn: Connection, row_id: int) -> Optional[InvoiceTransmission]:
        found = self._select(conn, self._table.c.id == row_id)
        return found[0] if found else None

    def find_latest_for_invoice(
        self, conn: Connection, invoice_id: str
    ) -> Optional[InvoiceTransmission]:
        t = self._table
        found = self._select(
            conn,
            t.c.invoice_id == invoice_id,
            order_by=(t.c.created_at.desc(), t.c.id.desc()),
            limit=1,
        )
        return found[0] if found else None

    def find_by_invoice(self, conn: Connection, invoice_id: str) -> List[InvoiceTransmission]:
        t = self._table
        return self._select(
            conn, t.c.invoice_id == invoice_id, order_by=(t.c.created_at.desc(), t.c.id.desc())
        )

    def find_by_transmission_id(
        self, conn: Connection, transmission_id: str
    ) -> Optional[InvoiceTransmission]:
        found = self._select(conn, self._table.c.transmission_id == transmission_id, limit=1)
        return found[0] if found else None

    def find_by_connector(self, conn: Connection, connector_id: str) -> List[InvoiceTransmission]:
        t = self._table
        return self._select(
            conn, t.c.connector_id == connector_id, order_by=(t.c.created_at.desc(), t.c.id.desc())
        )

    def find_pending(self, conn: Connection) -> List[InvoiceTransmission]:
        """Transmissions non terminales, plus anciennes d'abord."""

        terminal = [status.value for status in TERMINAL_STATUSES]
        return self._select(conn, self._table.c.status.not_in(terminal))

    def find_needing_retry(
        self, conn: Connection, max_retries: int = DEFAULT_MAX_RETRIES
    ) -> List[InvoiceTransmission]:
        t = self._table
        return self._select(
            conn,
            t.c.status == PdpStatusCode.FAILED.value,
            t.c.retry_count < max_retries,
        )

    def count_by_status(self, conn: Connection) -> Dict[str, int]:
        t = self._table
        stmt = sa.select(t.c.status, sa.func.count(t.c.id)).group_by(t.c.status)
        return {status: int(count) for status, count in conn.execute(stmt)}


def refresh_pending_statuses(
    engine: Engine,
    dispatcher: PdpDispatcher,
    *,
    repository: Optional[TransmissionRepository] = None,
    clock: Callable[[], datetime] | None = None,
) -> List[InvoiceTransmission]:
    """Interroge la PDP pour chaque transmission en cours et retourne celles modifiées.

    Un connecteur qui ne connaît pas la transmission est journalisé et ignoré.
    """

    repository = repository or TransmissionRepository()
    clock = clock or (lambda: datetime.now(timezone.utc))
    changed: List[InvoiceTransmission] = []
    with engine.begin() as conn:
        for transmission in repository.find_pending(conn):
            if not transmission.transmission_id:
                continue
            try:
                remote = dispatcher.get_status(
                    transmission.transmission_id, transmission.connector_id
                )
            except PdpError:
                logger.warning(
                    "pdp_status_unavailable",
                    extra={
                        "invoice_no": transmission.invoice_number,
                        "transmission_id": transmission.transmission_id,
                        "connector_id": transmission.connector_id,
                    },
                )
                continue
            if remote.status is transmission.status:
                continue
            updated = repository.update_status(
                conn, transmission.transmission_id, remote.status, remote.message, clock()
            )
            changed.append(updated)
            logger.info(
                "pdp_status_updated",
                extra={
                    "invoice_no": transmission.invoice_number,
                    "transmission_id": transmission.transmission_id,
                    "previous_status": transmission.status.value,
                    "status": remote.status.value,
                },
            )
    return changed


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "InvoiceTransmission",
    "TERMINAL_STATUSES",
    "TRANSMISSIONS",
    "TransmissionRepository",
    "get_invoice_transmissions_table",
    "refresh_pending_statuses",
]
