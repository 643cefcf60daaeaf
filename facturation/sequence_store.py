"""Compteurs de numérotation persistés par (société, exercice, type de document).

Contrat de concurrence :

* ``find_or_create`` est idempotent. Deux créateurs simultanés se départagent
  sur la contrainte d'unicité ; le perdant relit la ligne du gagnant.
* ``lock_for_update`` pose un verrou exclusif bloquant (``SELECT ... FOR
  UPDATE``) tenu jusqu'au commit/rollback de la transaction appelante. Hors
  transaction, l'appel est refusé.
* ``increment`` n'agit que sur une ligne verrouillée et vérifie que
  ``last_number`` n'a pas bougé depuis la lecture.

Sous SQLite, qui n'a pas de verrou de ligne, ``backend.core.db.create_engine``
ouvre chaque transaction en ``BEGIN IMMEDIATE`` : le verrou d'écriture de la
base joue le rôle du verrou de ligne.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import MetaData, Table
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError, IntegrityError

from backend.core.db import METADATA
from backend.core.observability.logging import get_logger

from .enums import InvoiceType
from .exceptions import (
    SequenceConsistencyError,
    SequenceLockError,
    TransactionRequiredError,
)
from .fiscal_calendar import FiscalYearConfig

logger = get_logger(__name__)

# NULLs are distinct in unique constraints: mono-company rows use key 0
MONO_COMPANY_KEY = 0

_LOCK_SQLSTATES = frozenset({"55P03", "40P01", "40001"})
_LOCK_MESSAGES = ("database is locked", "deadlock", "lock timeout", "lock wait timeout")


def get_invoice_sequences_table(metadata: MetaData) -> Table:
    return sa.Table(
        "invoice_sequences",
        metadata,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("company_key", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("fiscal_year", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "company_key", "fiscal_year", "type", name="uq_invoice_sequences_company_year_type"
        ),
        sa.CheckConstraint("last_number >= 0", name="last_number_non_negative"),
        extend_existing=True,
    )


SEQUENCES = get_invoice_sequences_table(METADATA)


def company_key(company_id: Optional[int]) -> int:
    if company_id is None:
        return MONO_COMPANY_KEY
    if company_id <= 0:
        raise ValueError("company_id must be a positive integer")
    return company_id


@dataclass(slots=True)
class FiscalYearSequence:
    id: int
    company_id: Optional[int]
    fiscal_year: int
    type: InvoiceType
    start_date: date
    end_date: date
    last_number: int = 0

    @property
    def next_number(self) -> int:
        return self.last_number + 1

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date


def _from_row(row) -> FiscalYearSequence:
    return FiscalYearSequence(
        id=row["id"],
        company_id=row["company_id"],
        fiscal_year=row["fiscal_year"],
        type=InvoiceType(row["type"]),
        start_date=row["start_date"],
        end_date=row["end_date"],
        last_number=row["last_number"],
    )


def _is_lock_failure(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _LOCK_SQLSTATES:
        return True
    text = str(orig).lower()
    return any(marker in text for marker in _LOCK_MESSAGES)


def _require_transaction(conn: Connection, operation: str) -> None:
    if not conn.in_transaction():
        raise TransactionRequiredError(f"{operation} must run inside an active transaction")


class SequenceStore:
    def __init__(self, table: Table = SEQUENCES) -> None:
        self._table = table

    def _where(self, company_id: Optional[int], fiscal_year: int, type: InvoiceType):
        t = self._table
        return sa.and_(
            t.c.company_key == company_key(company_id),
            t.c.fiscal_year == fiscal_year,
            t.c.type == type.value,
        )

    def get(
        self,
        conn: Connection,
        company_id: Optional[int],
        fiscal_year: int,
        type: InvoiceType,
    ) -> Optional[FiscalYearSequence]:
        """Lecture sans verrou ; ``last_number`` peut être périmé, ne jamais l'utiliser pour prédire un numéro."""

        row = conn.execute(
            sa.select(self._table).where(self._where(company_id, fiscal_year, type))
        ).mappings().first()
        return _from_row(row) if row else None

    def find_or_create(
        self,
        conn: Connection,
        company_id: Optional[int],
        invoice_date: date,
        type: InvoiceType,
        fiscal_config: FiscalYearConfig,
    ) -> FiscalYearSequence:
        """Garantit l'existence du compteur de l'exercice de ``invoice_date``.

        Le compteur retourné porte l'exercice calculé ; l'appelant le réutilise
        tel quel plutôt que de le recalculer.
        """

        _require_transaction(conn, "find_or_create")
        fiscal_year = fiscal_config.fiscal_year_of(invoice_date)

        existing = self.get(conn, company_id, fiscal_year, type)
        if existing is not None:
            return existing

        start, end = fiscal_config.bounds(fiscal_year)
        now = datetime.now(timezone.utc)
        try:
            with conn.begin_nested():
                conn.execute(
                    sa.insert(self._table).values(
                        company_key=company_key(company_id),
                        company_id=company_id,
                        fiscal_year=fiscal_year,
                        type=type.value,
                        start_date=start,
                        end_date=end,
                        last_number=0,
                        created_at=now,
                        updated_at=now,
                    )
                )
            logger.info(
                "sequence_created",
                extra={"company_id": company_id, "fiscal_year": fiscal_year, "type": type.value},
            )
        except IntegrityError as exc:
            # concurrent creator won; its row is read below
            logger.info(
                "sequence_create_conflict",
                extra={
                    "company_id": company_id,
                    "fiscal_year": fiscal_year,
                    "type": type.value,
                    "error_type": exc.__class__.__name__,
                },
            )

        created = self.get(conn, company_id, fiscal_year, type)
        if created is None:
            raise SequenceConsistencyError(
                f"sequence ({company_id}, {fiscal_year}, {type.value}) missing after creation"
            )
        return created

    def lock_for_update(
        self,
        conn: Connection,
        company_id: Optional[int],
        fiscal_year: int,
        type: InvoiceType,
    ) -> Optional[FiscalYearSequence]:
        """Verrou exclusif bloquant sur la ligne, jusqu'à la fin de la transaction."""

        _require_transaction(conn, "lock_for_update")
        stmt = (
            sa.select(self._table)
            .where(self._where(company_id, fiscal_year, type))
            .with_for_update()
        )
        try:
            row = conn.execute(stmt).mappings().first()
        except DBAPIError as exc:
            if _is_lock_failure(exc):
                logger.warning(
                    "sequence_lock_failed",
                    extra={"company_id": company_id, "fiscal_year": fiscal_year, "type": type.value},
                )
                raise SequenceLockError(
                    f"could not lock sequence ({company_id}, {fiscal_year}, {type.value})"
                ) from exc
            raise
        return _from_row(row) if row else None

    def increment(self, conn: Connection, sequence: FiscalYearSequence) -> int:
        """Passe ``last_number`` à ``last_number + 1`` et retourne la nouvelle valeur."""

        _require_transaction(conn, "increment")
        t = self._table
        try:
            result = conn.execute(
                sa.update(t)
                .where(t.c.id == sequence.id)
                .where(t.c.last_number == sequence.last_number)
                .values(
                    last_number=t.c.last_number + 1,
                    updated_at=datetime.now(timezone.utc),
                )
            )
        except DBAPIError as exc:
            if _is_lock_failure(exc):
                raise SequenceLockError(f"could not update sequence {sequence.id}") from exc
            raise
        if result.rowcount != 1:
            raise SequenceConsistencyError(
                f"sequence {sequence.id} changed while locked (expected last_number={sequence.last_number})"
            )
        sequence.last_number += 1
        return sequence.last_number


__all__ = [
    "FiscalYearSequence",
    "MONO_COMPANY_KEY",
    "SEQUENCES",
    "SequenceStore",
    "company_key",
    "get_invoice_sequences_table",
]
