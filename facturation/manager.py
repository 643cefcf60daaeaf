"""Cycle de vie des pièces hors finalisation : brouillons, avoirs, annulation, retards.

Une pièce numérotée n'est jamais modifiée ni annulée : seule l'émission d'un
avoir la corrige. Les brouillons, sans numéro, restent librement modifiables
et leurs notices d'historique sont rangées par identifiant interne.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.engine import Connection, Engine

from backend.core.config import settings
from backend.core.observability.logging import get_logger
from backend.core.outbox.publisher import enqueue_event

from . import archive, history
from .dto import Invoice, build_invoice
from .due_date import DueDateCalculator
from .enums import InvoiceHistoryAction, InvoiceStatus, InvoiceType
from .exceptions import InvoiceNotFoundError, InvoiceStateError
from .repository import InvoiceRepository

logger = get_logger(__name__)

TOPIC_INVOICE_CREATED = "InvoiceCreated"
TOPIC_INVOICE_UPDATED = "InvoiceUpdated"
TOPIC_INVOICE_CANCELLED = "InvoiceCancelled"
TOPIC_CREDIT_NOTE_CREATED = "CreditNoteCreated"
TOPIC_INVOICE_OVERDUE = "InvoiceOverdue"

EDITABLE_FIELDS = frozenset(
    {"buyer", "lines", "payment_terms", "due_date", "buyer_reference", "currency"}
)


class InvoiceManager:
    def __init__(
        self,
        engine: Engine,
        *,
        repository: Optional[InvoiceRepository] = None,
        artifacts_dir: Optional[Path] = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._engine = engine
        self._repository = repository or InvoiceRepository()
        self._artifacts_dir = Path(artifacts_dir or settings.ARTIFACTS_DIR)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _draft_dir(self, invoice: Invoice) -> Path:
        return archive.draft_dir(self._artifacts_dir, invoice.company_id, invoice.invoice_id)

    def _locked_draft(
        self, conn: Connection, invoice_id: str, action: str, done: str
    ) -> Invoice:
        invoice = self._repository.get(conn, invoice_id, for_update=True)
        if invoice is None:
            raise InvoiceNotFoundError(f"invoice {invoice_id} not found")
        if invoice.status is InvoiceStatus.CANCELLED:
            raise InvoiceStateError(f"Cannot {action} invoice: invoice is already cancelled")
        if invoice.status is not InvoiceStatus.DRAFT:
            raise InvoiceStateError(
                f"Cannot {action} invoice: only DRAFT invoices can be {done}, "
                f"issue a credit note for {invoice.number}"
            )
        return invoice

    def create_draft(self, invoice: Invoice, *, actor: str = "system") -> Invoice:
        """Enregistre un brouillon et publie ``InvoiceCreated``."""

        if invoice.status is not InvoiceStatus.DRAFT or invoice.number is not None:
            raise InvoiceStateError("only unnumbered DRAFT invoices can be created")
        invoice.validate()
        with self._engine.begin() as conn:
            self._repository.save(conn, invoice)
            enqueue_event(
                conn,
                TOPIC_INVOICE_CREATED,
                {
                    "invoice_id": invoice.invoice_id,
                    "company_id": invoice.company_id,
                    "type": invoice.type.value,
                },
            )
        history.record(
            self._draft_dir(invoice),
            invoice.invoice_id,
            InvoiceHistoryAction.CREATED,
            self._clock(),
            actor=actor,
            details={"type": invoice.type.value},
        )
        logger.info(
            "invoice_draft_created",
            extra={"invoice_id": invoice.invoice_id, "company_id": invoice.company_id},
        )
        return invoice

    def update_draft(
        self, invoice_id: str, *, actor: str = "system", **changes: Any
    ) -> List[str]:
        """Modifie un brouillon et retourne les champs effectivement changés.

        Un changement des conditions de paiement sans échéance explicite
        recalcule l'échéance.
        """

        unknown = sorted(set(changes) - EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"fields not editable on an invoice: {', '.join(unknown)}")

        with self._engine.begin() as conn:
            invoice = self._locked_draft(conn, invoice_id, "update", "updated")
            if "lines" in changes:
                changes["lines"] = list(changes["lines"])
            changed = [name for name, value in changes.items() if getattr(invoice, name) != value]
            for name in changed:
                setattr(invoice, name, changes[name])
            if "payment_terms" in changed and "due_date" not in changes:
                due_date = DueDateCalculator().calculate(invoice.issue_date, invoice.payment_terms)
                if due_date != invoice.due_date:
                    invoice.due_date = due_date
                    changed.append("due_date")
            if not changed:
                return []
            invoice.validate()
            self._repository.save(conn, invoice)
            enqueue_event(
                conn,
                TOPIC_INVOICE_UPDATED,
                {
                    "invoice_id": invoice.invoice_id,
                    "company_id": invoice.company_id,
                    "fields": changed,
                },
            )

        history.record(
            self._draft_dir(invoice),
            invoice.invoice_id,
            InvoiceHistoryAction.EDITED,
            self._clock(),
            actor=actor,
            details={"fields": changed},
        )
        return changed

    def cancel(
        self, invoice_id: str, reason: Optional[str] = None, *, actor: str = "system"
    ) -> Invoice:
        """Annule un brouillon. Une pièce numérotée se corrige par un avoir."""

        with self._engine.begin() as conn:
            invoice = self._locked_draft(conn, invoice_id, "cancel", "cancelled")
            invoice.status = InvoiceStatus.CANCELLED
            self._repository.save(conn, invoice)
            enqueue_event(
                conn,
                TOPIC_INVOICE_CANCELLED,
                {
                    "invoice_id": invoice.invoice_id,
                    "company_id": invoice.company_id,
                    "reason": reason,
                },
            )

        history.record(
            self._draft_dir(invoice),
            invoice.invoice_id,
            InvoiceHistoryAction.CANCELLED,
            self._clock(),
            actor=actor,
            comment=reason,
        )
        logger.info(
            "invoice_cancelled",
            extra={"invoice_id": invoice.invoice_id, "company_id": invoice.company_id},
        )
        return invoice

    def create_credit_note(
        self,
        number: str,
        *,
        company_id: Optional[int] = None,
        issue_date: Optional[date] = None,
        payment_terms: Optional[str] = None,
        actor: str = "system",
    ) -> Invoice:
        """Prépare en brouillon l'avoir total de la facture ``number``.

        Les lignes sont copiées ; l'avoir sera numéroté dans sa propre série
        lors de sa finalisation.
        """

        with self._engine.begin() as conn:
            credited = self._repository.get_by_number(conn, number, company_id)
            if credited is None:
                raise InvoiceNotFoundError(f"invoice {number} not found for company {company_id!r}")
            if credited.type is not InvoiceType.INVOICE:
                raise InvoiceStateError(f"Cannot credit {number}: a credit note cannot be credited")
            if credited.status is InvoiceStatus.CANCELLED:
                raise InvoiceStateError(f"Cannot credit {number}: invoice is cancelled")

            credit_note = build_invoice(
                buyer=credited.buyer,
                lines=[replace(line) for line in credited.lines],
                issue_date=issue_date or self._clock().date(),
                payment_terms=credited.payment_terms if payment_terms is None else payment_terms,
                type=InvoiceType.CREDIT_NOTE,
                company_id=credited.company_id,
                currency=credited.currency,
                credited_invoice_number=credited.number,
            )
            credit_note.buyer_reference = credited.buyer_reference
            self._repository.save(conn, credit_note)
            enqueue_event(
                conn,
                TOPIC_CREDIT_NOTE_CREATED,
                {
                    "invoice_id": credit_note.invoice_id,
                    "company_id": credit_note.company_id,
                    "credited_invoice_number": credited.number,
                },
            )

        history.record(
            self._draft_dir(credit_note),
            credit_note.invoice_id,
            InvoiceHistoryAction.CREATED,
            self._clock(),
            actor=actor,
            details={"type": credit_note.type.value, "credited_invoice_number": credited.number},
        )
        logger.info(
            "credit_note_created",
            extra={
                "invoice_id": credit_note.invoice_id,
                "credited_invoice_no": credited.number,
                "company_id": credit_note.company_id,
            },
        )
        return credit_note

    def mark_overdue(self, today: date, company_id: Optional[int] = None) -> List[Invoice]:
        """Passe en retard les factures impayées dont l'échéance est dépassée."""

        marked: List[Invoice] = []
        with self._engine.begin() as conn:
            for invoice in self._repository.find_overdue(conn, today, company_id, for_update=True):
                if invoice.type is not InvoiceType.INVOICE:
                    continue
                if invoice.status is InvoiceStatus.OVERDUE:
                    continue
                previous = invoice.status
                invoice.status = InvoiceStatus.OVERDUE
                self._repository.save(conn, invoice)
                payload: Dict[str, Any] = {
                    "invoice_id": invoice.invoice_id,
                    "number": invoice.number,
                    "company_id": invoice.company_id,
                    "due_date": invoice.due_date.isoformat(),
                    "days_overdue": (today - invoice.due_date).days,
                    "remaining_amount": str(invoice.remaining_amount),
                    "previous_status": previous.value,
                }
                enqueue_event(conn, TOPIC_INVOICE_OVERDUE, payload)
                marked.append(invoice)

        now = self._clock()
        for invoice in marked:
            history.record(
                archive.invoice_dir(self._artifacts_dir, invoice.company_id, invoice.number),
                invoice.number,
                InvoiceHistoryAction.STATUS_CHANGED,
                now,
                details={"status": InvoiceStatus.OVERDUE.value, "due_date": invoice.due_date},
            )
        logger.info(
            "invoices_marked_overdue",
            extra={"count": len(marked), "company_id": company_id, "today": today.isoformat()},
        )
        return marked


__all__ = [
    "EDITABLE_FIELDS",
    "InvoiceManager",
    "TOPIC_CREDIT_NOTE_CREATED",
    "TOPIC_INVOICE_CANCELLED",
    "TOPIC_INVOICE_CREATED",
    "TOPIC_INVOICE_OVERDUE",
    "TOPIC_INVOICE_UPDATED",
]
