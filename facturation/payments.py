"""Enregistrement des règlements sur les pièces finalisées."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from backend.core.config import settings
from backend.core.observability.logging import get_logger
from backend.core.outbox.publisher import enqueue_event

from . import archive, history
from .dto import Invoice, Payment
from .enums import InvoiceStatus
from .exceptions import InvoiceNotFoundError
from .repository import InvoiceRepository

logger = get_logger(__name__)

TOPIC_PAYMENT_RECEIVED = "PaymentReceived"
TOPIC_INVOICE_PAID = "InvoicePaid"


class PaymentManager:
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

    def record_payment(
        self, number: str, payment: Payment, company_id: Optional[int] = None
    ) -> Invoice:
        """Ajoute ``payment`` à la pièce ``number`` et met à jour son statut.

        La ligne est verrouillée avant la réécriture du document : deux
        règlements simultanés sur la même pièce sont appliqués l'un après
        l'autre. ``InvoicePaid`` n'est publié qu'au passage effectif au
        statut payé.
        """

        with self._engine.begin() as conn:
            invoice = self._repository.get_by_number(conn, number, company_id, for_update=True)
            if invoice is None:
                raise InvoiceNotFoundError(f"invoice {number} not found for company {company_id!r}")
            previous = invoice.status
            status = invoice.record_payment(payment)
            self._repository.save(conn, invoice)
            enqueue_event(
                conn,
                TOPIC_PAYMENT_RECEIVED,
                {
                    "invoice_id": invoice.invoice_id,
                    "number": number,
                    "company_id": invoice.company_id,
                    "amount": str(payment.amount),
                    "paid_at": payment.paid_at.isoformat(),
                    "status": status.value,
                },
            )
            if status is InvoiceStatus.PAID and previous is not InvoiceStatus.PAID:
                enqueue_event(
                    conn,
                    TOPIC_INVOICE_PAID,
                    {
                        "invoice_id": invoice.invoice_id,
                        "number": number,
                        "company_id": invoice.company_id,
                    },
                )

        package_dir = archive.invoice_dir(self._artifacts_dir, invoice.company_id, number)
        history.payment_received(
            package_dir,
            number,
            self._clock(),
            amount=str(payment.amount),
            status=status.value,
            comment=payment.reference,
        )
        logger.info(
            "invoice_payment_recorded",
            extra={
                "invoice_no": number,
                "company_id": invoice.company_id,
                "amount": str(payment.amount),
                "status": status.value,
            },
        )
        return invoice


__all__ = ["PaymentManager", "TOPIC_INVOICE_PAID", "TOPIC_PAYMENT_RECEIVED"]
