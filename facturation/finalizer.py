"""Finalisation atomique d'une facture ou d'un avoir.

Dans une seule transaction : numéro, statut ``finalized``, pièces (PDF, et
Factur-X pour les factures), archive, persistance et événement outbox
``InvoiceFinalized``. Tout échec annule l'ensemble : aucun numéro consommé,
aucune ligne écrite, aucune archive laissée sur disque, et la facture en
mémoire retrouve son état de brouillon.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.engine import Engine

from backend.core.config import Settings, settings as default_settings
from backend.core.observability.logging import get_logger
from backend.core.outbox.publisher import enqueue_event

from . import archive, history
from .company import CompanyData, CompanyProvider
from .dto import Invoice
from .enums import FacturXProfile, InvoiceStatus, InvoiceType
from .exceptions import FacturXError, FiscalConfigError, InvoiceFinalizationError, InvoiceStateError
from .facturx import (
    FACTURX_FILENAME,
    GENERATOR_VERSION,
    build_facturx_document,
    render_invoice_pdf,
    validate_facturx,
)
from .numbering import InvoiceNumberGenerator
from .repository import InvoiceRepository

logger = get_logger(__name__)

TOPIC_INVOICE_FINALIZED = "InvoiceFinalized"


@dataclass(frozen=True, slots=True)
class FinalizationResult:
    invoice_id: str
    number: str
    fiscal_year: int
    archive_dir: Path
    manifest_hash: str
    event_id: UUID
    facturx: bool


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


def _sequence_of(number: str) -> int:
    return int(number.rsplit("-", 1)[1])


class InvoiceFinalizer:
    def __init__(
        self,
        engine: Engine,
        company_provider: CompanyProvider,
        *,
        generator: Optional[InvoiceNumberGenerator] = None,
        repository: Optional[InvoiceRepository] = None,
        config: Optional[Settings] = None,
        artifacts_dir: Optional[Path] = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        config = config or default_settings
        self._engine = engine
        self._companies = company_provider
        self._generator = generator or InvoiceNumberGenerator(padding=config.SEQUENCE_PADDING)
        self._repository = repository or InvoiceRepository()
        self._artifacts_dir = Path(artifacts_dir or config.ARTIFACTS_DIR)
        self._facturx_enabled = config.FACTURX_ENABLED
        self._clock = clock or _default_clock
        try:
            self._profile = FacturXProfile(config.FACTURX_PROFILE.upper())
        except ValueError as exc:
            raise FiscalConfigError(f"unknown Factur-X profile {config.FACTURX_PROFILE!r}") from exc

    @staticmethod
    def _validate(invoice: Invoice) -> None:
        if not invoice.lines:
            raise InvoiceStateError("Cannot finalize invoice: invoice must have at least one line")
        if invoice.status is InvoiceStatus.FINALIZED or invoice.number:
            raise InvoiceStateError("Cannot finalize invoice: invoice is already finalized")
        if invoice.status is not InvoiceStatus.DRAFT:
            raise InvoiceStateError("Cannot finalize invoice: only DRAFT invoices can be finalized")

    def _render(self, invoice: Invoice, company: CompanyData) -> Dict[str, bytes]:
        pdf_name = f"{invoice.number}.pdf"
        if self._facturx_enabled and invoice.type is InvoiceType.INVOICE:
            pdf_bytes, xml_bytes = build_facturx_document(
                invoice, company, self._profile, now=invoice.finalized_at
            )
            result = validate_facturx(xml_bytes)
            if not result.ok:
                raise FacturXError("; ".join(result.messages))
            return {pdf_name: pdf_bytes, FACTURX_FILENAME: xml_bytes}
        return {pdf_name: render_invoice_pdf(invoice, company)}

    def _previous_hash(self, invoice: Invoice, number: str) -> Optional[str]:
        sequence = _sequence_of(number)
        if sequence <= 1:
            return None
        prefix = number.rsplit("-", 1)[0]
        width = len(number.rsplit("-", 1)[1])
        previous_no = f"{prefix}-{sequence - 1:0{width}d}"
        previous_dir = archive.invoice_dir(self._artifacts_dir, invoice.company_id, previous_no)
        if not (previous_dir / archive.MANIFEST_NAME).exists():
            return None
        return archive.manifest_hash(previous_dir)

    def finalize(self, invoice: Invoice) -> FinalizationResult:
        self._validate(invoice)
        company = self._companies.get(invoice.company_id)

        snapshot = (invoice.number, invoice.fiscal_year, invoice.status, invoice.finalized_at)
        package_dir: Optional[Path] = None
        try:
            with self._engine.begin() as conn:
                number = self._generator.generate(conn, invoice, company)
                invoice.number = number
                invoice.status = InvoiceStatus.FINALIZED
                invoice.finalized_at = self._clock()

                files = self._render(invoice, company)
                self._repository.save(conn, invoice)
                package_dir, manifest_hash = archive.write_package(
                    self._artifacts_dir,
                    invoice.company_id,
                    number,
                    files,
                    now=invoice.finalized_at,
                    previous_hash=self._previous_hash(invoice, number),
                    generator_version=GENERATOR_VERSION,
                )
                totals = invoice.compute_totals()
                event_id = enqueue_event(
                    conn,
                    TOPIC_INVOICE_FINALIZED,
                    {
                        "invoice_id": invoice.invoice_id,
                        "number": number,
                        "company_id": invoice.company_id,
                        "fiscal_year": invoice.fiscal_year,
                        "type": invoice.type.value,
                        "total_gross": str(totals.total_gross),
                        "manifest_hash": manifest_hash,
                    },
                )
        except Exception as exc:
            invoice.number, invoice.fiscal_year, invoice.status, invoice.finalized_at = snapshot
            if package_dir is not None:
                shutil.rmtree(package_dir, ignore_errors=True)
            logger.warning(
                "invoice_finalization_failed",
                extra={
                    "invoice_id": invoice.invoice_id,
                    "company_id": invoice.company_id,
                    "error_type": exc.__class__.__name__,
                    "retryable": bool(getattr(exc, "retryable", False)),
                },
            )
            raise InvoiceFinalizationError(
                f"Failed to finalize invoice: {exc}", invoice_ref=invoice.invoice_id
            ) from exc

        history.finalized(package_dir, number, invoice.finalized_at)
        logger.info(
            "invoice_finalized",
            extra={
                "invoice_id": invoice.invoice_id,
                "invoice_no": number,
                "company_id": invoice.company_id,
                "fiscal_year": invoice.fiscal_year,
                "event_id": str(event_id),
            },
        )
        return FinalizationResult(
            invoice_id=invoice.invoice_id,
            number=number,
            fiscal_year=invoice.fiscal_year,
            archive_dir=package_dir,
            manifest_hash=manifest_hash,
            event_id=event_id,
            facturx=FACTURX_FILENAME in files,
        )


__all__ = ["FinalizationResult", "InvoiceFinalizer", "TOPIC_INVOICE_FINALIZED"]
