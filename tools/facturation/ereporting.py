"""Synthèse e-reporting d'une période et périodes restant à déclarer."""

from __future__ import annotations

import argparse
import json
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy.engine import Engine

from backend.core.config import settings
from backend.core.db import create_engine
from backend.core.observability import start_trace
from backend.core.observability.logging import get_logger, init_logging
from facturation.company import CompanyProvider, build_company_provider
from facturation.ereporting import EReportingService, write_summary_markdown
from facturation.exceptions import FacturationError
from facturation.fiscal_calendar import ReportingFrequency
from facturation.repository import InvoiceRepository

logger = get_logger("tools.facturation.ereporting")


def run_summary(
    engine: Engine,
    company_provider: CompanyProvider,
    *,
    reference_date: date,
    frequency: ReportingFrequency,
    output_dir: Path,
    today: date,
    company_id: Optional[int] = None,
    last_submitted_end: Optional[date] = None,
    submit: bool = False,
) -> dict:
    service = EReportingService()
    period = service.scheduler.current_period(reference_date, frequency)
    company = company_provider.get(company_id)

    with engine.connect() as conn:
        invoices = InvoiceRepository().find_by_date_range(
            conn, period.start, period.end, company_id=company_id
        )
    transactions = service.reportable_transactions(invoices)
    summary = service.summarize(reference_date, frequency, transactions)

    submission = None
    if submit:
        result = service.submit(transactions)
        submission = {
            "success": result.success,
            "report_id": result.report_id,
            "message": result.message,
            "errors": list(result.errors),
        }
        if result.success:
            summary = summary.with_submission(result.report_id)
    path = write_summary_markdown(
        summary, output_dir, today=today, company_id=company_id, company_name=company.name
    )

    output = {
        "period": summary.period_label(),
        "deadline": summary.deadline.isoformat(),
        "transactions": summary.transaction_count,
        "overdue": summary.is_overdue(today),
        "path": str(path),
    }
    if last_submitted_end is not None:
        pending = service.scheduler.pending_periods(last_submitted_end, today, frequency)
        output["pending_periods"] = [
            {"period": p.label(), "deadline": p.deadline.isoformat()} for p in pending
        ]
    if submission is not None:
        output["submission"] = submission
    logger.info(
        "ereporting_summary_written",
        extra={
            "company_id": company_id,
            "period_start": summary.period_start.isoformat(),
            "transactions": summary.transaction_count,
        },
    )
    return output


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synthèse e-reporting")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Date de référence (défaut : période précédente)",
    )
    parser.add_argument(
        "--frequency",
        choices=[f.value for f in ReportingFrequency],
        default=settings.EREPORTING_FREQUENCY,
    )
    parser.add_argument("--last-submitted", type=date.fromisoformat, default=None,
                        help="Fin de la dernière période déclarée")
    parser.add_argument("--company-id", type=int, default=None, help="Société (mode multi-société)")
    parser.add_argument("--output", type=Path, default=Path(settings.ARTIFACTS_DIR))
    parser.add_argument("--submit", action="store_true", help="Soumission simulée du rapport")
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    init_logging()
    start_trace(company_id=args.company_id)

    today = date.today()
    frequency = ReportingFrequency(args.frequency)
    reference = args.date or EReportingService().scheduler.previous_period(today, frequency).start
    engine = create_engine()
    try:
        output = run_summary(
            engine,
            build_company_provider(settings, engine),
            reference_date=reference,
            frequency=frequency,
            output_dir=args.output,
            today=today,
            company_id=args.company_id,
            last_submitted_end=args.last_submitted,
            submit=args.submit,
        )
    except FacturationError as exc:
        logger.error("ereporting_failed", extra={"error_type": exc.__class__.__name__})
        raise SystemExit(str(exc)) from exc
    print(json.dumps(output, indent=2, ensure_ascii=False))


if __name__ == "__main__":  # pragma: no cover
    main()
