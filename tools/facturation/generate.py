"""Finalise un lot de factures d'exemple (numéro, Factur-X, archive, outbox)."""

from __future__ import annotations

import argparse
import json
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

from sqlalchemy.engine import Engine

from backend.core.config import settings
from backend.core.db import METADATA, create_engine
from backend.core.observability import start_trace
from backend.core.observability.logging import get_logger, init_logging
from facturation.company import CompanyProvider, build_company_provider
from facturation.exceptions import FacturationError
from facturation.finalizer import InvoiceFinalizer
from facturation.samples import build_sample_invoice, iter_sample_scenarios

logger = get_logger("tools.facturation.generate")


def generate_batch(
    engine: Engine,
    company_provider: CompanyProvider,
    *,
    count: int,
    issue_date: date,
    base_dir: Path,
    company_id: Optional[int] = None,
) -> List[dict]:
    scenarios = list(iter_sample_scenarios())
    if count > len(scenarios):
        raise ValueError(
            f"Requested {count} invoices but only {len(scenarios)} scenarios available"
        )

    finalizer = InvoiceFinalizer(engine, company_provider, artifacts_dir=base_dir)
    results: List[dict] = []
    for scenario in scenarios[:count]:
        invoice = build_sample_invoice(scenario, issue_date=issue_date, company_id=company_id)
        result = finalizer.finalize(invoice)
        results.append(
            {
                "scenario": scenario.code,
                "number": result.number,
                "fiscal_year": result.fiscal_year,
                "manifest_hash": result.manifest_hash,
                "facturx": result.facturx,
                "path": str(result.archive_dir),
            }
        )
    return results


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Finalise des factures d'exemple")
    parser.add_argument("--count", type=int, default=3, help="Nombre de factures")
    parser.add_argument("--issue-date", type=date.fromisoformat, default=date.today())
    parser.add_argument("--company-id", type=int, default=None, help="Société (mode multi-société)")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path(settings.ARTIFACTS_DIR),
        help="Répertoire des archives",
    )
    parser.add_argument("--create-schema", action="store_true", help="Crée les tables manquantes")
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    if args.count <= 0:
        raise SystemExit("Count must be positive")

    init_logging()
    start_trace(company_id=args.company_id)
    engine = create_engine()
    if args.create_schema:
        METADATA.create_all(engine)

    try:
        results = generate_batch(
            engine,
            build_company_provider(settings, engine),
            count=args.count,
            issue_date=args.issue_date,
            base_dir=args.output_dir,
            company_id=args.company_id,
        )
    except (FacturationError, ValueError) as exc:
        logger.error("generate_failed", extra={"error_type": exc.__class__.__name__})
        raise SystemExit(str(exc)) from exc
    print(json.dumps(results, indent=2))


if __name__ == "__main__":  # pragma: no cover
    main()
