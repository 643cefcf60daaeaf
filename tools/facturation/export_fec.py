"""Export FEC d'un exercice fiscal."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy.engine import Engine

from backend.core.config import settings
from backend.core.db import create_engine
from backend.core.observability import start_trace
from backend.core.observability.logging import get_logger, init_logging
from facturation.company import CompanyProvider, build_company_provider
from facturation.exceptions import FacturationError
from facturation.fec import FecAccounts, export_range, fec_filename

logger = get_logger("tools.facturation.export_fec")

MIN_FISCAL_YEAR = 2000
MAX_FISCAL_YEAR = 2100


def export_fiscal_year(
    engine: Engine,
    company_provider: CompanyProvider,
    fiscal_year: int,
    output_dir: Path,
    *,
    company_id: Optional[int] = None,
) -> Path:
    """Écrit le FEC de l'exercice ``fiscal_year`` et renvoie son chemin."""

    if not MIN_FISCAL_YEAR <= fiscal_year <= MAX_FISCAL_YEAR:
        raise ValueError(
            f"fiscal year must be between {MIN_FISCAL_YEAR} and {MAX_FISCAL_YEAR}"
        )
    company = company_provider.get(company_id)
    start, end = company.fiscal_year_config.bounds(fiscal_year)

    with engine.connect() as conn:
        content = export_range(
            conn, start, end, company_id=company_id, accounts=FecAccounts.from_settings(settings)
        )

    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / fec_filename(company.siren or "000000000", end)
    target.write_text(content, encoding="utf-8")
    logger.info(
        "fec_exported",
        extra={
            "fiscal_year": fiscal_year,
            "company_id": company_id,
            "rows": max(0, len(content.splitlines()) - 1),
            "path": str(target),
        },
    )
    return target


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export FEC (Fichier des Écritures Comptables)")
    parser.add_argument("fiscal_year", type=int, help="Exercice fiscal (ex. 2024)")
    parser.add_argument("--company-id", type=int, default=None, help="Société (mode multi-société)")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path(settings.ARTIFACTS_DIR) / "fec",
        help="Répertoire de sortie",
    )
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    init_logging()
    start_trace(company_id=args.company_id)
    engine = create_engine()
    try:
        target = export_fiscal_year(
            engine,
            build_company_provider(settings, engine),
            args.fiscal_year,
            args.output,
            company_id=args.company_id,
        )
    except (FacturationError, ValueError) as exc:
        logger.error("fec_export_failed", extra={"error_type": exc.__class__.__name__})
        raise SystemExit(str(exc)) from exc
    print(target)


if __name__ == "__main__":  # pragma: no cover
    main()
