"""Rapport Markdown d'une synthèse e-reporting.

Seul le nom de la société est un champ libre ; il est masqué avant écriture.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional

from ..archive import company_segment
from ..pii import mask_pii
from .dto import ReportingSummary
from .enums import TransactionType


def build_summary_md(
    summary: ReportingSummary,
    *,
    today: date,
    company_name: Optional[str] = None,
) -> str:
    status = "Soumis" if summary.is_submitted else ("En retard" if summary.is_overdue(today) else "À soumettre")
    header = (
        f"Synthèse e-reporting\n"
        f"====================\n\n"
        f"Période : {summary.period_label()} ({summary.period_start.isoformat()} au {summary.period_end.isoformat()})\n"
        f"Fréquence : {summary.frequency.label}\n"
        f"Échéance : {summary.deadline.isoformat()} ({summary.days_until_deadline(today)} jours)\n"
        f"Statut : {status}\n"
    )
    if company_name:
        header += f"Société : {mask_pii(company_name)}\n"
    if summary.report_id:
        header += f"Rapport : `{summary.report_id}`\n"

    lines = [
        header,
        "## Totaux\n",
        f"- Transactions : {summary.transaction_count}",
        f"- Total HT : {summary.total_excluding_vat:.2f} EUR",
        f"- Total TVA : {summary.total_vat:.2f} EUR",
        f"- Total TTC : {summary.total_including_vat:.2f} EUR",
        "",
        "## Par type\n",
    ]
    for value, count in sorted(summary.transactions_by_type.items()):
        lines.append(f"- {TransactionType(value).label} : {count}")
    lines.append("")
    lines.append("## TVA par taux\n")
    for rate, amount in summary.vat_by_rate.items():
        lines.append(f"- {rate} % : {amount:.2f} EUR")
    lines.append("")
    return "\n".join(lines)


def write_summary_markdown(
    summary: ReportingSummary,
    base_dir: Path,
    *,
    today: date,
    company_id: Optional[int] = None,
    company_name: Optional[str] = None,
) -> Path:
    target_dir = base_dir / "reports" / "ereporting" / company_segment(company_id)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{summary.period_start.isoformat()}_{summary.frequency.value}.md"
    target.write_text(
        build_summary_md(summary, today=today, company_name=company_name), encoding="utf-8"
    )
    return target


__all__ = ["build_summary_md", "write_summary_markdown"]
