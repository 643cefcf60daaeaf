"""Notices d'historique des factures (finalisation, règlement, annulation...).

Une notice JSON par événement, sous ``<dossier facture>/audit/``. Les
commentaires libres sont masqués avant écriture.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .enums import InvoiceHistoryAction
from .pii import mask_pii


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def record(
    invoice_dir: Path,
    invoice_no: str,
    action: InvoiceHistoryAction,
    now: datetime,
    *,
    actor: str = "system",
    comment: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Path:
    audit_dir = invoice_dir / "audit"
    audit_dir.mkdir(parents=True, exist_ok=True)
    now_utc = _ensure_utc(now)
    timestamp = now_utc.strftime("%Y%m%dT%H%M%S%fZ")
    filename = f"NOTICE-{invoice_no}_{action.value}_{timestamp}.json"
    payload: Dict[str, Any] = {
        "invoice_no": invoice_no,
        "action": action.value,
        "timestamp_utc": now_utc.isoformat().replace("+00:00", "Z"),
        "actor": actor,
    }
    if comment:
        payload["comment"] = mask_pii(comment)
    if details:
        payload["details"] = details

    path = audit_dir / filename
    path.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str), encoding="utf-8")
    return path


def finalized(invoice_dir: Path, invoice_no: str, now: datetime, *, actor: str = "system") -> Path:
    return record(invoice_dir, invoice_no, InvoiceHistoryAction.FINALIZED, now, actor=actor)


def payment_received(
    invoice_dir: Path,
    invoice_no: str,
    now: datetime,
    *,
    amount: str,
    status: str,
    actor: str = "system",
    comment: Optional[str] = None,
) -> Path:
    return record(
        invoice_dir,
        invoice_no,
        InvoiceHistoryAction.PAYMENT_RECEIVED,
        now,
        actor=actor,
        comment=comment,
        details={"amount": amount, "status": status},
    )


def read_history(invoice_dir: Path) -> List[Dict[str, Any]]:
    """Notices triées par horodatage."""

    audit_dir = invoice_dir / "audit"
    if not audit_dir.is_dir():
        return []
    entries = [
        json.loads(path.read_text(encoding="utf-8"))
        for path in sorted(audit_dir.glob("NOTICE-*.json"))
    ]
    return sorted(entries, key=lambda e: e["timestamp_utc"])


__all__ = ["finalized", "payment_received", "read_history", "record"]
