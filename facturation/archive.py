"""Archivage WORM-light des pièces finalisées et manifeste chaîné."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from hashlib import sha256
from pathlib import Path
from typing import Dict, Optional, Tuple


MANIFEST_NAME = "manifest.json"


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _hash_bytes(data: bytes) -> str:
    return sha256(data).hexdigest()


def company_segment(company_id: Optional[int]) -> str:
    return "default" if company_id is None else str(company_id)


def invoice_dir(base_dir: Path, company_id: Optional[int], invoice_no: str) -> Path:
    return base_dir / "invoices" / company_segment(company_id) / invoice_no


def draft_dir(base_dir: Path, company_id: Optional[int], invoice_id: str) -> Path:
    """Dossier des notices d'un brouillon, qui n'a pas encore de numéro."""
    return base_dir / "drafts" / company_segment(company_id) / invoice_id


def write_package(
    base_dir: Path,
    company_id: Optional[int],
    invoice_no: str,
    files: Dict[str, bytes],
    *,
    now: datetime,
    previous_hash: str | None,
    generator_version: str,
) -> Tuple[Path, str]:
    """Écrit les pièces puis un manifeste (empreintes SHA-256, hash précédent).

    Un dossier déjà manifesté n'est jamais réécrit.
    """

    target = invoice_dir(base_dir, company_id, invoice_no)
    if (target / MANIFEST_NAME).exists():
        raise FileExistsError(f"archive for {invoice_no} already exists at {target}")
    target.mkdir(parents=True, exist_ok=True)
    (target / "audit").mkdir(parents=True, exist_ok=True)

    for name, content in sorted(files.items()):
        (target / name).write_bytes(content)

    manifest = {
        "schema_version": "1.0",
        "generator_version": generator_version,
        "company_id": company_id,
        "invoice_no": invoice_no,
        "created_at_utc": _ensure_utc(now).isoformat().replace("+00:00", "Z"),
        "previous_hash": previous_hash,
        "files": {name: _hash_bytes(content) for name, content in sorted(files.items())},
    }

    manifest_bytes = json.dumps(manifest, indent=2, sort_keys=True).encode("utf-8")
    (target / MANIFEST_NAME).write_bytes(manifest_bytes)
    return target, _hash_bytes(manifest_bytes)


def verify_package(package_dir: Path) -> bool:
    """Recalcule les empreintes des pièces listées dans le manifeste."""

    manifest = json.loads((package_dir / MANIFEST_NAME).read_text(encoding="utf-8"))
    for name, expected in manifest["files"].items():
        path = package_dir / name
        if not path.exists() or _hash_bytes(path.read_bytes()) != expected:
            return False
    return True


def manifest_hash(package_dir: Path) -> str:
    return _hash_bytes((package_dir / MANIFEST_NAME).read_bytes())


__all__ = [
    "company_segment",
    "draft_dir",
    "invoice_dir",
    "manifest_hash",
    "verify_package",
    "write_package",
]
