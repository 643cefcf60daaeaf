"""Archive packages (hash-chained manifests) and history notices."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from pathlib import Path

import pytest

from facturation import archive, history
from facturation.enums import InvoiceHistoryAction

NOW = datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc)
FILES = {"FA-2025-0001.pdf": b"%PDF-1.7", "factur-x.xml": b"<rsm:CrossIndustryInvoice/>"}


def _write(base_dir: Path, invoice_no: str, previous_hash=None, company_id=None):
    return archive.write_package(
        base_dir,
        company_id,
        invoice_no,
        FILES,
        now=NOW,
        previous_hash=previous_hash,
        generator_version="test-1.0",
    )


def test_manifest_lists_file_hashes(tmp_path: Path) -> None:
    # Arrange / Act
    package_dir, manifest_hash = _write(tmp_path, "FA-2025-0001")

    # Assert
    assert package_dir == tmp_path / "invoices" / "default" / "FA-2025-0001"
    manifest = json.loads((package_dir / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["files"] == {name: sha256(data).hexdigest() for name, data in FILES.items()}
    assert manifest["created_at_utc"] == "2025-06-01T09:30:00Z"
    assert manifest["previous_hash"] is None
    assert manifest_hash == archive.manifest_hash(package_dir)
    assert archive.verify_package(package_dir)


def test_manifests_chain_previous_hash(tmp_path: Path) -> None:
    _, first_hash = _write(tmp_path, "FA-2025-0001", company_id=3)
    second_dir, _ = _write(tmp_path, "FA-2025-0002", previous_hash=first_hash, company_id=3)

    manifest = json.loads((second_dir / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["previous_hash"] == first_hash
    assert manifest["company_id"] == 3
    assert second_dir.parent.name == "3"


def test_existing_package_is_never_rewritten(tmp_path: Path) -> None:
    _write(tmp_path, "FA-2025-0001")
    with pytest.raises(FileExistsError):
        _write(tmp_path, "FA-2025-0001")


@pytest.mark.parametrize("tamper", ["modify", "delete"])
def test_verify_detects_tampering(tmp_path: Path, tamper: str) -> None:
    # Arrange
    package_dir, _ = _write(tmp_path, "FA-2025-0001")
    target = package_dir / "factur-x.xml"

    # Act
    if tamper == "modify":
        target.write_bytes(b"<tampered/>")
    else:
        target.unlink()

    # Assert
    assert not archive.verify_package(package_dir)


def test_history_notices_are_ordered_and_masked(tmp_path: Path) -> None:
    # Arrange
    package_dir = archive.invoice_dir(tmp_path, None, "FA-2025-0001")

    # Act
    history.finalized(package_dir, "FA-2025-0001", NOW)
    history.payment_received(
        package_dir,
        "FA-2025-0001",
        NOW + timedelta(days=3),
        amount="120.00",
        status="paid",
        comment="Virement de jeanne.martin@example.fr",
    )
    history.record(
        package_dir,
        "FA-2025-0001",
        InvoiceHistoryAction.SENT,
        NOW + timedelta(hours=1),
        actor="comptable",
    )

    # Assert
    notices = history.read_history(package_dir)
    assert [n["action"] for n in notices] == ["finalized", "sent", "payment_received"]
    assert notices[1]["actor"] == "comptable"
    assert notices[2]["details"] == {"amount": "120.00", "status": "paid"}
    assert "jeanne.martin@example.fr" not in notices[2]["comment"]
    assert notices[2]["comment"] == "Virement de jea***@***"


def test_history_of_unknown_invoice_is_empty(tmp_path: Path) -> None:
    assert history.read_history(tmp_path / "missing") == []
