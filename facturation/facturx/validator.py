"""Validation hors ligne du XML Factur-X (mode TEMP ou OFFICIAL)."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pathlib import Path
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from lxml import etree

from backend.core.config import settings

from ..enums import FacturXProfile
from .generator import NS_RAM, NS_RSM


@dataclass(frozen=True)
class FacturXValidationResult:
    schema_ok: bool
    consistency_ok: bool
    messages: List[str]
    mode: str = "temp"

    @property
    def ok(self) -> bool:
        return self.schema_ok and self.consistency_ok

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


RESOURCE_DIR = Path(__file__).resolve().parent / "resources"
OFFICIAL_DIR = RESOURCE_DIR / "official"

_KNOWN_GUIDELINES = {profile.urn for profile in FacturXProfile}
_NS = {"rsm": NS_RSM, "ram": NS_RAM}


def _parse_decimal(text: Optional[str]) -> Decimal:
    return Decimal(text or "0").quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _official_xsd_files() -> List[Path]:
    return sorted(OFFICIAL_DIR.glob("*.xsd")) if OFFICIAL_DIR.exists() else []


def _get_validation_mode(mode: Optional[str] = None) -> str:
    """Mode demandé, ramené à ``temp`` si aucune XSD officielle n'est présente."""

    mode = (mode or settings.EINVOICE_VALIDATION_MODE).lower()
    if mode == "official" and not _official_xsd_files():
        return "temp"
    return mode


def _validate_with_official(xml_bytes: bytes) -> FacturXValidationResult:
    messages: List[str] = []
    xsd_path = _official_xsd_files()[0]

    try:
        xml_doc = etree.fromstring(xml_bytes)
    except etree.XMLSyntaxError as err:
        messages.append(f"OFFICIAL_VALIDATOR: XML parse error – {err}")
        return FacturXValidationResult(False, False, messages, mode="official")

    try:
        schema = etree.XMLSchema(etree.parse(str(xsd_path)))
    except (etree.XMLSchemaParseError, etree.XMLSyntaxError, OSError) as err:
        messages.append(f"OFFICIAL_VALIDATOR: cannot load {xsd_path.name} – {err}")
        return FacturXValidationResult(False, False, messages, mode="official")

    schema_ok = schema.validate(xml_doc)
    if schema_ok:
        messages.append(f"OFFICIAL_VALIDATOR: Schema validation OK ({xsd_path.name})")
    else:
        messages.append(f"OFFICIAL_VALIDATOR: Schema validation failed: {schema.error_log.last_error}")

    consistency = _validate_with_temp(xml_bytes)
    return FacturXValidationResult(
        schema_ok,
        consistency.consistency_ok,
        messages + consistency.messages,
        mode="official",
    )


def _validate_with_temp(xml_bytes: bytes) -> FacturXValidationResult:
    messages: List[str] = []
    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError as err:
        messages.append(f"TEMP_VALIDATOR: XML parse error – {err}")
        return FacturXValidationResult(False, False, messages)

    if root.tag != f"{{{NS_RSM}}}CrossIndustryInvoice":
        messages.append("TEMP_VALIDATOR: Root element must be rsm:CrossIndustryInvoice")
        return FacturXValidationResult(False, False, messages)

    guideline = root.findtext(
        "./rsm:ExchangedDocumentContext/ram:GuidelineSpecifiedDocumentContextParameter/ram:ID",
        namespaces=_NS,
    )
    if guideline not in _KNOWN_GUIDELINES:
        messages.append(f"TEMP_VALIDATOR: Unknown guideline {guideline!r}")
        return FacturXValidationResult(False, False, messages)
    messages.append("TEMP_VALIDATOR: Guideline OK")

    number = root.findtext("./rsm:ExchangedDocument/ram:ID", namespaces=_NS)
    type_code = root.findtext("./rsm:ExchangedDocument/ram:TypeCode", namespaces=_NS)
    if not number:
        messages.append("TEMP_VALIDATOR: Document number missing")
        return FacturXValidationResult(False, False, messages)
    if type_code not in ("380", "381"):
        messages.append(f"TEMP_VALIDATOR: Unsupported TypeCode {type_code!r}")
        return FacturXValidationResult(False, False, messages)

    settlement = root.find(
        "./rsm:SupplyChainTradeTransaction/ram:ApplicableHeaderTradeSettlement", namespaces=_NS
    )
    summation = (
        settlement.find("./ram:SpecifiedTradeSettlementHeaderMonetarySummation", namespaces=_NS)
        if settlement is not None
        else None
    )
    if summation is None:
        messages.append("TEMP_VALIDATOR: Monetary summation missing")
        return FacturXValidationResult(False, False, messages)

    try:
        basis = _parse_decimal(summation.findtext("./ram:TaxBasisTotalAmount", namespaces=_NS))
        tax = _parse_decimal(summation.findtext("./ram:TaxTotalAmount", namespaces=_NS))
        grand = _parse_decimal(summation.findtext("./ram:GrandTotalAmount", namespaces=_NS))
        breakdown = [
            (
                _parse_decimal(node.findtext("./ram:BasisAmount", namespaces=_NS)),
                _parse_decimal(node.findtext("./ram:CalculatedAmount", namespaces=_NS)),
            )
            for node in settlement.findall("./ram:ApplicableTradeTax", namespaces=_NS)
        ]
    except InvalidOperation as err:
        messages.append(f"TEMP_VALIDATOR: Invalid amount – {err!r}")
        return FacturXValidationResult(True, False, messages)

    if basis + tax != grand:
        messages.append("TEMP_VALIDATOR: TaxBasisTotal + TaxTotal must equal GrandTotal")
        return FacturXValidationResult(True, False, messages)

    if breakdown:
        if sum((t for _, t in breakdown), Decimal("0.00")) != tax:
            messages.append("TEMP_VALIDATOR: VAT breakdown does not match TaxTotalAmount")
            return FacturXValidationResult(True, False, messages)
        if sum((b for b, _ in breakdown), Decimal("0.00")) != basis:
            messages.append("TEMP_VALIDATOR: VAT breakdown does not match TaxBasisTotalAmount")
            return FacturXValidationResult(True, False, messages)

    return FacturXValidationResult(True, True, messages)


def validate_facturx(xml_bytes: bytes, *, mode: Optional[str] = None) -> FacturXValidationResult:
    """Valide le XML selon ``EINVOICE_VALIDATION_MODE`` (ou ``mode``)."""

    if _get_validation_mode(mode) == "official":
        return _validate_with_official(xml_bytes)
    return _validate_with_temp(xml_bytes)


__all__ = ["FacturXValidationResult", "validate_facturx"]
