"""Factur-X: CII XML content, offline validation and PDF/A-3 embedding."""

from __future__ import annotations

import io
from datetime import date, datetime, timezone
from decimal import Decimal
from xml.etree import ElementTree as ET

import pikepdf
import pytest

from facturation.dto import InvoiceLine, build_invoice
from facturation.enums import FacturXProfile, InvoiceType, TaxCategoryCode
from facturation.exceptions import FacturXError
from facturation.facturx import (
    FACTURX_FILENAME,
    build_facturx_document,
    build_facturx_xml,
    extract_xml_from_pdf,
    render_invoice_pdf,
    validate_facturx,
)
from facturation.facturx.generator import NS_RAM, NS_RSM
from facturation.samples import EU_BUYER_PARTY, SCENARIOS, SELLER_COMPANY, build_sample_invoice

NS = {"rsm": NS_RSM, "ram": NS_RAM}
NOW = datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)


def _numbered(scenario_index: int = 2, number: str = "FA-2025-0001", **kwargs):
    invoice = build_sample_invoice(SCENARIOS[scenario_index], issue_date=date(2025, 3, 14), **kwargs)
    invoice.number = number
    return invoice


def _root(xml_bytes: bytes) -> ET.Element:
    return ET.fromstring(xml_bytes)


def test_xml_header_and_totals() -> None:
    # Arrange
    invoice = _numbered()

    # Act
    root = _root(build_facturx_xml(invoice, SELLER_COMPANY))

    # Assert
    assert root.tag == f"{{{NS_RSM}}}CrossIndustryInvoice"
    assert root.findtext("./rsm:ExchangedDocument/ram:ID", namespaces=NS) == "FA-2025-0001"
    assert root.findtext("./rsm:ExchangedDocument/ram:TypeCode", namespaces=NS) == "380"
    guideline = root.findtext(
        "./rsm:ExchangedDocumentContext/ram:GuidelineSpecifiedDocumentContextParameter/ram:ID",
        namespaces=NS,
    )
    assert guideline == FacturXProfile.EN16931.urn
    summation = root.find(".//ram:SpecifiedTradeSettlementHeaderMonetarySummation", NS)
    assert summation.findtext("ram:TaxBasisTotalAmount", namespaces=NS) == "160.00"
    assert summation.findtext("ram:TaxTotalAmount", namespaces=NS) == "26.00"
    assert summation.findtext("ram:GrandTotalAmount", namespaces=NS) == "186.00"
    assert summation.findtext("ram:DuePayableAmount", namespaces=NS) == "186.00"


def test_xml_tax_breakdown_per_rate() -> None:
    # Arrange
    invoice = _numbered()

    # Act
    root = _root(build_facturx_xml(invoice, SELLER_COMPANY))

    # Assert
    settlement = root.find(".//ram:ApplicableHeaderTradeSettlement", NS)
    breakdown = [
        (
            node.findtext("ram:RateApplicablePercent", namespaces=NS),
            node.findtext("ram:BasisAmount", namespaces=NS),
            node.findtext("ram:CalculatedAmount", namespaces=NS),
        )
        for node in settlement.findall("ram:ApplicableTradeTax", NS)
    ]
    assert breakdown == [("10.00", "60.00", "6.00"), ("20.00", "100.00", "20.00")]
    lines = root.findall(".//ram:IncludedSupplyChainTradeLineItem", NS)
    assert len(lines) == 2


def test_xml_seller_identifiers() -> None:
    # Arrange
    invoice = _numbered()

    # Act
    root = _root(build_facturx_xml(invoice, SELLER_COMPANY))

    # Assert
    seller = root.find(".//ram:SellerTradeParty", NS)
    assert seller.findtext("ram:Name", namespaces=NS) == SELLER_COMPANY.name
    legal_id = seller.find("ram:SpecifiedLegalOrganization/ram:ID", NS)
    assert legal_id.text == "732829320"
    assert legal_id.get("schemeID") == "0002"
    assert seller.findtext("ram:SpecifiedTaxRegistration/ram:ID", namespaces=NS) == "FR44732829320"
    iban = root.findtext(".//ram:PayeePartyCreditorFinancialAccount/ram:IBANID", namespaces=NS)
    assert iban == SELLER_COMPANY.iban


def test_credit_note_references_credited_invoice() -> None:
    # Arrange
    credit_note = _numbered(
        0,
        "AV-2025-0001",
        type=InvoiceType.CREDIT_NOTE,
        credited_invoice_number="FA-2025-0001",
    )

    # Act
    root = _root(build_facturx_xml(credit_note, SELLER_COMPANY))

    # Assert
    assert root.findtext("./rsm:ExchangedDocument/ram:TypeCode", namespaces=NS) == "381"
    referenced = root.findtext(
        ".//ram:InvoiceReferencedDocument/ram:IssuerAssignedID", namespaces=NS
    )
    assert referenced == "FA-2025-0001"


def test_reverse_charge_line_carries_exemption_code() -> None:
    # Arrange
    invoice = build_invoice(
        buyer=EU_BUYER_PARTY,
        lines=[
            InvoiceLine(
                description="Maintenance",
                quantity=Decimal("1"),
                unit_price=Decimal("500.00"),
                vat_rate=Decimal("0"),
                tax_category=TaxCategoryCode.REVERSE_CHARGE,
            )
        ],
        issue_date=date(2025, 3, 14),
        payment_terms="30 jours net",
    )
    invoice.number = "FA-2025-0002"

    # Act
    xml_bytes = build_facturx_xml(invoice, SELLER_COMPANY)

    # Assert
    tax = _root(xml_bytes).find(".//ram:ApplicableHeaderTradeSettlement/ram:ApplicableTradeTax", NS)
    assert tax.findtext("ram:CategoryCode", namespaces=NS) == "AE"
    assert tax.findtext("ram:ExemptionReasonCode", namespaces=NS) == "VATEX-EU-AE"
    assert validate_facturx(xml_bytes, mode="temp").ok


def test_minimum_profile_has_no_line_items() -> None:
    # Arrange
    invoice = _numbered()

    # Act
    xml_bytes = build_facturx_xml(invoice, SELLER_COMPANY, FacturXProfile.MINIMUM)

    # Assert
    root = _root(xml_bytes)
    assert root.findall(".//ram:IncludedSupplyChainTradeLineItem", NS) == []
    assert root.find(".//ram:SpecifiedTradeSettlementPaymentMeans", NS) is None
    assert validate_facturx(xml_bytes, mode="temp").ok


def test_xml_is_deterministic() -> None:
    invoice = _numbered()
    assert build_facturx_xml(invoice, SELLER_COMPANY) == build_facturx_xml(invoice, SELLER_COMPANY)


def test_unnumbered_invoice_is_rejected() -> None:
    invoice = build_sample_invoice(SCENARIOS[0], issue_date=date(2025, 3, 14))
    with pytest.raises(FacturXError):
        build_facturx_xml(invoice, SELLER_COMPANY)


@pytest.mark.parametrize("scenario", SCENARIOS, ids=lambda s: s.description)
def test_all_samples_pass_offline_validation(scenario) -> None:
    # Arrange
    invoice = build_sample_invoice(scenario, issue_date=date(2025, 3, 14))
    invoice.number = f"FA-2025-00{scenario.code}"

    # Act
    result = validate_facturx(build_facturx_xml(invoice, SELLER_COMPANY), mode="temp")

    # Assert
    assert result.ok, result.messages
    assert result.mode == "temp"
    assert "TEMP_VALIDATOR: Guideline OK" in result.messages


def test_validator_detects_inconsistent_grand_total() -> None:
    # Arrange
    xml_bytes = build_facturx_xml(_numbered(), SELLER_COMPANY)
    tampered = xml_bytes.replace(
        b"<ram:GrandTotalAmount>186.00", b"<ram:GrandTotalAmount>187.00"
    )

    # Act
    result = validate_facturx(tampered, mode="temp")

    # Assert
    assert result.schema_ok
    assert not result.consistency_ok
    assert not result.ok
    assert any("GrandTotal" in message for message in result.messages)


@pytest.mark.parametrize(
    "payload, expected",
    [
        (b"<not-xml", "XML parse error"),
        (b"<root/>", "Root element"),
    ],
)
def test_validator_rejects_malformed_documents(payload: bytes, expected: str) -> None:
    result = validate_facturx(payload, mode="temp")
    assert not result.schema_ok
    assert expected in result.messages[-1]


def test_official_mode_without_xsd_falls_back_to_temp() -> None:
    # Arrange
    xml_bytes = build_facturx_xml(_numbered(), SELLER_COMPANY)

    # Act
    result = validate_facturx(xml_bytes, mode="official")

    # Assert
    assert result.ok
    assert result.mode in {"temp", "official"}


def test_pdf_embeds_xml_as_alternative_attachment() -> None:
    # Arrange
    invoice = _numbered()

    # Act
    pdf_bytes, xml_bytes = build_facturx_document(invoice, SELLER_COMPANY, now=NOW)

    # Assert
    assert pdf_bytes.startswith(b"%PDF")
    assert extract_xml_from_pdf(pdf_bytes) == xml_bytes
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf_doc:
        filespec = pdf_doc.Root.AF[0]
        assert filespec.AFRelationship == pikepdf.Name("/Alternative")
        assert str(filespec.UF) == FACTURX_FILENAME
        metadata = bytes(pdf_doc.Root.Metadata.read_bytes())
    assert b"<pdfaid:part>3</pdfaid:part>" in metadata
    assert b"<fx:ConformanceLevel>EN16931</fx:ConformanceLevel>" in metadata
    assert b"2025-03-14T09:30:00Z" in metadata


def test_extract_from_plain_pdf_fails() -> None:
    pdf_bytes = render_invoice_pdf(_numbered(), SELLER_COMPANY)
    with pytest.raises(FacturXError):
        extract_xml_from_pdf(pdf_bytes)
