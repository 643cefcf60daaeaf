"""Factur-X : XML UN/CEFACT CII et PDF/A-3 (ReportLab + pikepdf).

Le XML suit la structure CrossIndustryInvoice D16B (espaces rsm/ram/udt). Le
PDF est une page de synthèse ReportLab à laquelle pikepdf attache
``factur-x.xml`` (relation ``/Alternative``) et les métadonnées XMP PDF/A-3
avec l'extension Factur-X.

La conformité PDF/A formelle reste à attester par un validateur externe.
"""

from __future__ import annotations

import io
import textwrap
from datetime import datetime, timezone
from decimal import Decimal
from html import escape
from typing import Dict, Iterable, List, Optional, Tuple

import pikepdf
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from ..company import CompanyData
from ..dto import Invoice, InvoiceLine, quantize_money
from ..enums import FacturXProfile, PaymentMeansCode, PaymentMethod, TaxCategoryCode
from ..exceptions import FacturXError

NS_RSM = "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100"
NS_RAM = "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100"
NS_UDT = "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100"

GENERATOR_VERSION = "facturx-cii-pdfa3-1.0.0"
PDF_A_PRODUCER = "Facturation Factur-X Generator"
FACTURX_FILENAME = "factur-x.xml"

# SIREN (ISO 6523 ICD 0002)
SIREN_SCHEME = "0002"


def version() -> str:
    return GENERATOR_VERSION


def _format_decimal(value: Decimal) -> str:
    return f"{quantize_money(value):.2f}"


def _format_quantity(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _format_date(d) -> str:
    return d.strftime("%Y%m%d")


def _format_datetime(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def _date_element(tag: str, d) -> str:
    return (
        f"<{tag}><udt:DateTimeString format=\"102\">{_format_date(d)}</udt:DateTimeString></{tag}>"
    )


def _address(street: str, postal_code: str, city: str, country_code: str) -> str:
    parts = ["<ram:PostalTradeAddress>"]
    if postal_code:
        parts.append(f"  <ram:PostcodeCode>{escape(postal_code)}</ram:PostcodeCode>")
    parts.append(f"  <ram:LineOne>{escape(street)}</ram:LineOne>")
    if city:
        parts.append(f"  <ram:CityName>{escape(city)}</ram:CityName>")
    parts.append(f"  <ram:CountryID>{escape(country_code)}</ram:CountryID>")
    parts.append("</ram:PostalTradeAddress>")
    return "\n".join(parts)


def _render_seller(company: CompanyData) -> str:
    parts = ["<ram:SellerTradeParty>", f"  <ram:Name>{escape(company.name)}</ram:Name>"]
    if company.siren:
        parts.append(
            "  <ram:SpecifiedLegalOrganization>"
            f"<ram:ID schemeID=\"{SIREN_SCHEME}\">{escape(company.siren)}</ram:ID>"
            "</ram:SpecifiedLegalOrganization>"
        )
    if company.email or company.phone:
        parts.append("  <ram:DefinedTradeContact>")
        if company.phone:
            parts.append(
                "    <ram:TelephoneUniversalCommunication>"
                f"<ram:CompleteNumber>{escape(company.phone)}</ram:CompleteNumber>"
                "</ram:TelephoneUniversalCommunication>"
            )
        if company.email:
            parts.append(
                "    <ram:EmailURIUniversalCommunication>"
                f"<ram:URIID>{escape(company.email)}</ram:URIID>"
                "</ram:EmailURIUniversalCommunication>"
            )
        parts.append("  </ram:DefinedTradeContact>")
    parts.append(
        textwrap.indent(
            _address(
                company.address,
                company.postal_code or "",
                company.city or "",
                company.country_code,
            ),
            "  ",
        )
    )
    if company.vat_number:
        parts.append(
            "  <ram:SpecifiedTaxRegistration>"
            f"<ram:ID schemeID=\"VA\">{escape(company.vat_number)}</ram:ID>"
            "</ram:SpecifiedTaxRegistration>"
        )
    parts.append("</ram:SellerTradeParty>")
    return "\n".join(parts)


def _render_buyer(invoice: Invoice) -> str:
    buyer = invoice.buyer
    parts = ["<ram:BuyerTradeParty>", f"  <ram:Name>{escape(buyer.name)}</ram:Name>"]
    if buyer.siren:
        parts.append(
            "  <ram:SpecifiedLegalOrganization>"
            f"<ram:ID schemeID=\"{SIREN_SCHEME}\">{escape(buyer.siren)}</ram:ID>"
            "</ram:SpecifiedLegalOrganization>"
        )
    parts.append(
        textwrap.indent(
            _address(
                buyer.address.street,
                buyer.address.postal_code,
                buyer.address.city,
                buyer.address.country_code,
            ),
            "  ",
        )
    )
    if buyer.vat_id:
        parts.append(
            "  <ram:SpecifiedTaxRegistration>"
            f"<ram:ID schemeID=\"VA\">{escape(buyer.vat_id)}</ram:ID>"
            "</ram:SpecifiedTaxRegistration>"
        )
    parts.append("</ram:BuyerTradeParty>")
    return "\n".join(parts)


def _render_trade_line(index: int, line: InvoiceLine) -> str:
    return textwrap.dedent(
        f"""
        <ram:IncludedSupplyChainTradeLineItem>
          <ram:AssociatedDocumentLineDocument>
            <ram:LineID>{index}</ram:LineID>
          </ram:AssociatedDocumentLineDocument>
          <ram:SpecifiedTradeProduct>
            <ram:Name>{escape(line.description)}</ram:Name>
          </ram:SpecifiedTradeProduct>
          <ram:SpecifiedLineTradeAgreement>
            <ram:NetPriceProductTradePrice>
              <ram:ChargeAmount>{_format_decimal(line.unit_price)}</ram:ChargeAmount>
            </ram:NetPriceProductTradePrice>
          </ram:SpecifiedLineTradeAgreement>
          <ram:SpecifiedLineTradeDelivery>
            <ram:BilledQuantity unitCode="{escape(line.unit_code)}">{_format_quantity(line.quantity)}</ram:BilledQuantity>
          </ram:SpecifiedLineTradeDelivery>
          <ram:SpecifiedLineTradeSettlement>
            <ram:ApplicableTradeTax>
              <ram:TypeCode>VAT</ram:TypeCode>
              <ram:CategoryCode>{line.tax_category.value}</ram:CategoryCode>
              <ram:RateApplicablePercent>{_format_decimal(line.vat_rate)}</ram:RateApplicablePercent>
            </ram:ApplicableTradeTax>
            <ram:SpecifiedTradeSettlementLineMonetarySummation>
              <ram:LineTotalAmount>{_format_decimal(line.net_amount())}</ram:LineTotalAmount>
            </ram:SpecifiedTradeSettlementLineMonetarySummation>
          </ram:SpecifiedLineTradeSettlement>
        </ram:IncludedSupplyChainTradeLineItem>
        """
    ).strip()


def _aggregate_tax(
    lines: Iterable[InvoiceLine],
) -> Dict[Tuple[TaxCategoryCode, Decimal], Dict[str, Decimal]]:
    totals: Dict[Tuple[TaxCategoryCode, Decimal], Dict[str, Decimal]] = {}
    for line in lines:
        key = (line.tax_category, line.vat_rate)
        bucket = totals.setdefault(key, {"net": Decimal("0.00"), "tax": Decimal("0.00")})
        bucket["net"] += line.net_amount()
        bucket["tax"] += line.tax_amount()
    return totals


def _render_tax_breakdown(lines: Iterable[InvoiceLine]) -> str:
    fragments: List[str] = []
    aggregates = _aggregate_tax(lines)
    for (category, rate) in sorted(aggregates, key=lambda k: (k[0].value, k[1])):
        bucket = aggregates[(category, rate)]
        parts = [
            "<ram:ApplicableTradeTax>",
            f"  <ram:CalculatedAmount>{_format_decimal(bucket['tax'])}</ram:CalculatedAmount>",
            "  <ram:TypeCode>VAT</ram:TypeCode>",
        ]
        if category.exemption_reason_code:
            parts.append(f"  <ram:ExemptionReason>{escape(category.label)}</ram:ExemptionReason>")
        parts.append(f"  <ram:BasisAmount>{_format_decimal(bucket['net'])}</ram:BasisAmount>")
        parts.append(f"  <ram:CategoryCode>{category.value}</ram:CategoryCode>")
        if category.exemption_reason_code:
            parts.append(
                f"  <ram:ExemptionReasonCode>{category.exemption_reason_code}</ram:ExemptionReasonCode>"
            )
        parts.append(f"  <ram:RateApplicablePercent>{_format_decimal(rate)}</ram:RateApplicablePercent>")
        parts.append("</ram:ApplicableTradeTax>")
        fragments.append("\n".join(parts))
    return "\n".join(fragments)


def _render_payment_means(company: CompanyData) -> str:
    code = PaymentMeansCode.from_payment_method(PaymentMethod.BANK_TRANSFER)
    parts = ["<ram:SpecifiedTradeSettlementPaymentMeans>", f"  <ram:TypeCode>{code.value}</ram:TypeCode>"]
    if company.iban:
        parts.append(
            "  <ram:PayeePartyCreditorFinancialAccount>"
            f"<ram:IBANID>{escape(company.iban)}</ram:IBANID>"
            "</ram:PayeePartyCreditorFinancialAccount>"
        )
    parts.append("</ram:SpecifiedTradeSettlementPaymentMeans>")
    return "\n".join(parts)


def build_facturx_xml(
    invoice: Invoice,
    company: CompanyData,
    profile: FacturXProfile = FacturXProfile.EN16931,
) -> bytes:
    """Construit le XML CII d'une pièce numérotée.

    La sortie est déterministe : elle ne dépend que de la facture, de la
    société et du profil.
    """

    if not invoice.number:
        raise FacturXError("invoice number must be set before generating Factur-X XML")

    totals = invoice.compute_totals()
    full = profile is not FacturXProfile.MINIMUM

    header_notes = ""
    if invoice.payment_terms and full:
        header_notes = (
            f"\n    <ram:IncludedNote><ram:Content>{escape(invoice.payment_terms)}</ram:Content></ram:IncludedNote>"
        )

    lines_xml = ""
    if profile.has_line_items:
        lines_xml = "\n".join(
            _render_trade_line(idx + 1, line) for idx, line in enumerate(invoice.lines)
        )

    agreement: List[str] = []
    if invoice.buyer_reference:
        agreement.append(f"<ram:BuyerReference>{escape(invoice.buyer_reference)}</ram:BuyerReference>")
    agreement.append(_render_seller(company))
    agreement.append(_render_buyer(invoice))

    settlement: List[str] = [f"<ram:InvoiceCurrencyCode>{escape(invoice.currency)}</ram:InvoiceCurrencyCode>"]
    if full:
        settlement.append(_render_payment_means(company))
        settlement.append(_render_tax_breakdown(invoice.lines))
        terms = ["<ram:SpecifiedTradePaymentTerms>"]
        if invoice.payment_terms:
            terms.append(f"  <ram:Description>{escape(invoice.payment_terms)}</ram:Description>")
        terms.append("  " + _date_element("ram:DueDateDateTime", invoice.due_date))
        terms.append("</ram:SpecifiedTradePaymentTerms>")
        settlement.append("\n".join(terms))

    currency = escape(invoice.currency)
    due_payable = quantize_money(totals.total_gross - invoice.amount_paid)
    summation = ["<ram:SpecifiedTradeSettlementHeaderMonetarySummation>"]
    if full:
        summation.append(f"  <ram:LineTotalAmount>{_format_decimal(totals.total_net)}</ram:LineTotalAmount>")
    summation.extend(
        [
            f"  <ram:TaxBasisTotalAmount>{_format_decimal(totals.total_net)}</ram:TaxBasisTotalAmount>",
            f"  <ram:TaxTotalAmount currencyID=\"{currency}\">{_format_decimal(totals.total_tax)}</ram:TaxTotalAmount>",
            f"  <ram:GrandTotalAmount>{_format_decimal(totals.total_gross)}</ram:GrandTotalAmount>",
        ]
    )
    if full and invoice.amount_paid > Decimal("0"):
        summation.append(f"  <ram:TotalPrepaidAmount>{_format_decimal(invoice.amount_paid)}</ram:TotalPrepaidAmount>")
    summation.append(f"  <ram:DuePayableAmount>{_format_decimal(due_payable)}</ram:DuePayableAmount>")
    summation.append("</ram:SpecifiedTradeSettlementHeaderMonetarySummation>")
    settlement.append("\n".join(summation))

    if invoice.credited_invoice_number:
        settlement.append(
            "<ram:InvoiceReferencedDocument>"
            f"<ram:IssuerAssignedID>{escape(invoice.credited_invoice_number)}</ram:IssuerAssignedID>"
            "</ram:InvoiceReferencedDocument>"
        )

    transaction_parts: List[str] = []
    if lines_xml:
        transaction_parts.append(lines_xml)
    transaction_parts.append(
        "<ram:ApplicableHeaderTradeAgreement>\n"
        + textwrap.indent("\n".join(agreement), "  ")
        + "\n</ram:ApplicableHeaderTradeAgreement>"
    )
    transaction_parts.append("<ram:ApplicableHeaderTradeDelivery/>")
    transaction_parts.append(
        "<ram:ApplicableHeaderTradeSettlement>\n"
        + textwrap.indent("\n".join(settlement), "  ")
        + "\n</ram:ApplicableHeaderTradeSettlement>"
    )

    xml_content = f"""<?xml version="1.0" encoding="UTF-8"?>
<rsm:CrossIndustryInvoice xmlns:rsm="{NS_RSM}" xmlns:ram="{NS_RAM}" xmlns:udt="{NS_UDT}">
  <rsm:ExchangedDocumentContext>
    <ram:GuidelineSpecifiedDocumentContextParameter>
      <ram:ID>{profile.urn}</ram:ID>
    </ram:GuidelineSpecifiedDocumentContextParameter>
  </rsm:ExchangedDocumentContext>
  <rsm:ExchangedDocument>
    <ram:ID>{escape(invoice.number)}</ram:ID>
    <ram:TypeCode>{invoice.type.document_type_code}</ram:TypeCode>
    {_date_element("ram:IssueDateTime", invoice.issue_date)}{header_notes}
  </rsm:ExchangedDocument>
  <rsm:SupplyChainTradeTransaction>
{textwrap.indent(chr(10).join(transaction_parts), '    ')}
  </rsm:SupplyChainTradeTransaction>
</rsm:CrossIndustryInvoice>
"""
    return xml_content.encode("utf-8")


def _xmp_metadata(invoice_no: str, profile: FacturXProfile, timestamp_str: str) -> str:
    return f"""<?xpacket begin='' id='W5M0MpCehiHzreSzNTczkc9d'?>
<x:xmpmeta xmlns:x='adobe:ns:meta/'>
  <rdf:RDF xmlns:rdf='http://www.w3.org/1999/02/22-rdf-syntax-ns#'>
    <rdf:Description rdf:about='' xmlns:pdfaid='http://www.aiim.org/pdfa/ns/id/'>
      <pdfaid:part>3</pdfaid:part>
      <pdfaid:conformance>B</pdfaid:conformance>
    </rdf:Description>
    <rdf:Description rdf:about='' xmlns:dc='http://purl.org/dc/elements/1.1/'>
      <dc:title>Facture {escape(invoice_no)}</dc:title>
      <dc:creator>{PDF_A_PRODUCER}</dc:creator>
      <dc:subject>Factur-X</dc:subject>
    </rdf:Description>
    <rdf:Description rdf:about='' xmlns:xmp='http://ns.adobe.com/xap/1.0/'>
      <xmp:CreateDate>{timestamp_str}</xmp:CreateDate>
      <xmp:ModifyDate>{timestamp_str}</xmp:ModifyDate>
      <xmp:CreatorTool>{PDF_A_PRODUCER}</xmp:CreatorTool>
    </rdf:Description>
    <rdf:Description rdf:about='' xmlns:fx='urn:factur-x:pdfa:CrossIndustryDocument:invoice:1p0#'>
      <fx:DocumentType>INVOICE</fx:DocumentType>
      <fx:DocumentFileName>{FACTURX_FILENAME}</fx:DocumentFileName>
      <fx:Version>1.0</fx:Version>
      <fx:ConformanceLevel>{profile.xmp_conformance_level}</fx:ConformanceLevel>
    </rdf:Description>
  </rdf:RDF>
</x:xmpmeta>
<?xpacket end='w'?>"""


def render_invoice_pdf(invoice: Invoice, company: Optional[CompanyData]) -> bytes:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4, invariant=1)
    c.setTitle(f"{invoice.type.label} {invoice.number}")
    c.setCreator(PDF_A_PRODUCER)
    c.setProducer(PDF_A_PRODUCER)
    c.setSubject("Factur-X")

    totals = invoice.compute_totals()
    y = 780
    rows = [
        f"{invoice.type.label} {invoice.number}",
        f"Date : {invoice.issue_date.strftime('%d/%m/%Y')}",
        f"Échéance : {invoice.due_date.strftime('%d/%m/%Y')}",
    ]
    if company is not None:
        rows.append(f"Émetteur : {company.name}")
    rows.append(f"Client : {invoice.buyer.name}")
    rows.append("")
    for line in invoice.lines:
        rows.append(
            f"{line.description} - {_format_quantity(line.quantity)} x "
            f"{_format_decimal(line.unit_price)} - TVA {_format_decimal(line.vat_rate)} %"
        )
    rows.append("")
    rows.append(f"Total HT : {_format_decimal(totals.total_net)} {invoice.currency}")
    rows.append(f"Total TVA : {_format_decimal(totals.total_tax)} {invoice.currency}")
    rows.append(f"Total TTC : {_format_decimal(totals.total_gross)} {invoice.currency}")
    for row in rows:
        c.drawString(60, y, row)
        y -= 18
    c.showPage()
    c.save()
    return buffer.getvalue()


def embed_xml_to_pdf(
    pdf_bytes: bytes,
    xml_bytes: bytes,
    invoice_no: str,
    *,
    timestamp: datetime,
    profile: FacturXProfile = FacturXProfile.EN16931,
) -> bytes:
    """Attache ``factur-x.xml`` au PDF et pose les métadonnées PDF/A-3."""

    timestamp_str = _format_datetime(timestamp)
    with pikepdf.Pdf.open(io.BytesIO(pdf_bytes)) as pdf_doc:
        pdf_doc.Root.Metadata = pikepdf.Stream(
            pdf_doc, _xmp_metadata(invoice_no, profile, timestamp_str).encode("utf-8")
        )
        pdf_doc.Root.Metadata.Type = pikepdf.Name("/Metadata")
        pdf_doc.Root.Metadata.Subtype = pikepdf.Name("/XML")

        xml_stream = pikepdf.Stream(pdf_doc, xml_bytes)
        xml_stream[pikepdf.Name("/Type")] = pikepdf.Name("/EmbeddedFile")
        xml_stream[pikepdf.Name("/Subtype")] = pikepdf.Name("/text/xml")
        params = pikepdf.Dictionary()
        params["/ModDate"] = pikepdf.String(timestamp_str)
        params["/Size"] = len(xml_bytes)
        xml_stream[pikepdf.Name("/Params")] = params

        filespec = pikepdf.Dictionary()
        filespec["/Type"] = pikepdf.Name("/Filespec")
        filespec["/F"] = pikepdf.String(FACTURX_FILENAME)
        filespec["/UF"] = pikepdf.String(FACTURX_FILENAME)
        filespec["/Desc"] = pikepdf.String("Factur-X")
        ef_dict = pikepdf.Dictionary()
        ef_dict["/F"] = xml_stream
        filespec["/EF"] = ef_dict
        filespec["/AFRelationship"] = pikepdf.Name("/Alternative")
        filespec = pdf_doc.make_indirect(filespec)

        if pikepdf.Name("/AF") not in pdf_doc.Root:
            pdf_doc.Root[pikepdf.Name("/AF")] = pikepdf.Array()
        pdf_doc.Root[pikepdf.Name("/AF")].append(filespec)

        names = pikepdf.Dictionary()
        names["/EmbeddedFiles"] = pikepdf.Dictionary(
            {"/Names": pikepdf.Array([pikepdf.String(FACTURX_FILENAME), filespec])}
        )
        pdf_doc.Root[pikepdf.Name("/Names")] = names

        output = io.BytesIO()
        pdf_doc.save(output, compress_streams=True, normalize_content=True, deterministic_id=True)
    return output.getvalue()


def extract_xml_from_pdf(pdf_bytes: bytes) -> bytes:
    with pikepdf.Pdf.open(io.BytesIO(pdf_bytes)) as pdf_doc:
        attachment = pdf_doc.attachments.get(FACTURX_FILENAME)
        if attachment is None:
            raise FacturXError(f"{FACTURX_FILENAME} not embedded in PDF")
        return attachment.get_file().read_bytes()


def build_facturx_document(
    invoice: Invoice,
    company: CompanyData,
    profile: FacturXProfile = FacturXProfile.EN16931,
    *,
    now: Optional[datetime] = None,
) -> Tuple[bytes, bytes]:
    """Retourne ``(pdf_bytes, xml_bytes)`` pour une pièce numérotée."""

    xml_bytes = build_facturx_xml(invoice, company, profile)
    timestamp = now or invoice.finalized_at or datetime.now(timezone.utc)
    pdf_bytes = embed_xml_to_pdf(
        render_invoice_pdf(invoice, company),
        xml_bytes,
        invoice.number or "",
        timestamp=timestamp,
        profile=profile,
    )
    return pdf_bytes, xml_bytes


__all__ = [
    "FACTURX_FILENAME",
    "GENERATOR_VERSION",
    "NS_RAM",
    "NS_RSM",
    "NS_UDT",
    "build_facturx_document",
    "build_facturx_xml",
    "embed_xml_to_pdf",
    "extract_xml_from_pdf",
    "render_invoice_pdf",
    "version",
]
