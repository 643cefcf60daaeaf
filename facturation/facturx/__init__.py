"""Factur-X : génération CII, PDF/A-3 et validation hors ligne."""

from .generator import (
    FACTURX_FILENAME,
    GENERATOR_VERSION,
    build_facturx_document,
    build_facturx_xml,
    embed_xml_to_pdf,
    extract_xml_from_pdf,
    render_invoice_pdf,
    version,
)
from .validator import FacturXValidationResult, validate_facturx

__all__ = [
    "FACTURX_FILENAME",
    "GENERATOR_VERSION",
    "build_facturx_document",
    "build_facturx_xml",
    "embed_xml_to_pdf",
    "extract_xml_from_pdf",
    "render_invoice_pdf",
    "version",
    "FacturXValidationResult",
    "validate_facturx",
]
