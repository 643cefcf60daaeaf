"""Facturation conforme : numérotation séquentielle sans trou, calendrier
fiscal, Factur-X, FEC, e-reporting et transmission PDP."""

from .company import CompanyData, build_company_provider
from .dto import Address, Invoice, InvoiceLine, Party, Payment, build_invoice
from .enums import FacturXProfile, InvoiceStatus, InvoiceType, PaymentMethod, TaxCategoryCode
from .exceptions import (
    CompanyModeError,
    CompanyNotFoundError,
    FacturXError,
    FacturationError,
    FiscalConfigError,
    InvoiceFinalizationError,
    InvoiceNotFoundError,
    InvoiceStateError,
    NumberingError,
    SequenceConsistencyError,
    SequenceLockError,
    TransactionRequiredError,
)
from .finalizer import FinalizationResult, InvoiceFinalizer
from .fiscal_calendar import FiscalYearConfig, ReportingFrequency, ReportingPeriod
from .numbering import InvoiceNumberGenerator, generate_number
from .manager import InvoiceManager
from .payments import PaymentManager
from .repository import InvoiceRepository
from .sequence_store import FiscalYearSequence, SequenceStore

__all__ = [
    "Address",
    "CompanyData",
    "CompanyModeError",
    "CompanyNotFoundError",
    "FacturXError",
    "FacturXProfile",
    "FacturationError",
    "FinalizationResult",
    "FiscalConfigError",
    "FiscalYearConfig",
    "FiscalYearSequence",
    "Invoice",
    "InvoiceFinalizationError",
    "InvoiceFinalizer",
    "InvoiceLine",
    "InvoiceManager",
    "InvoiceNotFoundError",
    "InvoiceNumberGenerator",
    "InvoiceRepository",
    "InvoiceStateError",
    "InvoiceStatus",
    "InvoiceType",
    "NumberingError",
    "Party",
    "Payment",
    "PaymentManager",
    "PaymentMethod",
    "ReportingFrequency",
    "ReportingPeriod",
    "SequenceConsistencyError",
    "SequenceLockError",
    "SequenceStore",
    "TaxCategoryCode",
    "TransactionRequiredError",
    "build_company_provider",
    "build_invoice",
    "generate_number",
]
