"""E-reporting : transactions B2C / export, synthèses périodiques, échéances."""

from .dto import EReportingTransaction, ReportingResult, ReportingSummary
from .enums import EReportingPaymentStatus, ReportingFrequency, TransactionType
from .report import build_summary_md, write_summary_markdown
from .scheduler import EReportingScheduler
from .service import EU_COUNTRY_CODES, EReportingService, transaction_type_for

__all__ = [
    "EReportingPaymentStatus",
    "EReportingScheduler",
    "EReportingService",
    "EReportingTransaction",
    "EU_COUNTRY_CODES",
    "ReportingFrequency",
    "ReportingResult",
    "ReportingSummary",
    "TransactionType",
    "build_summary_md",
    "transaction_type_for",
    "write_summary_markdown",
]
