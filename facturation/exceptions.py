"""Exceptions de la facturation.

La hiérarchie distingue les erreurs de configuration (remontées telles
quelles, sans nouvel essai), les conflits de verrou (``retryable``) et les
erreurs de cohérence interne qui annulent la transaction englobante.
"""

from __future__ import annotations

from typing import Optional


class FacturationError(RuntimeError):
    retryable = False


class FiscalConfigError(FacturationError, ValueError):
    pass


class CompanyModeError(FiscalConfigError):
    pass


class CompanyNotFoundError(FacturationError, LookupError):
    def __init__(self, company_id: Optional[int]) -> None:
        super().__init__(f"Company {company_id!r} not found")
        self.company_id = company_id


class NumberingError(FacturationError):
    pass


class TransactionRequiredError(NumberingError):
    pass


class SequenceLockError(NumberingError):
    """Lock timeout or deadlock on a sequence row; retry the whole operation."""

    retryable = True


class SequenceConsistencyError(NumberingError):
    pass


class InvoiceStateError(FacturationError):
    pass


class InvoiceNotFoundError(FacturationError, LookupError):
    pass


class InvoiceFinalizationError(FacturationError):
    def __init__(self, message: str, *, invoice_ref: Optional[str] = None) -> None:
        super().__init__(message)
        self.invoice_ref = invoice_ref

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        cause = self.__cause__
        return bool(getattr(cause, "retryable", False))


class FacturXError(FacturationError):
    pass


__all__ = [
    "CompanyModeError",
    "CompanyNotFoundError",
    "FacturXError",
    "FacturationError",
    "FiscalConfigError",
    "InvoiceFinalizationError",
    "InvoiceNotFoundError",
    "InvoiceStateError",
    "NumberingError",
    "SequenceConsistencyError",
    "SequenceLockError",
    "TransactionRequiredError",
]
