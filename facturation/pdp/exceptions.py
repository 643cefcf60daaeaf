"""Exceptions PDP."""

from __future__ import annotations

from typing import List, Optional

from ..exceptions import FacturationError
from .capability import PdpStatusCode
from .dto import TransmissionResult


class PdpError(FacturationError):
    def __init__(self, message: str = "PDP operation failed", *, connector_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.connector_id = connector_id


class PdpConnectorNotFoundError(PdpError, LookupError):
    def __init__(self, connector_id: str) -> None:
        super().__init__(f'PDP connector "{connector_id}" not found', connector_id=connector_id)


class PdpTransmissionError(PdpError):
    def __init__(
        self,
        message: str,
        *,
        result: Optional[TransmissionResult] = None,
        errors: Optional[List[str]] = None,
        connector_id: Optional[str] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, connector_id=connector_id)
        self.result = result
        self.errors = list(errors or [])
        self.retryable = retryable

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @classmethod
    def from_result(
        cls, result: TransmissionResult, connector_id: Optional[str] = None
    ) -> "PdpTransmissionError":
        return cls(
            result.message or "Transmission failed",
            result=result,
            errors=result.errors,
            connector_id=connector_id,
            retryable=result.status is PdpStatusCode.FAILED,
        )

    @classmethod
    def network_error(cls, message: str, connector_id: Optional[str] = None) -> "PdpTransmissionError":
        """À lever avec ``raise ... from exc`` pour garder la cause réseau."""
        return cls(message, connector_id=connector_id, retryable=True)

    @classmethod
    def validation_failed(
        cls, validation_errors: List[str], connector_id: Optional[str] = None
    ) -> "PdpTransmissionError":
        return cls(
            "Invoice validation failed: " + ", ".join(validation_errors),
            errors=validation_errors,
            connector_id=connector_id,
        )


__all__ = ["PdpConnectorNotFoundError", "PdpError", "PdpTransmissionError"]
