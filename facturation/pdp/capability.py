"""Capacités et statuts d'une PDP (Plateforme de Dématérialisation Partenaire)."""

from __future__ import annotations

from enum import Enum


class PdpCapability(Enum):
    TRANSMIT = "transmit"
    RECEIVE = "receive"
    STATUS = "status"
    LIFECYCLE = "lifecycle"
    HEALTH_CHECK = "health_check"
    BATCH_TRANSMIT = "batch_transmit"
    WEBHOOKS = "webhooks"
    E_REPORTING = "e_reporting"


class PdpStatusCode(Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TRANSMITTED = "transmitted"
    DELIVERED = "delivered"
    ACKNOWLEDGED = "acknowledged"
    APPROVED = "approved"
    REFUSED = "refused"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_successful(self) -> bool:
        return self in _SUCCESSFUL

    @property
    def is_failure(self) -> bool:
        return self in _FAILURES

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_pending(self) -> bool:
        return self in _PENDING

    @property
    def label(self) -> str:
        return _LABELS[self]


_SUCCESSFUL = frozenset(
    {
        PdpStatusCode.ACCEPTED,
        PdpStatusCode.TRANSMITTED,
        PdpStatusCode.DELIVERED,
        PdpStatusCode.ACKNOWLEDGED,
        PdpStatusCode.APPROVED,
        PdpStatusCode.PAID,
    }
)
_FAILURES = frozenset(
    {PdpStatusCode.REJECTED, PdpStatusCode.REFUSED, PdpStatusCode.FAILED, PdpStatusCode.CANCELLED}
)
_TERMINAL = frozenset(
    {
        PdpStatusCode.PAID,
        PdpStatusCode.REJECTED,
        PdpStatusCode.REFUSED,
        PdpStatusCode.FAILED,
        PdpStatusCode.CANCELLED,
    }
)
_PENDING = frozenset(
    {
        PdpStatusCode.PENDING,
        PdpStatusCode.SUBMITTED,
        PdpStatusCode.ACCEPTED,
        PdpStatusCode.TRANSMITTED,
        PdpStatusCode.DELIVERED,
        PdpStatusCode.ACKNOWLEDGED,
        PdpStatusCode.APPROVED,
    }
)
_LABELS = {
    PdpStatusCode.PENDING: "En attente",
    PdpStatusCode.SUBMITTED: "Soumise",
    PdpStatusCode.ACCEPTED: "Acceptée",
    PdpStatusCode.REJECTED: "Rejetée",
    PdpStatusCode.TRANSMITTED: "Transmise",
    PdpStatusCode.DELIVERED: "Livrée",
    PdpStatusCode.ACKNOWLEDGED: "Accusée de réception",
    PdpStatusCode.APPROVED: "Approuvée",
    PdpStatusCode.REFUSED: "Refusée",
    PdpStatusCode.PAID: "Payée",
    PdpStatusCode.FAILED: "Échec",
    PdpStatusCode.CANCELLED: "Annulée",
}


__all__ = ["PdpCapability", "PdpStatusCode"]
