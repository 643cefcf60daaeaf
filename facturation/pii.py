"""Masquage des données personnelles dans les textes persistés (notices, rapports)."""

from __future__ import annotations

import re


MASK_EMAIL = re.compile(r"(?P<prefix>[A-Za-z0-9._%+-]{1,3})[A-Za-z0-9._%+-]*@(?P<domain>[A-Za-z0-9.-]+)")
MASK_IBAN = re.compile(r"\b[A-Z]{2}[0-9]{2}[A-Z0-9]{11,30}\b")
MASK_PHONE = re.compile(r"(?<!\d)(?:\+33 ?|0)[1-9](?:[ .\-]?\d{2}){4}(?!\d)")


def mask_pii(text: str) -> str:
    """Masque e-mails, IBAN et numéros de téléphone français."""

    text = MASK_EMAIL.sub(lambda m: f"{m.group('prefix')}***@***", text)
    text = MASK_IBAN.sub("IBAN-***", text)
    text = MASK_PHONE.sub("***-TEL-***", text)
    return text


__all__ = ["mask_pii"]
