"""Données société : un contrat, deux fournisseurs (mono et multi-société).

``ConfigCompanyProvider`` lit la société unique depuis les settings et refuse
tout identifiant ; ``DatabaseCompanyProvider`` lit la table ``companies`` et
exige un identifiant. ``build_company_provider`` choisit selon
``COMPANY_PROVIDER``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import sqlalchemy as sa
from sqlalchemy import MetaData, Table
from sqlalchemy.engine import Engine

from backend.core.config import Settings
from backend.core.db import METADATA

from .dto import Address, Party
from .exceptions import CompanyModeError, CompanyNotFoundError, FiscalConfigError
from .fiscal_calendar import FiscalYearConfig, validate_fiscal_start


@dataclass(frozen=True, slots=True)
class CompanyData:
    name: str
    address: str
    postal_code: Optional[str] = None
    city: Optional[str] = None
    country_code: str = "FR"
    siret: Optional[str] = None
    vat_number: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    legal_form: Optional[str] = None
    share_capital: Optional[str] = None
    rcs: Optional[str] = None
    iban: Optional[str] = None
    bic: Optional[str] = None
    fiscal_year_start_month: int = 1
    fiscal_year_start_day: int = 1
    company_id: Optional[int] = None

    @property
    def fiscal_year_config(self) -> FiscalYearConfig:
        return FiscalYearConfig(self.fiscal_year_start_month, self.fiscal_year_start_day)

    @property
    def siren(self) -> Optional[str]:
        return self.siret[:9] if self.siret else None

    def as_party(self) -> Party:
        return Party(
            name=self.name,
            address=Address(
                street=self.address,
                postal_code=self.postal_code or "",
                city=self.city or "",
                country_code=self.country_code,
            ),
            siret=self.siret,
            vat_id=self.vat_number,
            email=self.email,
            iban=self.iban,
            bic=self.bic,
        )


class CompanyProvider(Protocol):
    """Fournit les données d'une société (``None`` en mode mono-société)."""

    def get(self, company_id: Optional[int] = None) -> CompanyData:
        ...


def _blank_to_none(value: str) -> Optional[str]:
    value = (value or "").strip()
    return value or None


class ConfigCompanyProvider:
    def __init__(self, config: Settings) -> None:
        self._config = config

    def get(self, company_id: Optional[int] = None) -> CompanyData:
        if company_id is not None:
            raise CompanyModeError("ConfigCompanyProvider does not support multi-company mode")

        cfg = self._config
        if not cfg.COMPANY_NAME.strip():
            raise FiscalConfigError("Company name is required (COMPANY_NAME)")
        if not cfg.COMPANY_ADDRESS.strip():
            raise FiscalConfigError("Company address is required (COMPANY_ADDRESS)")
        validate_fiscal_start(cfg.FISCAL_YEAR_START_MONTH, cfg.FISCAL_YEAR_START_DAY)

        return CompanyData(
            name=cfg.COMPANY_NAME.strip(),
            address=cfg.COMPANY_ADDRESS.strip(),
            postal_code=_blank_to_none(cfg.COMPANY_POSTAL_CODE),
            city=_blank_to_none(cfg.COMPANY_CITY),
            country_code=cfg.COMPANY_COUNTRY_CODE or "FR",
            siret=_blank_to_none(cfg.COMPANY_SIRET),
            vat_number=_blank_to_none(cfg.COMPANY_VAT_NUMBER),
            email=_blank_to_none(cfg.COMPANY_EMAIL),
            phone=_blank_to_none(cfg.COMPANY_PHONE),
            legal_form=_blank_to_none(cfg.COMPANY_LEGAL_FORM),
            share_capital=_blank_to_none(cfg.COMPANY_SHARE_CAPITAL),
            rcs=_blank_to_none(cfg.COMPANY_RCS),
            iban=_blank_to_none(cfg.COMPANY_IBAN),
            bic=_blank_to_none(cfg.COMPANY_BIC),
            fiscal_year_start_month=cfg.FISCAL_YEAR_START_MONTH,
            fiscal_year_start_day=cfg.FISCAL_YEAR_START_DAY,
        )


def get_companies_table(metadata: MetaData) -> Table:
    return sa.Table(
        "companies",
        metadata,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("postal_code", sa.String(16)),
        sa.Column("city", sa.Text()),
        sa.Column("country_code", sa.String(2), nullable=False, server_default="FR"),
        sa.Column("siret", sa.String(14)),
        sa.Column("vat_number", sa.String(32)),
        sa.Column("email", sa.Text()),
        sa.Column("phone", sa.String(32)),
        sa.Column("legal_form", sa.Text()),
        sa.Column("share_capital", sa.Text()),
        sa.Column("rcs", sa.Text()),
        sa.Column("iban", sa.String(34)),
        sa.Column("bic", sa.String(11)),
        sa.Column("fiscal_year_start_month", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("fiscal_year_start_day", sa.Integer(), nullable=False, server_default="1"),
        extend_existing=True,
    )


COMPANIES = get_companies_table(METADATA)


class DatabaseCompanyProvider:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, company_id: Optional[int] = None) -> CompanyData:
        if company_id is None:
            raise CompanyModeError("DatabaseCompanyProvider requires a company id")

        with self._engine.connect() as conn:
            row = conn.execute(
                sa.select(COMPANIES).where(COMPANIES.c.id == company_id)
            ).mappings().first()
        if row is None:
            raise CompanyNotFoundError(company_id)

        data = dict(row)
        data["company_id"] = data.pop("id")
        validate_fiscal_start(data["fiscal_year_start_month"], data["fiscal_year_start_day"])
        return CompanyData(**data)


def build_company_provider(config: Settings, engine: Optional[Engine] = None) -> CompanyProvider:
    mode = (config.COMPANY_PROVIDER or "config").lower()
    if mode == "config":
        return ConfigCompanyProvider(config)
    if mode == "database":
        if engine is None:
            raise FiscalConfigError("COMPANY_PROVIDER=database requires an engine")
        return DatabaseCompanyProvider(engine)
    raise FiscalConfigError(f"Unknown COMPANY_PROVIDER {config.COMPANY_PROVIDER!r}")


__all__ = [
    "COMPANIES",
    "CompanyData",
    "CompanyProvider",
    "ConfigCompanyProvider",
    "DatabaseCompanyProvider",
    "build_company_provider",
    "get_companies_table",
]
