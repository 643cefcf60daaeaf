"""Core configuration with Pydantic v2 Settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_env: str = "development"
    database_url: str = "sqlite:///./facturation.db"
    log_level: str = "INFO"

    # Lock wait before a sequence row lock surfaces as retryable (seconds)
    DB_LOCK_TIMEOUT_S: int = 10

    # Company data: 'config' (mono-company) or 'database' (multi-company)
    COMPANY_PROVIDER: str = "config"
    COMPANY_NAME: str = ""
    COMPANY_ADDRESS: str = ""
    COMPANY_POSTAL_CODE: str = ""
    COMPANY_CITY: str = ""
    COMPANY_COUNTRY_CODE: str = "FR"
    COMPANY_SIRET: str = ""
    COMPANY_VAT_NUMBER: str = ""
    COMPANY_EMAIL: str = ""
    COMPANY_PHONE: str = ""
    COMPANY_IBAN: str = ""
    COMPANY_BIC: str = ""
    COMPANY_LEGAL_FORM: str = ""
    COMPANY_SHARE_CAPITAL: str = ""
    COMPANY_RCS: str = ""

    # Fiscal year window, e.g. 11/1 for a November-October year
    FISCAL_YEAR_START_MONTH: int = 1
    FISCAL_YEAR_START_DAY: int = 1

    # Invoice numbering: FA-2025-0042 with padding 4
    SEQUENCE_PADDING: int = 4
    DEFAULT_PAYMENT_TERMS: str = "30 jours net"

    # Factur-X
    FACTURX_ENABLED: bool = True
    FACTURX_PROFILE: str = "EN16931"
    # temp|official (official requires XSD files under facturx/resources/official)
    EINVOICE_VALIDATION_MODE: str = "temp"

    # FEC export accounts (Plan Comptable Général)
    FEC_CUSTOMER_ACCOUNT: str = "411000"
    FEC_SALES_ACCOUNT: str = "707000"
    FEC_VAT_COLLECTED_ACCOUNT: str = "445710"
    FEC_JOURNAL_CODE: str = "VT"
    FEC_JOURNAL_LABEL: str = "Ventes"
    FEC_BANK_ACCOUNT: str = "512000"
    FEC_BANK_JOURNAL_CODE: str = "BQ"
    FEC_BANK_JOURNAL_LABEL: str = "Banque"

    # PDP / e-reporting
    PDP_DEFAULT_CONNECTOR: str = "null"
    PDP_AUTO_TRANSMIT: bool = False
    PDP_MAX_RETRIES: int = 3
    EREPORTING_FREQUENCY: str = "monthly"  # monthly|quarterly

    # Outbox consumer
    OUTBOX_BACKOFF_SECONDS: int = 60

    # Local artifacts (archives, notices, reports)
    ARTIFACTS_DIR: str = "artifacts"


# Global settings instance
settings = Settings()
