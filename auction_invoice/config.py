"""Configuration management for auction invoice processing."""
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from auction_invoice.core.exceptions import ConfigurationError
from auction_invoice.core.models import TaxCodeTable


class Settings(BaseSettings):
    """Centralized configuration, read from the environment or ``.env``.

    Core functions never read this directly; callers pass the relevant values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Extraction
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key for invoice extraction")
    extraction_model: str = Field(default="gemini-2.5-flash", description="Model for invoice extraction")

    # Ledger
    ledger_api_url: str = Field(default="https://api.xero.com/api.xro/2.0", description="Ledger accounting API base URL")
    ledger_timeout: float = Field(default=30.0, description="Timeout in seconds for ledger requests")
    default_currency: str = Field(default="GBP", description="Currency used when the invoice has none")
    totals_tolerance: float = Field(default=0.01, description="Allowed difference between header and line totals")

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    logs_folder: str = Field(default="logs", description="Folder for the log file")

    # Ledger tax-type codes
    tax_code_none: str = Field(default="NONE", description="Code for lines without VAT")
    tax_code_vat20: str = Field(default="INPUT2", description="Code for 20% VAT on purchases")
    tax_code_vat5: str = Field(default="INPUT", description="Code for 5% VAT on purchases")

    # Retry Configuration
    retry_max_attempts: int = Field(default=5, ge=1, description="Total attempts per outbound call")
    retry_base_delay: float = Field(default=0.3, ge=0, description="Base delay in seconds for exponential backoff")
    retry_transient_status_codes: Annotated[List[int], NoDecode] = Field(
        default_factory=list,
        description="Extra HTTP status codes treated as transient"
    )

    @field_validator("default_currency")
    @classmethod
    def currency_must_not_be_empty(cls, v):
        """Ensure a fallback currency is configured."""
        if not v or v.strip() == "":
            raise ValueError("DEFAULT_CURRENCY must not be empty")
        return v.strip().upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure the log level is one logging understands."""
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be DEBUG, INFO, WARNING, ERROR or CRITICAL, got '{v}'")
        return level

    @field_validator("retry_transient_status_codes", mode="before")
    @classmethod
    def parse_status_codes(cls, v):
        """Accept a comma separated list of status codes."""
        if isinstance(v, str):
            return [int(code) for code in v.split(",") if code.strip()]
        return v

    @property
    def tax_code_table(self) -> TaxCodeTable:
        return TaxCodeTable(
            none=self.tax_code_none,
            vat20=self.tax_code_vat20,
            vat5=self.tax_code_vat5,
        )

    @property
    def retry_kwargs(self) -> dict:
        """Keyword arguments for ``ResilientInvoker``."""
        return {
            "max_attempts": self.retry_max_attempts,
            "base_delay": self.retry_base_delay,
            "transient_status_codes": tuple(self.retry_transient_status_codes),
        }

    def require_gemini_api_key(self) -> str:
        if not self.gemini_api_key or not self.gemini_api_key.strip():
            raise ConfigurationError("GEMINI_API_KEY", "must be provided for invoice extraction")
        return self.gemini_api_key
