"""Shared configuration management for the bookkeeping tools.

Based on Pydantic Settings v2:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/

The Settings instance is built once by the entry point (CLI, API) and passed
into every component constructor.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_COMPANY_NAME="Muster GmbH"
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    service_name: str = Field(
        default="bookkeeping",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Generative provider configuration
    llm_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="Generative provider: openai (cloud API), ollama (self-hosted LLM)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model for extraction, completion and matching",
    )
    booking_model: str = Field(
        default="gpt-4",
        description="Model used for SKR03 booking proposals",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model (e.g., qwen2.5:7b, llama3.1:8b)",
    )
    llm_temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for completion requests",
    )
    llm_max_tokens: int = Field(
        default=1000,
        gt=0,
        description="Maximum tokens per completion or matching response",
    )

    # Organization context
    company_name: str = Field(
        default="YOUR_COMPANY",
        description="Name of the organization owning the books",
    )
    company_aliases: str = Field(
        default="",
        description="Comma-separated alternative names of the organization",
    )
    home_currency: str = Field(
        default="EUR",
        min_length=3,
        max_length=3,
        description="Currency used when an extracted currency cannot be recognized",
    )

    # Invoice completion
    require_all_fields: bool = Field(
        default=False,
        description="Also require customer, due date and net amount for completeness",
    )
    completion_max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts for the generative completion call",
    )
    ocr_confidence_min: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="OCR confidence below which a warning is logged",
    )

    # OCR / document intake
    ocr_language: str = Field(
        default="deu+eng",
        description="Tesseract language codes",
    )
    ocr_dpi: int = Field(
        default=300,
        gt=0,
        description="Rasterization DPI for PDF pages",
    )
    max_document_bytes: int = Field(
        default=20 * 1024 * 1024,
        gt=0,
        description="Largest accepted document size in bytes",
    )

    # Amount reconciliation
    amount_discrepancy_pct: float = Field(
        default=5.0,
        ge=0.0,
        description="Percentage above which two amount sources are considered in conflict",
    )
    amount_tolerance_cents: int = Field(
        default=2,
        ge=0,
        description="Allowed gap in cents for the net + vat = gross identity",
    )

    # Transaction matching
    match_tolerance_pct: float = Field(
        default=1.0,
        gt=0.0,
        description="Amount tolerance in percent of the invoice gross amount",
    )
    match_max_candidates: int = Field(
        default=10,
        gt=0,
        description="Candidate shortlist size sent to the classifier",
    )
    match_date_window_days: int = Field(
        default=30,
        gt=0,
        description="Days between invoice and payment before the date score decays faster",
    )

    # Batch processing
    batch_workers: int = Field(
        default=12,
        ge=1,
        description="Concurrent workers for folder processing",
    )

    # Booking
    chart_of_accounts: str = Field(
        default="03",
        description="DATEV chart of accounts (only SKR03 is supported)",
    )

    # Spreadsheet
    google_sheet_url: str = Field(
        default="",
        description="URL of the Google spreadsheet holding bank and invoice sheets",
    )
    bank_sheet: str = Field(default="Bank", description="Sheet with bank transactions")
    payables_sheet: str = Field(default="Kreditoren", description="Sheet with payable invoices")
    receivables_sheet: str = Field(
        default="Debitoren", description="Sheet with receivable invoices"
    )
    reconciliation_sheet: str = Field(
        default="Abgleich", description="Sheet receiving reconciliation matches"
    )

    @property
    def company_alias_list(self) -> list[str]:
        """Company aliases split on commas, blanks removed."""
        return [alias.strip() for alias in self.company_aliases.split(",") if alias.strip()]


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
