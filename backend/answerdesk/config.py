"""
Application configuration using pydantic-settings.

Fields are read from ANSWERDESK_* environment variables (DATABASE_URL and
LOG_LEVEL are read unprefixed) or passed in code. There is no module-level
settings instance: create_app() receives one and request handlers read it
from app.state.
"""

from typing import Annotated, List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Comma-separated in the environment, e.g. "image/jpeg,application/pdf"
CsvList = Annotated[List[str], NoDecode]


class Settings(BaseSettings):
    """
    Central configuration for the answer-sheet tracking service.

    Required in production:
    - database_url: SQLAlchemy URL (PostgreSQL in production, SQLite locally)
    - environment: "production" hides stack traces in error responses
    """

    # ── Application ──────────────────────────────────────────
    app_name: str = "answerdesk"
    version: str = "1.0.0"
    environment: str = "development"
    log_level: str = Field("INFO", validation_alias=AliasChoices("log_level", "LOG_LEVEL"))
    cors_origins: CsvList = Field(default_factory=lambda: ["*"])

    # ── Database ─────────────────────────────────────────────
    database_url: str = Field(
        "sqlite:///./answerdesk.db",
        validation_alias=AliasChoices("database_url", "DATABASE_URL"),
    )
    db_echo: bool = False
    create_tables_on_startup: bool = True

    # ── Pagination ───────────────────────────────────────────
    default_page_size: int = 20
    max_page_size: int = 100

    # ── Flag auto-detection thresholds ───────────────────────
    roll_confidence_threshold: float = 70.0
    roll_confidence_critical: float = 40.0
    max_sheet_size_bytes: int = 10 * 1024 * 1024
    allowed_sheet_formats: CsvList = Field(
        default_factory=lambda: ["image/jpeg", "image/png", "application/pdf"]
    )

    model_config = SettingsConfigDict(
        env_prefix="ANSWERDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("cors_origins", "allowed_sheet_formats", mode="before")
    @classmethod
    def split_comma_separated(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"
