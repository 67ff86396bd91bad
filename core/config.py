"""
Centralized configuration management.
All environment variables and settings are defined here.
"""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator

from core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = Field(default="Bank Statement Analyzer", alias="APP_NAME")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3001, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # AI categorization
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_api_url: str = Field(
        default="https://api.openai.com/v1/chat/completions",
        alias="OPENAI_API_URL"
    )
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_timeout: int = Field(default=120, alias="OPENAI_TIMEOUT")
    openai_json_mode: bool = Field(default=True, alias="OPENAI_JSON_MODE")
    verify_ssl: bool = Field(default=True, alias="VERIFY_SSL")

    # Analysis store
    database_backend: str = Field(default="sqlite", alias="DATABASE_BACKEND")
    database_url: str = Field(default="", alias="DATABASE_URL")
    database_key: str = Field(default="", alias="DATABASE_KEY")
    database_table: str = Field(default="analyses", alias="DATABASE_TABLE")
    database_path: str = Field(default="statements.db", alias="DATABASE_PATH")

    # Processing
    max_statement_chars: int = Field(default=30000, alias="MAX_STATEMENT_CHARS")
    category_match_threshold: float = Field(default=0.85, alias="CATEGORY_MATCH_THRESHOLD")

    # Storage
    temp_storage_path: str = Field(default="files", alias="STORAGE_PATH")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v_upper

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("openai_timeout", "max_statement_chars")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Value must not be negative")
        return v

    @field_validator("database_backend")
    @classmethod
    def validate_backend(cls, v):
        """Validate the store backend name."""
        v_lower = v.lower()
        if v_lower not in ("sqlite", "rest"):
            raise ValueError("Database backend must be 'sqlite' or 'rest'")
        return v_lower

    @field_validator("category_match_threshold")
    @classmethod
    def validate_threshold(cls, v):
        if not (0.0 <= v <= 1.0):
            raise ValueError("Category match threshold must be between 0 and 1")
        return v

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"

    @property
    def request_timeout(self) -> Optional[int]:
        """AI request timeout in seconds, None to wait indefinitely."""
        return self.openai_timeout or None

    def require(self, *fields: str) -> None:
        """
        Ensure the named settings are non-empty.

        Args:
            fields: Attribute names to check

        Raises:
            ConfigurationError: Listing the env variables that are missing
        """
        model_fields = type(self).model_fields
        missing = [
            model_fields[name].alias or name.upper()
            for name in fields
            if not str(getattr(self, name) or "").strip()
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                details={"missing": missing}
            )

    def validate_for_store(self) -> None:
        """Check the configuration needed to reach the analysis store."""
        if self.database_backend == "rest":
            self.require("database_url", "database_key")
        else:
            self.require("database_path")

    def validate_for_analysis(self) -> None:
        """Check the configuration needed for a full analyze request."""
        self.require("openai_api_key", "openai_api_url")
        self.validate_for_store()

    def ensure_directories(self) -> None:
        """Ensure required directories exist."""
        Path(self.temp_storage_path).mkdir(parents=True, exist_ok=True)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.ensure_directories()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
