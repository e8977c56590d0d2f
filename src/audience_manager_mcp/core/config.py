"""Configuration management for Audience Manager."""

import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from audience_manager_mcp.core.exceptions import ConfigurationError


class Environment(str, Enum):
    """Application environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    TEXT = "text"


class CampaignManagerConfig(BaseModel):
    """Campaign Manager 360 API configuration."""

    network_id: str = Field(default="", description="CM360 Network (account) ID")
    advertiser_id: str = Field(default="", description="CM360 Advertiser ID")
    api_scope: str = Field(default="dfareporting")
    api_version: str = Field(default="v4")
    base_url: str = Field(default="https://www.googleapis.com/")
    advertisers_filter: list[str] = Field(
        default_factory=list,
        description="Restrict advertiser lookups to these advertiser IDs",
    )
    max_results_per_page: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Page size used when listing advertisers",
    )

    # Authentication
    service_account_key_path: str | None = Field(
        default=None, description="Path to service account JSON key file"
    )
    use_application_default_credentials: bool = Field(
        default=True, description="Use Application Default Credentials"
    )

    # Retry and timeout settings
    max_retries: int = Field(
        default=3, ge=0, le=10, description="Maximum retry attempts"
    )
    backoff_multiplier: float = Field(
        default=2.0, ge=1.0, le=10.0, description="Exponential backoff multiplier"
    )
    max_backoff_seconds: float = Field(
        default=30.0, ge=1.0, le=300.0, description="Maximum backoff time in seconds"
    )
    request_timeout_seconds: float = Field(
        default=60.0, ge=1.0, le=300.0, description="Request timeout in seconds"
    )

    @field_validator("network_id", "advertiser_id")
    @classmethod
    def validate_numeric_id(cls, v: str) -> str:
        """Validate CM360 IDs are numeric."""
        cleaned = v.strip()
        if cleaned and not cleaned.isdigit():
            raise ValueError("CM360 IDs must be numeric")
        return cleaned

    @field_validator("advertisers_filter", mode="before")
    @classmethod
    def split_advertisers_filter(cls, v: Any) -> Any:
        """Accept a comma-separated string of advertiser IDs."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure the base URL ends with a slash."""
        return v if v.endswith("/") else f"{v}/"


class AudienceSheetConfig(BaseModel):
    """Location and defaults of the Audiences and Rules sheets."""

    audiences_path: Path = Field(default=Path("Audiences.csv"))
    rules_path: Path = Field(default=Path("Rules.csv"))
    default_state: bool = Field(
        default=True, description="Whether created lists are active"
    )
    list_source: str = Field(default="REMARKETING_LIST_SOURCE_DFA")
    default_life_span: int = Field(
        default=90, ge=1, le=540, description="Membership duration in days"
    )
    missing_advertiser_name: str = Field(
        default="MISSING", description="Name shown for unknown shared advertisers"
    )


class RulesConfig(BaseModel):
    """Audience rule (list population term) settings."""

    term_type: str = Field(default="CUSTOM_VARIABLE_TERM")
    separator: str = Field(
        default=",", description="Separator for multiple values in one rule"
    )
    variable_separator: str = Field(
        default=":", description="Separator between variable type and report name"
    )


class MultiSelectConfig(BaseModel):
    """Settings for multi-value cells such as advertiser shares."""

    separator: str = Field(default="##")
    separator_regex: str = Field(default=r"\((\d+)\)#?#?")
    id_and_name_regex: str = Field(default=r"\((\d+)\)")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: LogFormat = LogFormat.TEXT
    log_file: str | None = None

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


class Settings(BaseSettings):
    """Application settings.

    Environment Variables:
        Campaign Manager 360:
            AM_CM360__NETWORK_ID=1234567
            AM_CM360__ADVERTISER_ID=7654321
            AM_CM360__ADVERTISERS_FILTER='["111", "222"]'
            AM_CM360__SERVICE_ACCOUNT_KEY_PATH=/path/to/key.json

        Sheets:
            AM_SHEETS__AUDIENCES_PATH=Audiences.csv
            AM_SHEETS__RULES_PATH=Rules.csv

        Logging:
            AM_LOGGING__LEVEL=INFO
            AM_LOGGING__FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="AM_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    cm360: CampaignManagerConfig = Field(default_factory=CampaignManagerConfig)
    sheets: AudienceSheetConfig = Field(default_factory=AudienceSheetConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    multi_select: MultiSelectConfig = Field(default_factory=MultiSelectConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_debug_logging(self) -> "Settings":
        """Force DEBUG logging when debug mode is on outside production."""
        if self.debug and self.environment != Environment.PRODUCTION:
            self.logging.level = "DEBUG"
        return self

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        """Load settings from the environment, reading a .env file first."""
        if env_file:
            load_dotenv(env_file)
        else:
            env_path = Path.cwd() / ".env"
            if env_path.exists():
                load_dotenv(env_path)
        return cls()

    def validate_required_settings(self) -> None:
        """Validate that all required settings are present."""
        errors = []

        if not self.cm360.network_id:
            errors.append("AM_CM360__NETWORK_ID is required")
        if not self.cm360.advertiser_id:
            errors.append("AM_CM360__ADVERTISER_ID is required")
        if (
            not self.cm360.service_account_key_path
            and not self.cm360.use_application_default_credentials
        ):
            errors.append(
                "Either AM_CM360__SERVICE_ACCOUNT_KEY_PATH or "
                "AM_CM360__USE_APPLICATION_DEFAULT_CREDENTIALS must be set"
            )

        if errors:
            raise ConfigurationError(f"Configuration errors: {'; '.join(errors)}")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Required CM360 settings are not checked here; call
    ``Settings.validate_required_settings`` before accessing CM360.
    """
    try:
        return Settings.from_env()
    except ValidationError as e:
        logging.error(f"Configuration error: {e}")
        raise


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper())

    if settings.logging.format == LogFormat.JSON:
        import json

        class JsonFormatter(logging.Formatter):
            def format(self, record: logging.LogRecord) -> str:
                log_data = {
                    "timestamp": self.formatTime(record),
                    "level": record.levelname,
                    "logger": record.name,
                    "message": record.getMessage(),
                    "module": record.module,
                    "function": record.funcName,
                    "line": record.lineno,
                }
                if record.exc_info:
                    log_data["exception"] = self.formatException(record.exc_info)
                return json.dumps(log_data)

        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.logging.log_file:
        log_path = Path(settings.logging.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
